from __future__ import annotations

from pipeline.pipeline_context import PipelineContext
from pipeline.processors.reference_validator import ReferenceValidator

from .base_phase import PhaseResult, PipelinePhase


class SemanticValidationPhase(PipelinePhase):
    stage_name = 'semantic-validation'

    def __init__(self, validator: ReferenceValidator) -> None:
        super().__init__()
        self.validator = validator

    async def execute(self, context: PipelineContext) -> PhaseResult:
        hydrated = context.require('hydrated', self.stage_name)
        context.graph = self.validator.validate(hydrated)
        return PhaseResult.success_result(
            self.stage_name,
            f'{len(context.graph.binds)} bind(s) resolved to targets',
            metadata={'order': list(context.graph.topological_order)},
        )
