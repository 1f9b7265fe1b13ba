from __future__ import annotations

from pipeline.pipeline_context import PipelineContext
from pipeline.processors.context_hydrator import ContextHydrator

from .base_phase import PhaseResult, PipelinePhase


class HydrationPhase(PipelinePhase):
    stage_name = 'hydration'

    def __init__(self, hydrator: ContextHydrator) -> None:
        super().__init__()
        self.hydrator = hydrator

    async def execute(self, context: PipelineContext) -> PhaseResult:
        manifest = context.require('manifest', self.stage_name)
        context.hydrated = await self.hydrator.hydrate(
            manifest, context.environment, context.cancel_token, master_schema=context.master_schema,
        )
        return PhaseResult.success_result(
            self.stage_name,
            f"Hydrated {len(context.hydrated.components)} component(s) for '{context.environment}'",
            metadata={'framework': context.hydrated.compliance_framework.value},
        )
