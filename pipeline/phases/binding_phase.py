from __future__ import annotations

from binding.resolver import CapabilityBindingResolver
from domain.plan import ResolvedPlan
from pipeline.pipeline_context import PipelineContext

from .base_phase import PhaseResult, PipelinePhase


class BindingPhase(PipelinePhase):
    """Resolve every bind, then assemble the Resolved Plan."""

    stage_name = 'binding'

    def __init__(self, resolver: CapabilityBindingResolver) -> None:
        super().__init__()
        self.resolver = resolver

    async def execute(self, context: PipelineContext) -> PhaseResult:
        graph = context.require('graph', self.stage_name)
        context.bindings = await self.resolver.resolve_all(graph, context.cancel_token)
        context.plan = ResolvedPlan.build(graph, context.bindings)

        warnings = [
            f'{b.source} -> {b.target}: [{a.rule_id}] {a.message}'
            for b in context.bindings for a in b.compliance_actions if a.kind != 'enforced'
        ]
        return PhaseResult.success_result(
            self.stage_name,
            f'{len(context.bindings)} binding(s) resolved; plan {context.plan.plan_id}',
            warnings=warnings,
            metadata={'cache': self.resolver.cache.stats()},
        )
