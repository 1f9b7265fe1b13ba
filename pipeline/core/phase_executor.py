"""
Phase Executor - runs the resolution stages in order with timing and
consistent error handling.

Resolution errors propagate unchanged. Errors are never modified after they
are raised: a ResolutionError that names no stage, and any other exception,
is wrapped in a new StageExecutionError naming the stage. The cancellation token is checked at
every stage boundary.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Sequence

from pipeline.exceptions import ResolutionCancelledError, ResolutionError, StageExecutionError
from pipeline.phases.base_phase import PhaseResult, PipelinePhase
from pipeline.pipeline_context import PipelineContext

logger = logging.getLogger(__name__)


@dataclass
class PhaseExecutionSummary:
    results: List[PhaseResult] = field(default_factory=list)
    total_duration: float = 0.0

    @property
    def stages(self) -> List[str]:
        return [r.stage for r in self.results]


class PhaseExecutor:

    def __init__(self, phases: Sequence[PipelinePhase]) -> None:
        self.phases = list(phases)

    async def execute_phases(self, context: PipelineContext) -> PhaseExecutionSummary:
        summary = PhaseExecutionSummary()
        started = time.perf_counter()
        logger.debug('[%s] Executing %d stage(s)', context.run_id, len(self.phases))

        for i, phase in enumerate(self.phases, 1):
            logger.debug('[%s] Stage %d/%d: %s', context.run_id, i, len(self.phases), phase.stage_name)
            result = await self._execute_single_phase(phase, context)
            summary.results.append(result)

        context.cancel_token.raise_if_cancelled('resolution')
        summary.total_duration = time.perf_counter() - started
        return summary

    async def _execute_single_phase(self, phase: PipelinePhase, context: PipelineContext) -> PhaseResult:
        stage = phase.stage_name
        started = time.perf_counter()
        try:
            await phase.pre_execute(context)
            result = await phase.execute(context)
            result.duration_seconds = time.perf_counter() - started
            context.stage_timings[stage] = result.duration_seconds
            await phase.post_execute(context, result)
            return result
        except ResolutionError as exc:
            if not isinstance(exc, ResolutionCancelledError):
                logger.error('✗ Stage %s failed after %.3fs: %s', stage, time.perf_counter() - started, exc)
            if exc.stage == ResolutionError.stage:
                # Raised without naming a stage: report it under this one.
                raise StageExecutionError(f"Stage '{stage}' failed: {exc.message}", stage=stage, original_error=exc) from exc
            raise
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error('✗ Unexpected exception in stage %s: %s', stage, exc, exc_info=True)
            raise StageExecutionError(f"Unexpected error in stage '{stage}': {exc}", stage=stage, original_error=exc) from exc
