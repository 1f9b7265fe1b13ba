"""
Base Phase - common contract for the resolution stages.

Stages run strictly in order. A stage either stores its artifact on the
PipelineContext and returns a PhaseResult, or raises a ResolutionError.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pipeline.pipeline_context import PipelineContext

logger = logging.getLogger(__name__)


@dataclass
class PhaseResult:
    """Result of one stage execution."""
    stage: str
    message: str
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    duration_seconds: float = 0.0

    @classmethod
    def success_result(
        cls,
        stage: str,
        message: str,
        warnings: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> 'PhaseResult':
        return cls(stage=stage, message=message, warnings=warnings or [], metadata=metadata or {})


class PipelinePhase(ABC):
    """One stage of the resolution pipeline."""

    stage_name: str = 'stage'

    def __init__(self) -> None:
        self.logger = logging.getLogger(f'pipeline.{self.stage_name}')

    @abstractmethod
    async def execute(self, context: PipelineContext) -> PhaseResult:
        ...

    async def pre_execute(self, context: PipelineContext) -> None:
        self.logger.debug('Starting stage: %s', self.stage_name)
        context.cancel_token.raise_if_cancelled(self.stage_name)

    async def post_execute(self, context: PipelineContext, result: PhaseResult) -> None:
        self.logger.info('✓ Stage completed: %s - %s', self.stage_name, result.message)
        for warning in result.warnings:
            self.logger.warning('  Warning: %s', warning)
