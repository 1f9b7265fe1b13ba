from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from core.cancellation import CancellationToken
from pipeline.pipeline_config import PipelineConfig

if TYPE_CHECKING:
    from domain.bindings import BindingResult
    from domain.manifest import Manifest
    from domain.plan import HydratedManifest, ResolvedPlan, ValidatedGraph
    from pipeline.processors.schema_composer import MasterSchema


@dataclass
class PipelineContext:
    """
    Shared state for one resolution attempt. Each stage reads the previous
    stage's artifact and writes its own; nothing is shared across attempts.
    """
    text: Any
    environment: str
    config: PipelineConfig
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    source: Optional[str] = None
    run_id: str = field(default_factory=lambda: f'run-{uuid.uuid4().hex[:12]}')

    raw_tree: Any = None
    master_schema: Optional['MasterSchema'] = None
    manifest: Optional['Manifest'] = None
    hydrated: Optional['HydratedManifest'] = None
    graph: Optional['ValidatedGraph'] = None
    bindings: List['BindingResult'] = field(default_factory=list)
    plan: Optional['ResolvedPlan'] = None

    stage_timings: Dict[str, float] = field(default_factory=dict)

    def require(self, attr: str, stage: str) -> Any:
        value = getattr(self, attr)
        if value is None:
            # Only reachable when stages are wired out of order.
            raise RuntimeError(f"Stage '{stage}' requires '{attr}' from an earlier stage")
        return value
