"""
Intermediate and final artifacts of a resolution: the hydrated manifest, the
validated bind graph and the Resolved Plan handed to downstream consumers.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.bindings import BindingResult, freeze, thaw
from domain.compliance import ComplianceFramework
from domain.fingerprint import fingerprint
from domain.manifest import BindingDirective, Extensions, Governance, Manifest


class HydratedComponent(BaseModel):
    """A component whose config is fully merged and free of tokens."""
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)

    name: str
    type: str
    config: Dict[str, Any] = Field(default_factory=dict)
    binds: Tuple[BindingDirective, ...] = ()
    labels: Dict[str, Any] = Field(default_factory=dict)
    policy: Dict[str, Any] = Field(default_factory=dict)
    # Which layers contributed, lowest precedence first.
    layers: Tuple[str, ...] = ()

    @field_validator('config', 'policy', 'labels', mode='after')
    @classmethod
    def _freeze_maps(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        return freeze(v)


class HydratedManifest(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid')

    manifest: Manifest
    environment: str
    compliance_framework: ComplianceFramework
    components: Tuple[HydratedComponent, ...]

    def component(self, name: str) -> Optional[HydratedComponent]:
        for comp in self.components:
            if comp.name == name:
                return comp
        return None


class ResolvedBind(BaseModel):
    """One bind directive with its target resolved to a component name."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    index: int
    source: str
    source_type: str
    target: str
    target_type: str
    directive: BindingDirective
    path: str


class ValidatedGraph(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid')

    hydrated: HydratedManifest
    binds: Tuple[ResolvedBind, ...]
    topological_order: Tuple[str, ...]


class ResolvedPlan(BaseModel):
    """The sole output of a resolution. ``plan_id`` is a digest of the content."""
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)

    plan_id: str = Field(alias='planId')
    service: str
    owner: Optional[str] = None
    compliance_framework: ComplianceFramework = Field(alias='complianceFramework')
    environment: str
    components: Tuple[HydratedComponent, ...]
    bindings: Tuple[BindingResult, ...]
    governance: Governance = Field(default_factory=Governance)
    extensions: Extensions = Field(default_factory=Extensions)

    @classmethod
    def build(cls, graph: ValidatedGraph, bindings: List[BindingResult]) -> 'ResolvedPlan':
        hydrated = graph.hydrated
        content = {
            'service': hydrated.manifest.service,
            'owner': hydrated.manifest.owner,
            'complianceFramework': hydrated.compliance_framework,
            'environment': hydrated.environment,
            'components': list(hydrated.components),
            'bindings': list(bindings),
            'governance': hydrated.manifest.governance,
            'extensions': hydrated.manifest.extensions,
        }
        return cls(planId=f"plan-{fingerprint(content)[:32]}", **content)

    def binding(self, source: str, target: str) -> Optional[BindingResult]:
        for result in self.bindings:
            if result.source == source and result.target == target:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        return thaw(self.model_dump(mode='json', by_alias=True, exclude_none=True))
