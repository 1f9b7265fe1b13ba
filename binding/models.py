# binding/models.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.bindings import AccessGrant, NetworkRule
from domain.capabilities import CapabilityData
from domain.compliance import ComplianceFramework
from domain.manifest import AccessLevel, BindingDirective


class BindingContext(BaseModel):
    """Everything a strategy may read while computing one binding."""
    source: str
    source_type: str
    target: str
    target_type: str
    directive: BindingDirective
    capability_data: CapabilityData
    framework: ComplianceFramework
    environment: str
    binding_id: str
    options: Dict[str, Any] = Field(default_factory=dict, description="Directive options after compliance enforcement")
    target_config: Dict[str, Any] = Field(default_factory=dict)
    cancel_token: Any = None

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    @property
    def capability(self) -> str:
        return self.directive.capability

    @property
    def access(self) -> AccessLevel:
        return self.directive.access

    def option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)


class EnvBinding(BaseModel):
    """One environment variable a strategy wants injected, by logical key."""
    key: str
    default_name: str
    value: str

    model_config = ConfigDict(extra="forbid")


class BindingDraft(BaseModel):
    """Mutable strategy output; the resolver checks and freezes it."""
    environment: List[EnvBinding] = Field(default_factory=list)
    access_grants: List[AccessGrant] = Field(default_factory=list)
    network_rules: List[NetworkRule] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    strategy_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")
