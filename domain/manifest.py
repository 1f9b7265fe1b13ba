"""
Pydantic models for a parsed, schema-valid service manifest.

Models are frozen. The Context Hydrator produces new component instances via
``model_copy``; nothing mutates a manifest in place.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from domain.compliance import ComplianceFramework


def _date_to_text(v: Any) -> Any:
    # YAML turns unquoted dates into date objects.
    return v.isoformat() if hasattr(v, 'isoformat') else v


class AccessLevel(str, Enum):
    READ = 'read'
    WRITE = 'write'
    READWRITE = 'readwrite'
    ADMIN = 'admin'


class BindingSelector(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)

    type: str
    with_labels: Dict[str, Any] = Field(default_factory=dict, alias='withLabels')

    def describe(self) -> str:
        labels = ', '.join(f'{k}={v}' for k, v in sorted(self.with_labels.items()))
        return f"type '{self.type}'" + (f" with labels {{{labels}}}" if labels else '')


class BindingDirective(BaseModel):
    """A declared intent for one component to use another's capability."""
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)

    to: Optional[str] = None
    select: Optional[BindingSelector] = None
    capability: str
    access: AccessLevel
    env: Dict[str, str] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode='after')
    def _exactly_one_target(self) -> 'BindingDirective':
        if (self.to is None) == (self.select is None):
            raise ValueError("A bind must declare exactly one of 'to' or 'select'")
        return self

    @property
    def capability_kind(self) -> str:
        return self.capability.split(':', 1)[0]

    def describe_target(self) -> str:
        if self.to is not None:
            return f"'{self.to}'"
        return self.select.describe()


class ComponentSpec(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)

    name: str
    type: str
    config: Dict[str, Any] = Field(default_factory=dict)
    binds: Tuple[BindingDirective, ...] = ()
    labels: Dict[str, Any] = Field(default_factory=dict)
    overrides: Dict[str, Any] = Field(default_factory=dict)
    policy: Dict[str, Any] = Field(default_factory=dict)


class SuppressionEntry(BaseModel):
    """
    Governance suppression of a compliance rule. Completeness is checked by
    the governance validator so that every gap is reported as a governance
    error, not a schema error.
    """
    model_config = ConfigDict(frozen=True, extra='allow', populate_by_name=True)

    id: Optional[str] = None
    justification: Optional[str] = None
    owner: Optional[str] = None
    expires_on: Optional[str] = Field(default=None, alias='expiresOn')
    applies_to: Tuple[str, ...] = Field(default=(), alias='appliesTo')

    @field_validator('expires_on', mode='before')
    @classmethod
    def _date_as_text(cls, v: Any) -> Any:
        return _date_to_text(v)

    @field_validator('applies_to', mode='before')
    @classmethod
    def _component_names(cls, v: Any) -> Any:
        if v is None:
            return ()
        if isinstance(v, (str, dict)):
            v = [v]
        names = []
        for item in v:
            if isinstance(item, dict):
                item = item.get('component')
            names.append(item)
        return tuple(names)


class PatchEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra='allow', populate_by_name=True)

    name: Optional[str] = None
    justification: Optional[str] = None
    owner: Optional[str] = None
    expires_on: Optional[str] = Field(default=None, alias='expiresOn')
    description: Optional[str] = None

    @field_validator('expires_on', mode='before')
    @classmethod
    def _date_as_text(cls, v: Any) -> Any:
        return _date_to_text(v)


class Governance(BaseModel):
    model_config = ConfigDict(frozen=True, extra='allow')

    suppress: Tuple[SuppressionEntry, ...] = ()

    def suppressions_for(self, rule_id: str, component_name: str) -> List[SuppressionEntry]:
        return [s for s in self.suppress if s.id == rule_id and component_name in s.applies_to]


class Extensions(BaseModel):
    model_config = ConfigDict(frozen=True, extra='allow')

    patches: Tuple[PatchEntry, ...] = ()


class Manifest(BaseModel):
    """Immutable service manifest. Identity is its content."""
    model_config = ConfigDict(frozen=True, extra='allow', populate_by_name=True)

    service: str
    owner: Optional[str] = None
    compliance_framework: Optional[ComplianceFramework] = Field(default=None, alias='complianceFramework')
    environments: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    components: Tuple[ComponentSpec, ...] = ()
    governance: Governance = Field(default_factory=Governance)
    extensions: Extensions = Field(default_factory=Extensions)

    @field_validator('compliance_framework', mode='before')
    @classmethod
    def _framework(cls, v: Any) -> Any:
        return None if v is None else ComplianceFramework.parse(v)

    @field_validator('environments', mode='before')
    @classmethod
    def _environment_defaults(cls, v: Any) -> Any:
        # An entry is either {defaults: {...}} or a flat key/value map.
        if not isinstance(v, dict):
            return v
        normalized: Dict[str, Any] = {}
        for env_name, entry in v.items():
            if entry is None:
                entry = {}
            elif isinstance(entry, dict) and set(entry) == {'defaults'} and isinstance(entry['defaults'], dict):
                entry = entry['defaults']
            normalized[env_name] = entry
        return normalized

    def component(self, name: str) -> Optional[ComponentSpec]:
        for comp in self.components:
            if comp.name == name:
                return comp
        return None

    def component_names(self) -> List[str]:
        return [c.name for c in self.components]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)
