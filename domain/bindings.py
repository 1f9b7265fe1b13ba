"""
Binding Result models.

A ``BindingResult`` is built once by the binding resolver and is
deep-immutable afterwards: the models are frozen, nested mappings are
``FrozenDict`` instances and sequences are tuples.
"""
from __future__ import annotations

from typing import Any, Dict, Iterator, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from domain.manifest import AccessLevel


class FrozenDict(dict):
    """Read-only dict. Every mutating method raises ``TypeError``."""

    __slots__ = ()

    def _readonly(self, *args: Any, **kwargs: Any) -> None:
        raise TypeError(f"'{type(self).__name__}' object is read-only")

    __setitem__ = _readonly
    __delitem__ = _readonly
    __ior__ = _readonly
    clear = _readonly
    pop = _readonly
    popitem = _readonly
    setdefault = _readonly
    update = _readonly

    def __hash__(self) -> int:  # type: ignore[override]
        return hash(frozenset(self.items()))

    def __reduce__(self):
        return (type(self), (dict(self),))

    def __copy__(self) -> 'FrozenDict':
        return self

    def __deepcopy__(self, memo: Dict[int, Any]) -> 'FrozenDict':
        return self

    def __repr__(self) -> str:
        return f"FrozenDict({dict.__repr__(self)})"


def freeze(value: Any) -> Any:
    """Returns a deep read-only copy: mappings to FrozenDict, lists to tuples."""
    if isinstance(value, FrozenDict):
        return value
    if isinstance(value, Mapping):
        return FrozenDict((k, freeze(v)) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of ``freeze`` for serialization."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    if isinstance(value, frozenset):
        return sorted(thaw(v) for v in value)
    return value


def is_wildcard(value: str) -> bool:
    """A bare `*` or a service-wide `service:*` action or resource."""
    value = value.strip()
    return value == '*' or value.endswith(':*')


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid', populate_by_name=True)


class AccessGrant(_FrozenModel):
    """Least-privilege grant descriptor. Never a full policy language."""
    effect: Literal['Allow', 'Deny'] = 'Allow'
    actions: Tuple[str, ...]
    resources: Tuple[str, ...]
    conditions: Dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = None

    @field_validator('actions', 'resources')
    @classmethod
    def _non_empty(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        if not v:
            raise ValueError('must list at least one entry')
        return v

    @field_validator('conditions', mode='after')
    @classmethod
    def _freeze_conditions(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        return freeze(v)

    @property
    def unscoped_entries(self) -> Tuple[str, ...]:
        return tuple(v for v in (*self.actions, *self.resources) if is_wildcard(v))

    @property
    def is_unscoped(self) -> bool:
        return bool(self.unscoped_entries)


class NetworkRule(_FrozenModel):
    peer: str
    port_from: int = Field(alias='portFrom', ge=0, le=65535)
    port_to: int = Field(alias='portTo', ge=0, le=65535)
    protocol: Literal['tcp', 'udp'] = 'tcp'
    direction: Literal['ingress', 'egress'] = 'egress'
    description: Optional[str] = None

    @model_validator(mode='after')
    def _range(self) -> 'NetworkRule':
        if self.port_from > self.port_to:
            raise ValueError(f'port range {self.port_from}-{self.port_to} is inverted')
        return self


class ComplianceAction(_FrozenModel):
    rule_id: str = Field(alias='ruleId')
    framework: str
    requirement: str
    kind: Literal['enforced', 'advisory', 'suppressed']
    severity: Literal['info', 'warning', 'error'] = 'info'
    message: str
    remediation: Optional[str] = None
    suppression_id: Optional[str] = Field(default=None, alias='suppressionId')


class BindingResult(_FrozenModel):
    source: str
    target: str
    capability: str
    access: AccessLevel
    environment_variables: Dict[str, str] = Field(default_factory=dict, alias='environmentVariables')
    access_grants: Tuple[AccessGrant, ...] = Field(default=(), alias='accessGrants')
    network_rules: Tuple[NetworkRule, ...] = Field(default=(), alias='networkRules')
    compliance_actions: Tuple[ComplianceAction, ...] = Field(default=(), alias='complianceActions')
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('environment_variables', 'metadata', mode='after')
    @classmethod
    def _freeze_maps(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        return freeze(v)

    @property
    def binding_id(self) -> str:
        return self.metadata['bindingId']

    def iter_grant_actions(self) -> Iterator[str]:
        for grant in self.access_grants:
            yield from grant.actions

    def to_dict(self) -> Dict[str, Any]:
        return thaw(self.model_dump(mode='json', by_alias=True, exclude_none=True))
