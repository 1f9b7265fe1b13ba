from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Mapping, Optional, Tuple

from domain.compliance import ComplianceFramework
from pipeline.exceptions import ConfigurationError

CYCLE_CHECK_POLICIES = ('all', 'invocation')


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for one ManifestResolver."""
    max_concurrency: int = 8
    binding_timeout_seconds: Optional[float] = 30.0
    schema_compile_timeout_seconds: Optional[float] = 10.0
    cycle_check: str = 'all'
    invocation_capability_prefixes: Tuple[str, ...] = ('api:', 'function:', 'invoke:', 'lambda:')
    allow_per_environment_fallback: bool = False
    per_environment_fallback_key: str = 'default'
    environment_names: Tuple[str, ...] = ('dev', 'test', 'staging', 'prod')
    default_compliance_framework: ComplianceFramework = ComplianceFramework.COMMERCIAL
    # Governance expiry is checked against this date; None means today.
    reference_date: Optional[date] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ConfigurationError(f'max_concurrency must be >= 1, got {self.max_concurrency}')
        if self.cycle_check not in CYCLE_CHECK_POLICIES:
            raise ConfigurationError(
                f"cycle_check must be one of {CYCLE_CHECK_POLICIES}, got {self.cycle_check!r}",
                path='/pipeline/cycle_check',
            )
        for name in ('binding_timeout_seconds', 'schema_compile_timeout_seconds'):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f'{name} must be positive or None, got {value}')

    @property
    def effective_reference_date(self) -> date:
        return self.reference_date or date.today()

    def is_invocation_capability(self, capability: str) -> bool:
        return any(capability.startswith(prefix) for prefix in self.invocation_capability_prefixes)

    @classmethod
    def from_params(cls, **kwargs: Any) -> 'PipelineConfig':
        """Create PipelineConfig from keyword parameters, coercing loose types."""
        params: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        known = set(cls.__dataclass_fields__) - {'extra'}
        for key, value in kwargs.items():
            if key in known:
                params[key] = value
            else:
                extra[key] = value
        try:
            if 'max_concurrency' in params:
                params['max_concurrency'] = int(params['max_concurrency'])
            for name in ('binding_timeout_seconds', 'schema_compile_timeout_seconds'):
                if params.get(name) is not None:
                    params[name] = float(params[name])
            for name in ('invocation_capability_prefixes', 'environment_names'):
                if name in params:
                    params[name] = tuple(params[name] or ())
            if 'allow_per_environment_fallback' in params:
                params['allow_per_environment_fallback'] = _as_bool(params['allow_per_environment_fallback'])
            if 'default_compliance_framework' in params:
                params['default_compliance_framework'] = ComplianceFramework.parse(params['default_compliance_framework'])
            if isinstance(params.get('reference_date'), str):
                params['reference_date'] = date.fromisoformat(params['reference_date'])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f'Invalid pipeline configuration: {exc}') from exc
        return cls(extra=extra, **params)

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> 'PipelineConfig':
        """Build from a loaded resolver config; reads its 'pipeline' section."""
        section = config.get('pipeline', config) if isinstance(config, Mapping) else None
        if not isinstance(section, Mapping):
            raise ConfigurationError("Resolver configuration has no 'pipeline' mapping")
        return cls.from_params(**dict(section))


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)
