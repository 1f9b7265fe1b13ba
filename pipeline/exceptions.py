"""
Exception classes for the manifest resolution pipeline.

Every error raised by a stage carries the stage identifier, a JSON-pointer
style path into the manifest, a machine rule identifier and, where one
applies, the owning component's name and type. None of them hold mutable
state after construction.

Import your exceptions like:
    from pipeline.exceptions import ResolutionError, ParseError, ...
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple


class ResolutionError(RuntimeError):
    """
    Base exception for all manifest resolution errors.

    Raised when a stage cannot produce a fully valid output. A resolution
    attempt never yields partial output: the first raised error ends it.
    """

    stage: str = 'resolution'
    rule: str = 'resolution-error'

    def __init__(
        self,
        message: str,
        *,
        path: str = '',
        rule: Optional[str] = None,
        stage: Optional[str] = None,
        component_name: Optional[str] = None,
        component_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.path = path
        if rule is not None:
            self.rule = rule
        if stage is not None:
            self.stage = stage
        self.component_name = component_name
        self.component_type = component_type

    def __str__(self) -> str:
        base_msg = super().__str__()

        context_parts = [f"stage={self.stage}", f"rule={self.rule}"]
        if self.path:
            context_parts.append(f"path={self.path}")
        if self.component_name:
            context_parts.append(f"component={self.component_name}")
        if self.component_type:
            context_parts.append(f"type={self.component_type}")

        return f"{base_msg} ({', '.join(context_parts)})"

    def to_dict(self) -> Dict[str, Any]:
        """Structured rendering for callers that report errors as data."""
        return {
            'stage': self.stage,
            'path': self.path,
            'rule': self.rule,
            'message': self.message,
            'componentName': self.component_name,
            'componentType': self.component_type,
        }


class ConfigurationError(ResolutionError):
    """
    Raised when resolver configuration or default layers cannot be loaded.
    """
    stage = 'configuration'
    rule = 'invalid-configuration'


class ParseError(ResolutionError):
    """
    Raised when manifest text is not a single, unambiguous document.

    `location` is a (line, column) pair, both 1-based, when the parser
    could determine it.
    """
    stage = 'parse'
    rule = 'syntax'

    def __init__(self, message: str, location: Optional[Tuple[int, int]] = None, source: Optional[str] = None, rule: Optional[str] = None):
        super().__init__(message, rule=rule)
        self.location = location
        self.source = source

    def __str__(self) -> str:
        base_msg = super().__str__()
        where = []
        if self.source:
            where.append(str(self.source))
        if self.location:
            where.append(f"line {self.location[0]}, column {self.location[1]}")
        if where:
            return f"{base_msg} at {':'.join(where)}"
        return base_msg


class SchemaViolation:
    """One schema rule broken by the manifest. Not an exception by itself."""

    __slots__ = ('path', 'rule', 'message', 'value', 'allowed_values', 'component_name', 'component_type')

    def __init__(
        self,
        path: str,
        rule: str,
        message: str,
        value: Any = None,
        allowed_values: Optional[Sequence[Any]] = None,
        component_name: Optional[str] = None,
        component_type: Optional[str] = None,
    ):
        self.path = path
        self.rule = rule
        self.message = message
        self.value = value
        self.allowed_values = list(allowed_values) if allowed_values is not None else None
        self.component_name = component_name
        self.component_type = component_type

    def __repr__(self) -> str:
        return f"SchemaViolation(path='{self.path}', rule='{self.rule}', message='{self.message}')"

    def __str__(self) -> str:
        owner = ''
        if self.component_name or self.component_type:
            owner = f" [component {self.component_name or '?'} ({self.component_type or '?'})]"
        return f"{self.path or '/'}: {self.message} (rule={self.rule}){owner}"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'path': self.path,
            'rule': self.rule,
            'message': self.message,
        }
        if self.value is not None:
            data['value'] = self.value
        if self.allowed_values is not None:
            data['allowedValues'] = list(self.allowed_values)
        if self.component_name is not None:
            data['componentName'] = self.component_name
        if self.component_type is not None:
            data['componentType'] = self.component_type
        return data


class SchemaValidationError(ResolutionError):
    """
    Raised when a manifest violates the composed master schema, or when a
    component's config still breaks its type's schema after hydration (then
    with stage ``hydration``).

    All independent violations are collected and reported together.
    """
    stage = 'schema-validation'
    rule = 'schema'

    def __init__(self, violations: Sequence[SchemaViolation], stage: Optional[str] = None):
        self.violations: List[SchemaViolation] = list(violations)
        first = self.violations[0] if self.violations else None
        super().__init__(
            f"Manifest failed schema validation with {len(self.violations)} violation(s)",
            stage=stage,
            path=first.path if first else '',
            rule=first.rule if first else None,
            component_name=first.component_name if first else None,
            component_type=first.component_type if first else None,
        )

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.violations:
            error_list = "\n  - ".join(str(v) for v in self.violations)
            return f"{base_msg}\nSchema violations:\n  - {error_list}"
        return base_msg


class UnresolvedInterpolationError(ResolutionError):
    """
    Raised when an interpolation token or per-environment value cannot be
    resolved for the target environment. `key` names the missing key.
    """
    stage = 'hydration'
    rule = 'unresolved-interpolation'

    def __init__(self, message: str, key: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.key = key


class ManifestReferenceError(ResolutionError):
    """
    Raised when a bind target cannot be resolved: a missing `to` target,
    a selector with no match or an ambiguous selector.
    """
    stage = 'semantic-validation'
    rule = 'unresolved-reference'

    def __init__(self, message: str, candidates: Optional[Sequence[str]] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.candidates = list(candidates or [])


class CircularDependencyError(ResolutionError):
    """Raised when binds form a cycle. `cycle` lists the involved components."""
    stage = 'semantic-validation'
    rule = 'circular-dependency'

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(
            f"Circular dependency detected: {' -> '.join(self.cycle)}",
            path='/components',
            component_name=self.cycle[0] if self.cycle else None,
        )


class GovernanceValidationError(ResolutionError):
    """Raised when a suppression or patch entry is incomplete or expired."""
    stage = 'semantic-validation'
    rule = 'governance'


class BindingResolutionError(ResolutionError):
    """Base for failures while resolving a single binding."""
    stage = 'binding'
    rule = 'binding-error'

    def __init__(self, message: str, source: Optional[str] = None, target: Optional[str] = None, capability: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault('component_name', source)
        super().__init__(message, **kwargs)
        self.source = source
        self.target = target
        self.capability = capability


class NoStrategyFoundError(BindingResolutionError):
    """Raised when neither an exact nor a wildcard strategy handles a binding."""
    rule = 'no-strategy'

    def __init__(self, source_type: str, capability: str, **kwargs: Any):
        kwargs.setdefault('component_type', source_type)
        super().__init__(
            f"No binding strategy registered for source type '{source_type}' and capability '{capability}'",
            capability=capability,
            **kwargs,
        )
        self.source_type = source_type


class ComplianceViolationError(BindingResolutionError):
    """Raised when a binding breaks a requirement of the active framework."""
    rule = 'compliance-violation'

    def __init__(self, message: str, requirement: str, rule_id: str, framework: str, **kwargs: Any):
        super().__init__(message, rule=rule_id, **kwargs)
        self.requirement = requirement
        self.framework = framework


class MissingCapabilityDataError(BindingResolutionError):
    """Raised when the target has not published data for the capability."""
    rule = 'missing-capability-data'


class CapabilityMismatchError(BindingResolutionError):
    """Raised when published capability data has a different type than requested."""
    rule = 'capability-mismatch'


class StrategyContractError(BindingResolutionError):
    """Raised when a strategy returns an unscoped or malformed grant."""
    rule = 'strategy-contract'


class ResolutionTimeoutError(ResolutionError):
    """Raised when schema compilation or a binding exceeds its time budget."""
    rule = 'timeout'

    def __init__(self, message: str, timeout_seconds: float, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.timeout_seconds = timeout_seconds


class ResolutionCancelledError(ResolutionError):
    """Raised when a cancellation signal is observed at a checkpoint."""
    rule = 'cancelled'


class StageExecutionError(ResolutionError):
    """
    Raised when a stage fails with an unexpected exception.

    Wraps the original error and records which stage failed.
    """
    rule = 'stage-execution'

    def __init__(self, message: str, stage: str, original_error: Optional[Exception] = None):
        super().__init__(message, stage=stage)
        self.original_error = original_error

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.original_error:
            return f"{base_msg}\nCaused by: {type(self.original_error).__name__}: {self.original_error}"
        return base_msg


__all__ = [
    'ResolutionError',
    'ConfigurationError',
    'ParseError',
    'SchemaViolation',
    'SchemaValidationError',
    'UnresolvedInterpolationError',
    'ManifestReferenceError',
    'CircularDependencyError',
    'GovernanceValidationError',
    'BindingResolutionError',
    'NoStrategyFoundError',
    'ComplianceViolationError',
    'MissingCapabilityDataError',
    'CapabilityMismatchError',
    'StrategyContractError',
    'ResolutionTimeoutError',
    'ResolutionCancelledError',
    'StageExecutionError',
]
