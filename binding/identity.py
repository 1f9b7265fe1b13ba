from __future__ import annotations

from typing import Any, Mapping, Tuple

from domain.compliance import ComplianceFramework
from domain.fingerprint import fingerprint
from domain.manifest import AccessLevel

BINDING_ID_PREFIX = 'bnd-'

BindingKey = Tuple[str, str, str, str, str, str]


def binding_key(
    source: str,
    target: str,
    capability: str,
    access: AccessLevel | str,
    framework: ComplianceFramework | str,
    environment: str,
) -> BindingKey:
    """The six inputs that identify a binding, normalized to plain strings."""
    access_value = access.value if isinstance(access, AccessLevel) else str(access)
    framework_value = ComplianceFramework.parse(framework).value
    return (source, target, capability, access_value, framework_value, environment)


def compute_binding_id(
    source: str,
    target: str,
    capability: str,
    access: AccessLevel | str,
    framework: ComplianceFramework | str,
    environment: str,
) -> str:
    """
    Stable identifier: SHA-256 over the canonical JSON of the binding key.
    Identical inputs always give the same id; changing any input changes it.
    """
    key = binding_key(source, target, capability, access, framework, environment)
    return BINDING_ID_PREFIX + fingerprint(list(key))[:32]


def directive_digest(env: Mapping[str, str], options: Mapping[str, Any], path: str = '') -> str:
    """
    Short digest of what shapes a result without being part of its identity:
    the env renames, the options and the declaring path. Two binds with the
    same id but different directives never share a cached result.
    """
    return fingerprint({'env': dict(env), 'options': dict(options), 'path': path})[:16]
