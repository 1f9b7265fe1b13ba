"""
Schema Validator
────────────────
* Validates a raw tree against the composed master schema (Draft 2020-12)
* Collects every violation; sorted by path, then rule
* Each violation names its owning component when the path is under one
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from jsonschema.exceptions import ValidationError as JsonSchemaError
from pydantic import ValidationError as ModelValidationError

from core.schema_cache import SchemaCache
from domain.manifest import Manifest
from pipeline.exceptions import SchemaValidationError, SchemaViolation
from pipeline.processors.schema_composer import DEFERRABLE_MARKER, MasterSchema

logger = logging.getLogger(__name__)

_MAX_VALUE_LENGTH = 80
_SCALARS = (str, int, float, bool)


def json_pointer(parts: Iterable[Any]) -> str:
    escaped = [str(p).replace('~', '~0').replace('/', '~1') for p in parts]
    return '/' + '/'.join(escaped) if escaped else ''


def locate_component(tree: Any, path: Sequence[Any]) -> Tuple[Optional[str], Optional[str]]:
    """Walk *path* back to the nearest ``components[i]`` and return its (name, type)."""
    if len(path) < 2 or path[0] != 'components' or not isinstance(path[1], int):
        return None, None
    components = tree.get('components') if isinstance(tree, dict) else None
    if not isinstance(components, list) or not 0 <= path[1] < len(components):
        return None, None
    component = components[path[1]]
    if not isinstance(component, dict):
        return None, None
    name = component.get('name')
    ctype = component.get('type')
    return (name if isinstance(name, str) else None, ctype if isinstance(ctype, str) else None)


def _safe_value(value: Any) -> Any:
    if not isinstance(value, _SCALARS):
        return None
    if isinstance(value, str) and len(value) > _MAX_VALUE_LENGTH:
        return value[:_MAX_VALUE_LENGTH] + '...'
    return value


def config_violations(
    errors: Iterable[JsonSchemaError],
    base_path: str,
    component_name: Optional[str] = None,
    component_type: Optional[str] = None,
) -> List[SchemaViolation]:
    """Violations found in one component's config, with paths rooted at *base_path*."""
    violations = [
        SchemaViolation(
            path=base_path + json_pointer(error.absolute_path),
            rule=str(error.validator),
            message=error.message,
            value=_safe_value(error.instance),
            allowed_values=list(error.validator_value) if error.validator == 'enum' else None,
            component_name=component_name,
            component_type=component_type,
        )
        for error in errors
    ]
    return sorted(violations, key=lambda v: (v.path, v.rule, v.message))


class SchemaValidator:
    """Validate manifests using validators compiled once and kept in a ``SchemaCache``."""

    def __init__(self, schema_cache: Optional[SchemaCache] = None, compile_timeout_seconds: Optional[float] = None) -> None:
        self.schema_cache = schema_cache if schema_cache is not None else SchemaCache()
        self.compile_timeout_seconds = compile_timeout_seconds

    async def validate(self, raw_tree: Any, master_schema: MasterSchema) -> Manifest:
        validator = await self.schema_cache.get_validator(
            master_schema.schema, key=master_schema.fingerprint, timeout_seconds=self.compile_timeout_seconds,
        )
        violations = self.collect_violations(raw_tree, validator.iter_errors(raw_tree), master_schema)
        if violations:
            logger.info('Schema validation failed with %d violation(s)', len(violations))
            raise SchemaValidationError(violations)

        try:
            manifest = Manifest.model_validate(raw_tree)
        except ModelValidationError as exc:
            raise SchemaValidationError(self._model_violations(raw_tree, exc)) from exc

        logger.debug('✓ Schema validation passed for service %s', manifest.service)
        return manifest

    # ------------------------------------------------------------------ #
    # Violation building
    # ------------------------------------------------------------------ #
    def collect_violations(self, tree: Any, errors: Iterable[JsonSchemaError], master_schema: MasterSchema) -> List[SchemaViolation]:
        violations: List[SchemaViolation] = []
        for error in errors:
            self._collect(tree, error, master_schema, violations)

        unique = {}
        for v in violations:
            unique.setdefault((v.path, v.rule, v.message), v)
        return sorted(unique.values(), key=lambda v: (v.path, v.rule, v.message))

    def _collect(self, tree: Any, error: JsonSchemaError, master_schema: MasterSchema, out: List[SchemaViolation]) -> None:
        # A deferrable property failed both ways: report the declared schema's errors.
        if error.validator == 'anyOf' and isinstance(error.schema, dict) and error.schema.get(DEFERRABLE_MARKER):
            declared = [e for e in error.context if e.relative_schema_path and e.relative_schema_path[0] == 0]
            if declared:
                for sub in declared:
                    self._collect(tree, sub, master_schema, out)
                return

        path = list(error.absolute_path)
        pointer = json_pointer(path)
        name, ctype = locate_component(tree, path)
        message = error.message
        allowed = None

        if error.validator == 'enum':
            allowed = list(error.validator_value)
            if self._is_component_type_path(path):
                allowed = list(master_schema.component_types)
                message = (
                    f"Unknown component type {error.instance!r}. "
                    f"Allowed types: {', '.join(allowed) if allowed else '(none registered)'}"
                )
        elif error.validator == 'const':
            allowed = [error.validator_value]
        elif error.validator == 'oneOf' and len(path) >= 4 and path[2] == 'binds':
            message = "A bind must declare exactly one of 'to' or 'select'"

        out.append(SchemaViolation(
            path=pointer,
            rule=str(error.validator),
            message=message,
            value=_safe_value(error.instance),
            allowed_values=allowed,
            component_name=name,
            component_type=ctype,
        ))

    @staticmethod
    def _is_component_type_path(path: Sequence[Any]) -> bool:
        return len(path) == 3 and path[0] == 'components' and path[2] == 'type'

    @staticmethod
    def _model_violations(tree: Any, exc: ModelValidationError) -> List[SchemaViolation]:
        violations = []
        for err in exc.errors():
            path = [p for p in err.get('loc', ())]
            name, ctype = locate_component(tree, path)
            violations.append(SchemaViolation(
                path=json_pointer(path),
                rule='model',
                message=err.get('msg', 'invalid value'),
                value=_safe_value(err.get('input')),
                component_name=name,
                component_type=ctype,
            ))
        return sorted(violations, key=lambda v: (v.path, v.rule, v.message))
