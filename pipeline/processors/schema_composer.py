"""
Schema Composer
───────────────
* Base manifest schema + per-type component config schemas → one master schema
* Each component schema lives under ``$defs["componentConfig.<type>"]``
* ``$defs.component.properties.type`` is restricted to the discovered types
* One ``if type == T then config: <T schema>`` rule per type, config required
* Config properties also accept deferred values (whole tokens, per-environment
  maps); the declared schemas are kept to re-check configs after hydration
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from domain.fingerprint import fingerprint
from domain.ports.type_registry_port import ComponentTypeRegistryPort
from pipeline.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

COMPONENT_DEF = 'component'
CONFIG_DEF_PREFIX = 'componentConfig.'
DEFERRED_DEF = 'deferredValue'
# Marks the anyOf wrappers added around config properties.
DEFERRABLE_MARKER = 'x-deferrable'

# A value made of exactly one interpolation token.
WHOLE_TOKEN_PATTERN = '^\\$\\{[A-Za-z][A-Za-z0-9_]*:[^}]*\\}$'
# Strings may also embed tokens in surrounding text.
EMBEDDED_TOKEN_PATTERN = '\\$\\{[A-Za-z][A-Za-z0-9_]*:[^}]*\\}'
_ENV_NAME_PATTERN = '^[A-Za-z][A-Za-z0-9_-]*$'


def deferred_value_schema(environment_keys: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """
    Values only known after hydration: a whole interpolation token, or a
    per-environment map keyed by *environment_keys* (any identifier-like key
    when none are given). The resolved value is checked against the declared
    schema once hydration has run.
    """
    names = {'pattern': _ENV_NAME_PATTERN} if environment_keys is None else {'enum': sorted(set(environment_keys))}
    return {
        'anyOf': [
            {'type': 'string', 'pattern': WHOLE_TOKEN_PATTERN},
            {'type': 'object', 'minProperties': 1, 'propertyNames': names},
        ]
    }


ComponentSchemas = Union[Mapping[str, Mapping[str, Any]], Iterable[Tuple[str, Mapping[str, Any]]]]


def config_def_key(component_type: str) -> str:
    return f'{CONFIG_DEF_PREFIX}{component_type}'


@dataclass(frozen=True)
class MasterSchema:
    schema: Dict[str, Any]
    fingerprint: str
    component_types: Tuple[str, ...] = field(default_factory=tuple)
    declared_configs: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def config_schema(self, component_type: str) -> Optional[Dict[str, Any]]:
        return self.schema.get('$defs', {}).get(config_def_key(component_type))

    def declared_config_schema(self, component_type: str) -> Optional[Dict[str, Any]]:
        """The type's config schema as registered, without deferred-value branches."""
        return self.declared_configs.get(component_type)


def load_base_schema(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    if path is None:
        from schemas import BASE_MANIFEST_SCHEMA
        path = BASE_MANIFEST_SCHEMA
    path = Path(path)
    try:
        return json.loads(path.read_text(encoding='utf-8'))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f'Failed to load base manifest schema {path}: {exc}', stage='schema-composition') from exc


class SchemaComposer:
    """Build and memoize master schemas."""

    def __init__(self, allow_deferred_values: bool = True) -> None:
        self.allow_deferred_values = allow_deferred_values
        self._compositions: Dict[str, MasterSchema] = {}
        self._last: Optional[MasterSchema] = None
        self._duplicates_ignored = 0

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def compose(
        self,
        base_schema: Mapping[str, Any],
        component_schemas: ComponentSchemas,
        environment_keys: Optional[Iterable[str]] = None,
    ) -> MasterSchema:
        """
        *environment_keys* limits the keys a per-environment map may use
        (environment names plus the fallback key); ``None`` accepts any
        identifier-like key.
        """
        ordered = self._dedupe(component_schemas)
        env_keys = sorted(set(environment_keys)) if environment_keys is not None else None
        key = fingerprint({
            'base': base_schema,
            'components': [[t, s] for t, s in ordered],
            'deferred': self.allow_deferred_values,
            'environmentKeys': env_keys,
        })
        cached = self._compositions.get(key)
        if cached is not None:
            logger.debug('Reusing composed master schema %s…', cached.fingerprint[:12])
            self._last = cached
            return cached

        master, declared = self._build(base_schema, ordered, env_keys)
        composed = MasterSchema(
            schema=master,
            fingerprint=fingerprint(master),
            component_types=tuple(t for t, _ in ordered),
            declared_configs=declared,
        )
        self._compositions[key] = composed
        self._last = composed
        logger.info('✓ Composed master schema with %d component type(s)', len(ordered))
        return composed

    def compose_from_registry(
        self,
        registry: ComponentTypeRegistryPort,
        base_schema: Optional[Mapping[str, Any]] = None,
        environment_keys: Optional[Iterable[str]] = None,
    ) -> MasterSchema:
        base = base_schema if base_schema is not None else load_base_schema()
        pairs: List[Tuple[str, Mapping[str, Any]]] = []
        for component_type in registry.list_types():
            schema = registry.get_config_schema(component_type)
            if schema is None:
                logger.warning(f"Registry lists type '{component_type}' without a config schema; skipped")
                continue
            pairs.append((component_type, schema))
        return self.compose(base, pairs, environment_keys)

    def has_component_schema(self, component_type: str) -> bool:
        return self._last is not None and component_type in self._last.component_types

    def loaded_component_types(self) -> List[str]:
        return list(self._last.component_types) if self._last else []

    def get_component_schema(self, component_type: str) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._last.config_schema(component_type)) if self._last else None

    def schema_stats(self) -> Dict[str, Any]:
        return {
            'componentSchemasLoaded': len(self.loaded_component_types()),
            'componentTypes': self.loaded_component_types(),
            'compositionsCached': len(self._compositions),
            'duplicatesIgnored': self._duplicates_ignored,
            'fingerprint': self._last.fingerprint if self._last else None,
        }

    # ------------------------------------------------------------------ #
    # Composition
    # ------------------------------------------------------------------ #
    def _dedupe(self, component_schemas: ComponentSchemas) -> List[Tuple[str, Mapping[str, Any]]]:
        items = component_schemas.items() if isinstance(component_schemas, Mapping) else component_schemas
        ordered: List[Tuple[str, Mapping[str, Any]]] = []
        seen = set()
        for component_type, schema in items:
            if component_type in seen:
                self._duplicates_ignored += 1
                logger.warning(f"Duplicate component schema for type '{component_type}' ignored (first registered wins)")
                continue
            if not isinstance(schema, Mapping):
                raise ConfigurationError(f"Component schema for type '{component_type}' must be a JSON object",
                                         stage='schema-composition')
            seen.add(component_type)
            ordered.append((component_type, schema))
        return ordered

    def _build(
        self,
        base_schema: Mapping[str, Any],
        ordered: List[Tuple[str, Mapping[str, Any]]],
        environment_keys: Optional[List[str]],
    ) -> Tuple[Dict[str, Any], Dict[str, Dict[str, Any]]]:
        master: Dict[str, Any] = copy.deepcopy(dict(base_schema))
        defs: Dict[str, Any] = master.setdefault('$defs', {})
        component_def = defs.get(COMPONENT_DEF)
        if not isinstance(component_def, dict) or not isinstance(component_def.get('properties'), dict):
            raise ConfigurationError(f"Base schema has no '$defs.{COMPONENT_DEF}' with properties", stage='schema-composition')

        if self.allow_deferred_values:
            defs[DEFERRED_DEF] = deferred_value_schema(environment_keys)

        declared: Dict[str, Dict[str, Any]] = {}
        rules: List[Dict[str, Any]] = list(component_def.get('allOf', []))
        for component_type, schema in ordered:
            config_schema = copy.deepcopy(dict(schema))
            config_schema.pop('$schema', None)
            config_schema.pop('$id', None)
            declared[component_type] = copy.deepcopy(config_schema)
            if self.allow_deferred_values:
                config_schema = self._allow_deferred(config_schema)
            defs[config_def_key(component_type)] = config_schema

            rules.append({
                'if': {'properties': {'type': {'const': component_type}}, 'required': ['type']},
                'then': {
                    'required': ['config'],
                    'properties': {'config': {'$ref': f'#/$defs/{config_def_key(component_type)}'}},
                },
            })

        type_schema = dict(component_def['properties'].get('type', {}))
        type_schema['type'] = 'string'
        type_schema['enum'] = [t for t, _ in ordered]
        type_schema.pop('minLength', None)
        component_def['properties']['type'] = type_schema
        component_def['allOf'] = rules
        return master, declared

    @staticmethod
    def _allow_deferred(schema: Dict[str, Any]) -> Dict[str, Any]:
        properties = schema.get('properties')
        if not isinstance(properties, dict):
            return schema
        wrapped: Dict[str, Any] = {}
        for name, sub in properties.items():
            branches = [sub, {'$ref': f'#/$defs/{DEFERRED_DEF}'}]
            if isinstance(sub, dict) and sub.get('type') == 'string':
                branches.append({'type': 'string', 'pattern': EMBEDDED_TOKEN_PATTERN})
            wrapped[name] = {'anyOf': branches, DEFERRABLE_MARKER: True}
        schema['properties'] = wrapped
        return schema
