import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pipeline.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SCHEMA_SUFFIX = '.schema.json'


class ComponentTypeRegistry:
    """
    In-memory registry of component types and their config schemas.
    Registration order is kept; it defines the order of the composed `type` enum.
    """

    def __init__(self, schemas: Optional[Union[Dict[str, Dict[str, Any]], Iterable[Tuple[str, Dict[str, Any]]]]] = None):
        self._schemas: Dict[str, Dict[str, Any]] = {}
        self._sources: Dict[str, str] = {}
        self._registration_order: List[str] = []
        if schemas:
            items = schemas.items() if isinstance(schemas, dict) else schemas
            for component_type, schema in items:
                self.register(component_type, schema)
        logger.debug("ComponentTypeRegistry initialized with %d type(s)", len(self._registration_order))

    def register(self, component_type: str, schema: Dict[str, Any], source: str = '<memory>') -> bool:
        """
        Register *schema* for *component_type*. The first registration for a
        type wins; later ones are ignored with a warning. Returns True when
        the schema was stored.
        """
        if not isinstance(component_type, str) or not component_type:
            raise ConfigurationError(f"Component type must be a non-empty string, got {component_type!r}", stage='registry')
        if not isinstance(schema, dict):
            raise ConfigurationError(f"Schema for component type '{component_type}' must be a JSON object", stage='registry')

        if component_type in self._schemas:
            logger.warning(
                f"Duplicate schema for component type '{component_type}' from {source} ignored; "
                f"keeping the one from {self._sources[component_type]}"
            )
            return False

        self._schemas[component_type] = copy.deepcopy(schema)
        self._sources[component_type] = source
        self._registration_order.append(component_type)
        logger.debug(f"Registered component type '{component_type}' from {source}")
        return True

    def get_config_schema(self, component_type: str) -> Optional[Dict[str, Any]]:
        schema = self._schemas.get(component_type)
        return copy.deepcopy(schema) if schema is not None else None

    def list_types(self) -> List[str]:
        return list(self._registration_order)

    def items(self) -> List[Tuple[str, Dict[str, Any]]]:
        return [(t, copy.deepcopy(self._schemas[t])) for t in self._registration_order]

    def __contains__(self, component_type: str) -> bool:
        return component_type in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    def load_directory(self, directory: Union[str, Path]) -> int:
        """
        Load every ``<type>.schema.json`` file in *directory* (sorted by name).
        The type is taken from ``x-component-type`` when present, else from the
        file name. Returns the number of newly registered types.
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise ConfigurationError(f"Component schema directory not found: {directory}", stage='registry')

        loaded = 0
        for path in sorted(directory.glob(f'*{SCHEMA_SUFFIX}')):
            try:
                schema = json.loads(path.read_text(encoding='utf-8'))
            except (OSError, ValueError) as exc:
                raise ConfigurationError(f"Failed to load component schema {path}: {exc}", stage='registry') from exc
            component_type = schema.get('x-component-type') or path.name[: -len(SCHEMA_SUFFIX)]
            if self.register(component_type, schema, source=str(path)):
                loaded += 1

        logger.info(f"✓ Loaded {loaded} component schema(s) from {directory}")
        return loaded

    @classmethod
    def from_directory(cls, directory: Union[str, Path]) -> 'ComponentTypeRegistry':
        registry = cls()
        registry.load_directory(directory)
        return registry

    @classmethod
    def with_shipped_schemas(cls) -> 'ComponentTypeRegistry':
        from schemas import COMPONENT_SCHEMA_DIR
        return cls.from_directory(COMPONENT_SCHEMA_DIR)
