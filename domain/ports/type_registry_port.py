# domain/ports/type_registry_port.py
from __future__ import annotations
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class ComponentTypeRegistryPort(Protocol):
    """
    Source of truth for the set of valid component ``type`` values and the
    JSON schema each type's ``config`` must satisfy.
    """

    def get_config_schema(self, component_type: str) -> Optional[Dict[str, Any]]:
        """Return the config schema for *component_type*, or None when unknown."""
        ...

    def list_types(self) -> List[str]:
        """Known types, in registration order."""
        ...
