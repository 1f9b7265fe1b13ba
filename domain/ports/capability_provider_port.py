"""Boundary to the external synthesis step that publishes Capability Data."""
from __future__ import annotations

import typing as _t
from typing import Any, Mapping, Optional, Protocol, Union, runtime_checkable

if _t.TYPE_CHECKING:  # pragma: no cover
    from core.cancellation import CancellationToken
    from domain.capabilities import CapabilityData


@runtime_checkable
class CapabilityProviderPort(Protocol):
    """
    Read-only access to Capability Data already published for a component.

    The resolver never triggers synthesis through this port. Implementations
    that perform I/O must honor *cancel_token* and return None when nothing
    has been published for (component_name, capability).
    """

    async def get_capability_data(
        self,
        component_name: str,
        capability: str,
        cancel_token: Optional["CancellationToken"] = None,
    ) -> Optional[Union["CapabilityData", Mapping[str, Any]]]:
        ...
