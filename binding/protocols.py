# binding/protocols.py
from __future__ import annotations

from typing import Protocol, Tuple, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from .models import BindingContext, BindingDraft


@runtime_checkable
class BindingStrategy(Protocol):
    strategy_id: str
    # '*' in source_types registers the strategy as the wildcard for its capabilities.
    source_types: Tuple[str, ...]
    capabilities: Tuple[str, ...]

    async def bind(self, context: "BindingContext") -> "BindingDraft": ...
