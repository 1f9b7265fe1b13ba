# manifold\infrastructure\capabilities\static_capability_provider.py
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import yaml

from core.cancellation import CancellationToken
from domain.capabilities import CapabilityData, parse_capability_data
from domain.ports.capability_provider_port import CapabilityProviderPort
from pipeline.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CapabilityRecord = Union[CapabilityData, Mapping[str, Any]]


class StaticCapabilityProvider(CapabilityProviderPort):
    """
    In-memory Capability Data published ahead of resolution.

    Records are keyed by (component name, capability type). ``latency_seconds``
    simulates a slow backing store; the wait is abandoned when the
    cancellation token fires.
    """

    def __init__(self, records: Optional[Mapping[str, Iterable[CapabilityRecord]]] = None, latency_seconds: float = 0.0) -> None:
        self._records: Dict[Tuple[str, str], CapabilityData] = {}
        self.latency_seconds = latency_seconds
        self.calls = 0
        for component_name, entries in (records or {}).items():
            for entry in entries:
                self.publish(component_name, entry)
        logger.debug('StaticCapabilityProvider constructed with %d record(s)', len(self._records))

    def publish(self, component_name: str, data: CapabilityRecord) -> CapabilityData:
        record = parse_capability_data(data)
        key = (component_name, record.type)
        if key in self._records:
            logger.warning("Capability data for %s replaced", key)
        self._records[key] = record
        return record

    def published(self) -> Dict[Tuple[str, str], CapabilityData]:
        return dict(self._records)

    async def get_capability_data(
        self,
        component_name: str,
        capability: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Optional[CapabilityData]:
        self.calls += 1
        if cancel_token is not None:
            cancel_token.raise_if_cancelled('binding')
        if self.latency_seconds > 0:
            await self._sleep(cancel_token)
        return self._records.get((component_name, capability))

    async def _sleep(self, cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is None:
            await asyncio.sleep(self.latency_seconds)
            return
        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            await asyncio.wait({waiter}, timeout=self.latency_seconds)
        finally:
            waiter.cancel()
        cancel_token.raise_if_cancelled('binding')

    # ------------------------------------------------------------------ #
    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], **kwargs: Any) -> 'StaticCapabilityProvider':
        """
        Accepts ``{component: [record, ...]}`` or
        ``{component: {capability: record-without-type}}``.
        """
        records: Dict[str, list] = {}
        for component_name, entries in (data or {}).items():
            if isinstance(entries, Mapping):
                entries = [{'type': cap, **(body or {})} for cap, body in entries.items()]
            if not isinstance(entries, list):
                raise ConfigurationError(f"Capability data for '{component_name}' must be a list or mapping")
            records[component_name] = entries
        return cls(records, **kwargs)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], **kwargs: Any) -> 'StaticCapabilityProvider':
        path = Path(path)
        try:
            with path.open('r', encoding='utf-8') as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f'Failed to load capability data from {path}: {exc}') from exc
        if not isinstance(data, Mapping):
            raise ConfigurationError(f'Capability data file {path} must contain a mapping')
        provider = cls.from_mapping(data, **kwargs)
        logger.info('✓ Loaded %d capability record(s) from %s', len(provider._records), path.name)
        return provider
