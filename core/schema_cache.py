from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from domain.fingerprint import fingerprint
from pipeline.exceptions import ConfigurationError, ResolutionTimeoutError

logger = logging.getLogger(__name__)


class SchemaCache:
    """
    Compiled-validator cache keyed by master-schema fingerprint.

    Built once per process and handed to whoever validates manifests. Entries
    are only dropped by an explicit ``invalidate()``.
    """

    def __init__(self, compile_timeout_seconds: Optional[float] = None) -> None:
        self._validators: Dict[str, Draft202012Validator] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()
        self.compile_timeout_seconds = compile_timeout_seconds
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._validators)

    def __contains__(self, key: str) -> bool:
        return key in self._validators

    @staticmethod
    def _compile(schema: Mapping[str, Any]) -> Draft202012Validator:
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError as exc:
            raise ConfigurationError(
                f'Composed master schema is invalid: {exc.message}',
                path='/' + '/'.join(str(p) for p in exc.absolute_path),
                stage='schema-composition',
            ) from exc
        return Draft202012Validator(schema)

    async def get_validator(
        self,
        schema: Mapping[str, Any],
        key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Draft202012Validator:
        key = key or fingerprint(schema)
        async with self._lock:
            cached = self._validators.get(key)
            if cached is not None:
                self.hits += 1
                logger.debug('Schema cache hit for %s…', key[:12])
                return cached
            task = self._in_flight.get(key)
            if task is None:
                self.misses += 1
                logger.debug('Schema cache miss for %s…, compiling', key[:12])
                task = asyncio.ensure_future(asyncio.to_thread(self._compile, schema))
                self._in_flight[key] = task

        budget = timeout_seconds if timeout_seconds is not None else self.compile_timeout_seconds
        try:
            validator = await asyncio.wait_for(asyncio.shield(task), timeout=budget)
        except asyncio.TimeoutError as exc:
            raise ResolutionTimeoutError(
                f'Schema compilation exceeded {budget}s', timeout_seconds=budget, stage='schema-validation',
            ) from exc
        finally:
            if task.done():
                async with self._lock:
                    self._in_flight.pop(key, None)

        async with self._lock:
            # Write-once: the first compiled validator for a key is kept.
            return self._validators.setdefault(key, validator)

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            logger.info('Schema cache cleared (%d entries)', len(self._validators))
            self._validators.clear()
        else:
            self._validators.pop(key, None)

    def stats(self) -> Dict[str, int]:
        return {'entries': len(self._validators), 'hits': self.hits, 'misses': self.misses}
