# domain/fingerprint.py
import hashlib
import json
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

logger = logging.getLogger(__name__)


def _normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_normalize(v) for v in value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, 'model_dump'):
        return _normalize(value.model_dump(mode='json', by_alias=True))
    return value


def canonical_json(value: Any) -> str:
    """
    Canonical JSON text: sorted keys, no insignificant whitespace, UTF-8
    characters kept as-is. Equal values always produce equal text.
    """
    return json.dumps(_normalize(value), sort_keys=True, separators=(',', ':'), ensure_ascii=False)


def fingerprint(value: Any) -> str:
    """SHA-256 hex digest of the canonical JSON of *value*."""
    digest = hashlib.sha256(canonical_json(value).encode('utf-8')).hexdigest()
    logger.debug('Computed fingerprint %s…', digest[:12])
    return digest
