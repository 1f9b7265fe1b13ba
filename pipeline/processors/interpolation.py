"""
Environment interpolation tokens.

``${env:key}`` looks *key* up in the target environment's defaults (dotted
keys descend into nested maps) and ``${envIs:name}`` is True when the target
environment is *name*. A string made of exactly one token keeps the value's
native type; tokens embedded in text are stringified.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Final, List, Mapping, Tuple

from pipeline.exceptions import UnresolvedInterpolationError

logger = logging.getLogger(__name__)

TOKEN_RE: Final[re.Pattern[str]] = re.compile(r'\$\{([A-Za-z][A-Za-z0-9_]*):([^}]*)\}')

_MISSING = object()


def _lookup(defaults: Mapping[str, Any], key: str) -> Any:
    if key in defaults:
        return defaults[key]
    node: Any = defaults
    for part in key.split('.'):
        if not isinstance(node, Mapping) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if value is None:
        return ''
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True)
    return str(value)


class Interpolator:
    def __init__(self, environment: str, env_defaults: Mapping[str, Any]) -> None:
        self.environment = environment
        self.env_defaults = env_defaults

    def resolve_string(self, text: str, path: str = '') -> Any:
        whole = TOKEN_RE.fullmatch(text)
        if whole:
            return self._evaluate(whole.group(1), whole.group(2), path)
        return TOKEN_RE.sub(lambda m: _stringify(self._evaluate(m.group(1), m.group(2), path)), text)

    def _evaluate(self, prefix: str, key: str, path: str) -> Any:
        key = key.strip()
        if prefix == 'env':
            value = _lookup(self.env_defaults, key)
            if value is _MISSING:
                raise UnresolvedInterpolationError(
                    f"Undefined environment key '{key}' for environment '{self.environment}'",
                    key=key, path=path,
                )
            logger.debug("Resolved ${env:%s} at %s", key, path)
            return value
        if prefix == 'envIs':
            return self.environment == key
        raise UnresolvedInterpolationError(
            f"Unknown interpolation token '${{{prefix}:{key}}}'", key=f'{prefix}:{key}', path=path, rule='unknown-token',
        )


def find_unresolved_tokens(value: Any, path: str = '') -> List[Tuple[str, str]]:
    """Every (path, token) still present in *value*."""
    found: List[Tuple[str, str]] = []
    if isinstance(value, Mapping):
        for k, v in value.items():
            found.extend(find_unresolved_tokens(v, f'{path}/{k}'))
    elif isinstance(value, (list, tuple)):
        for i, v in enumerate(value):
            found.extend(find_unresolved_tokens(v, f'{path}/{i}'))
    elif isinstance(value, str):
        found.extend((path, m.group(0)) for m in TOKEN_RE.finditer(value))
    return found
