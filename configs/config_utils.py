import copy
import logging
from typing import Any, Dict, Iterable, Mapping, Tuple

logger = logging.getLogger(__name__)


def _short(value: Any, limit: int = 80) -> str:
    text = str(value)
    return text[:limit] + ('...' if len(text) > limit else '')


class ConfigMerger:
    @staticmethod
    def merge(base: Mapping[str, Any], override: Mapping[str, Any], label: str = 'merge') -> Dict[str, Any]:
        """
        Deep merge of two config layers; returns a new dict.
        - Mappings on both sides merge key by key.
        - Anything else in override (lists included) replaces the base value.
        - Neither input is modified, and merge(x, x) == x.
        """
        if not isinstance(override, Mapping):
            logger.warning(f"[{label}] Layer is a {type(override).__name__}, not a mapping; keeping base")
            return copy.deepcopy(dict(base)) if isinstance(base, Mapping) else {}
        if not isinstance(base, Mapping):
            logger.warning(f"[{label}] Base is a {type(base).__name__}, not a mapping; using layer")
            return copy.deepcopy(dict(override))

        result: Dict[str, Any] = copy.deepcopy(dict(base))
        for key, incoming in override.items():
            current = result.get(key)
            if isinstance(current, Mapping) and isinstance(incoming, Mapping):
                result[key] = ConfigMerger.merge(current, incoming, f'{label}.{key}')
            elif key in result and current == incoming:
                continue
            else:
                if key in result:
                    logger.debug(f"[{label}] {key}: {_short(current)} -> {_short(incoming)}")
                result[key] = copy.deepcopy(incoming)
        return result


def merge_configs(base: Mapping[str, Any], *layers: Mapping[str, Any], context: str = 'layers') -> Dict[str, Any]:
    """Applies *layers* over *base* left to right; later layers win, empty ones are skipped."""
    result: Dict[str, Any] = copy.deepcopy(dict(base))
    for step, layer in enumerate(layers, 1):
        if layer:
            result = ConfigMerger.merge(result, layer, f'{context}#{step}')
    return result


def merge_labeled(layers: Iterable[Tuple[str, Mapping[str, Any]]], context: str = 'layers') -> Tuple[Dict[str, Any], Tuple[str, ...]]:
    """Merges (label, layer) pairs; also returns the labels of non-empty layers."""
    merged: Dict[str, Any] = {}
    contributed = []
    for label, layer in layers:
        if not layer:
            continue
        merged = ConfigMerger.merge(merged, layer, f'{context}:{label}')
        contributed.append(label)
    return merged, tuple(contributed)
