"""
Manifest Parser
───────────────
* YAML (safe loading) or JSON text → plain Python tree
* Ambiguity is an error: tab indentation, duplicate keys, several documents
* No semantic interpretation; an empty document parses to ``{}``
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from yaml.constructor import ConstructorError

from pipeline.exceptions import ParseError

logger = logging.getLogger(__name__)

_TIMESTAMP_TAG = 'tag:yaml.org,2002:timestamp'
_MERGE_TAG = 'tag:yaml.org,2002:merge'


# --------------------------------------------------------------------------- #
# Strict YAML loader
# --------------------------------------------------------------------------- #
class _StrictLoader(yaml.SafeLoader):
    """SafeLoader that rejects duplicate keys and keeps dates as text."""


# Dates stay strings so governance expiry values reach the schema as written.
_StrictLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_strict_mapping(loader: _StrictLoader, node: yaml.MappingNode) -> Dict[Any, Any]:
    seen: Dict[Any, yaml.Node] = {}
    for key_node, _ in node.value:
        if key_node.tag == _MERGE_TAG:
            continue
        key = loader.construct_object(key_node, deep=True)
        try:
            duplicate = key in seen
        except TypeError as exc:
            raise ConstructorError('while constructing a mapping', node.start_mark,
                                   f'found unhashable key ({exc})', key_node.start_mark)
        if duplicate:
            raise ConstructorError('while constructing a mapping', node.start_mark,
                                   f'found duplicate key {key!r}', key_node.start_mark)
        seen[key] = key_node

    loader.flatten_mapping(node)
    mapping: Dict[Any, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=True)
        mapping[key] = loader.construct_object(value_node, deep=True)
    return mapping


_StrictLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_strict_mapping)


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #
def _find_tab_indentation(text: str) -> Optional[Tuple[int, int]]:
    for line_no, line in enumerate(text.splitlines(), start=1):
        for col, ch in enumerate(line, start=1):
            if ch == '\t':
                return line_no, col
            if ch != ' ':
                break
    return None


def _reject_duplicate_pairs(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f'found duplicate key {key!r}')
        result[key] = value
    return result


def _looks_like_json(text: str) -> bool:
    stripped = text.lstrip()
    return stripped.startswith('{') or stripped.startswith('[')


# ===========================================================================
# Parser
# ===========================================================================
class ManifestParser:
    """Convert manifest text into a raw tree or fail with ``ParseError``."""

    def parse(self, text: Union[str, bytes], source: Optional[str] = None) -> Any:
        if isinstance(text, bytes):
            try:
                text = text.decode('utf-8')
            except UnicodeDecodeError as exc:
                raise ParseError(f'Manifest is not valid UTF-8: {exc.reason}', source=source) from exc

        if not text.strip():
            logger.debug('Empty manifest%s parsed to an empty tree', f' {source}' if source else '')
            return {}

        tree = self._parse_json(text, source) if _looks_like_json(text) else self._parse_yaml(text, source)
        if tree is None:
            tree = {}
        logger.debug('✓ Parsed manifest%s (%s root)', f' {source}' if source else '', type(tree).__name__)
        return tree

    def parse_file(self, path: Union[str, Path]) -> Any:
        path = Path(path)
        try:
            text = path.read_text(encoding='utf-8')
        except FileNotFoundError as exc:
            raise ParseError(f'Manifest file not found: {path}', source=str(path), rule='io') from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise ParseError(f'Unable to read manifest file {path}: {exc}', source=str(path), rule='io') from exc
        return self.parse(text, source=str(path))

    # ------------------------------------------------------------------ #
    # Formats
    # ------------------------------------------------------------------ #
    @staticmethod
    def _parse_json(text: str, source: Optional[str]) -> Any:
        try:
            return json.loads(text, object_pairs_hook=_reject_duplicate_pairs)
        except json.JSONDecodeError as exc:
            raise ParseError(f'Invalid JSON: {exc.msg}', location=(exc.lineno, exc.colno), source=source) from exc
        except ValueError as exc:
            raise ParseError(f'Invalid JSON: {exc}', source=source, rule='duplicate-key') from exc

    @staticmethod
    def _parse_yaml(text: str, source: Optional[str]) -> Any:
        tab = _find_tab_indentation(text)
        if tab is not None:
            raise ParseError('Tab characters are not allowed in indentation', location=tab, source=source,
                             rule='indentation')

        loader = _StrictLoader(text)
        try:
            return loader.get_single_data()
        except yaml.MarkedYAMLError as exc:
            mark = exc.problem_mark or exc.context_mark
            location = (mark.line + 1, mark.column + 1) if mark is not None else None
            problem = ' '.join(p for p in (exc.context, exc.problem) if p) or 'invalid YAML'
            rule = 'duplicate-key' if 'duplicate key' in problem else (
                'multiple-documents' if 'single document' in problem else 'syntax')
            raise ParseError(f'Invalid YAML: {problem}', location=location, source=source, rule=rule) from exc
        except yaml.YAMLError as exc:
            raise ParseError(f'Invalid YAML: {exc}', source=source) from exc
        finally:
            loader.dispose()


_default_parser = ManifestParser()


def parse(text: Union[str, bytes], source: Optional[str] = None) -> Any:
    return _default_parser.parse(text, source)
