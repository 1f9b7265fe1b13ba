"""
Resolver configuration and the default config layers.

Two kinds of files live under ``configs/``:

* ``resolver_config.yaml`` - pipeline settings (concurrency, timeouts, cycle
  policy, environment names). ``configs/default/`` is always read; an env
  named on the loader adds ``configs/<env>/resolver_config.yaml`` on top.
* default layers - ``compliance/<framework>.yaml``, ``platform.yaml`` and
  ``environments/<env>.yaml``, each a ``defaults:`` map of component type
  to config, feeding layers 2-4 of hydration.

String values may reference OS environment variables as ``${NAME:-fallback}``.
"""
from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Final, List, Mapping, Optional, Sequence, Tuple

import yaml

from configs.config_utils import ConfigMerger, merge_configs
from pipeline.exceptions import ConfigurationError

__all__: Sequence[str] = ('ConfigLoader', 'DefaultLayers', 'DEFAULT_CONFIG', 'HARDCODED_FALLBACKS', 'ALL_TYPES')
logger = logging.getLogger(__name__)

BASE_ENV: Final[str] = 'default'
ALL_TYPES: Final[str] = '*'
RESOLVER_CONFIG_FILE: Final[str] = 'resolver_config.yaml'

DEFAULT_CONFIG: Dict[str, Any] = {
    'env': BASE_ENV,
    'pipeline': {
        'max_concurrency': 8,
        'binding_timeout_seconds': 30.0,
        'schema_compile_timeout_seconds': 10.0,
        'cycle_check': 'all',
        'invocation_capability_prefixes': ['api:', 'function:', 'invoke:', 'lambda:'],
        'allow_per_environment_fallback': False,
        'per_environment_fallback_key': 'default',
        'environment_names': ['dev', 'test', 'staging', 'prod'],
        'default_compliance_framework': 'commercial',
    },
}

# Lowest precedence layer of the hydration chain, keyed by component type.
HARDCODED_FALLBACKS: Dict[str, Dict[str, Any]] = {
    ALL_TYPES: {},
    'lambda-api': {'runtime': 'nodejs20.x', 'memorySize': 512, 'timeout': 30},
    'lambda-worker': {'runtime': 'nodejs20.x', 'memorySize': 512, 'timeout': 60, 'batchSize': 10},
    'ecs-fargate-service': {'cpu': 256, 'memory': 512, 'desiredCount': 1, 'port': 8080},
    'sqs-queue': {'visibilityTimeout': 30, 'messageRetentionPeriod': 345600, 'fifo': False},
    'sns-topic': {'fifo': False},
    's3-bucket': {'versioned': False, 'encryption': 'AES256', 'publicAccess': False},
    'rds-postgres': {'engineVersion': '15', 'instanceClass': 'db.t3.micro', 'allocatedStorage': 20, 'multiAz': False},
    'secrets-manager': {'rotationDays': 0},
}

# Upper case only, so manifest tokens such as `${env:key}` are never touched.
_OS_VAR: Final[re.Pattern[str]] = re.compile(r'\$\{([A-Z_][A-Z0-9_]*):-(.*?)\}')


def expand_os_vars(node: Any) -> Any:
    """Returns a copy of *node* with every ``${NAME:-fallback}`` substituted."""
    if isinstance(node, Mapping):
        return {key: expand_os_vars(value) for key, value in node.items()}
    if isinstance(node, list):
        return [expand_os_vars(value) for value in node]
    if not isinstance(node, str) or '${' not in node:
        return node
    expanded = _OS_VAR.sub(lambda m: os.environ.get(m.group(1), m.group(2)), node)
    if expanded != node:
        logger.debug("Expanded config value %r to %r", node, expanded)
    return expanded


def read_config_file(path: Path) -> Dict[str, Any]:
    """
    Parses one YAML (or ``.json``) config file. A missing file reads as an
    empty mapping; unreadable or malformed files raise ConfigurationError.
    """
    if not path.is_file():
        logger.debug('No config file at %s', path)
        return {}
    try:
        raw = path.read_text(encoding='utf-8')
        data = json.loads(raw) if path.suffix.lower() == '.json' else yaml.safe_load(raw)
    except OSError as exc:
        raise ConfigurationError(f'Failed to read {path}: {exc}', path=str(path)) from exc
    except (yaml.YAMLError, ValueError) as exc:
        raise ConfigurationError(f'Failed to parse {path}: {exc}', path=str(path)) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f'{path} must contain a mapping at the top level', path=str(path))
    return data


def _type_map(data: Mapping[str, Any], label: str) -> Dict[str, Dict[str, Any]]:
    defaults = data.get('defaults', {})
    if not isinstance(defaults, dict):
        raise ConfigurationError(f"'defaults' in {label} must be a mapping of component type to config")
    for type_name, cfg in defaults.items():
        if not isinstance(cfg, dict):
            raise ConfigurationError(f"Default config for type '{type_name}' in {label} must be a mapping")
    return defaults


@dataclass(frozen=True)
class DefaultLayers:
    """
    Layers 1-4 of the hydration precedence chain. Each layer maps component
    type to a default config; the '*' entry applies to every type and is
    merged beneath the type-specific entry.
    """
    hardcoded: Dict[str, Dict[str, Any]] = field(default_factory=lambda: copy.deepcopy(HARDCODED_FALLBACKS))
    compliance: Dict[str, Dict[str, Dict[str, Any]]] = field(default_factory=dict)
    platform: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    environments: Dict[str, Dict[str, Dict[str, Any]]] = field(default_factory=dict)

    @staticmethod
    def _for_type(type_map: Mapping[str, Mapping[str, Any]], component_type: str) -> Dict[str, Any]:
        return merge_configs(type_map.get(ALL_TYPES, {}), type_map.get(component_type, {}), context=f'defaults[{component_type}]')

    def layers_for(self, component_type: str, framework: str, environment: str) -> List[Tuple[str, Dict[str, Any]]]:
        """Ordered (label, config) pairs, lowest precedence first."""
        return [
            ('hardcoded', self._for_type(self.hardcoded, component_type)),
            (f'compliance:{framework}', self._for_type(self.compliance.get(framework, {}), component_type)),
            ('platform', self._for_type(self.platform, component_type)),
            (f'environment:{environment}', self._for_type(self.environments.get(environment, {}), component_type)),
        ]


class ConfigLoader:
    """Reads resolver settings and default layers from a package checkout."""

    def __init__(self, package_root: Optional[Path] = None) -> None:
        self.package_root: Path = package_root if package_root is not None else Path(__file__).resolve().parents[1]

    @property
    def defaults_dir(self) -> Path:
        return self.package_root / 'configs' / BASE_ENV

    def _resolver_config_files(self, env: str) -> List[Path]:
        files = [self.defaults_dir / RESOLVER_CONFIG_FILE]
        if env != BASE_ENV:
            files.append(self.package_root / 'configs' / env / RESOLVER_CONFIG_FILE)
        return files

    async def load_resolver_config(self, env: Optional[str] = None, provided_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Built-in defaults, then the shipped file, then the env-specific file.
        A *provided_config* replaces both files and is merged over the
        built-in defaults only.
        """
        env = env or BASE_ENV
        if provided_config is not None:
            logger.info('Using provided resolver configuration')
            cfg = ConfigMerger.merge(DEFAULT_CONFIG, provided_config, 'provided')
        else:
            logger.info("Loading resolver configuration for env='%s'", env)
            cfg = ConfigMerger.merge(DEFAULT_CONFIG, {'env': env}, 'env')
            for path in self._resolver_config_files(env):
                layer = await asyncio.to_thread(read_config_file, path)
                if layer:
                    cfg = ConfigMerger.merge(cfg, layer, path.parent.name)
                    logger.info('Applied resolver config %s', path)

        cfg = expand_os_vars(cfg)
        self._check_pipeline_section(cfg)
        logger.info("✓ Resolver configuration ready (env='%s')", cfg.get('env', env))
        return cfg

    async def load_config_layers(self, defaults_dir: Optional[Path] = None) -> DefaultLayers:
        """Loads the compliance, platform and environment default layers."""
        root = defaults_dir or self.defaults_dir
        logger.info('Loading default config layers from %s', root)

        compliance = await self._load_type_maps(root / 'compliance')
        environments = await self._load_type_maps(root / 'environments')
        platform_file = root / 'platform.yaml'
        platform = _type_map(expand_os_vars(await asyncio.to_thread(read_config_file, platform_file)), str(platform_file))

        logger.info(
            '✓ Default layers loaded: %d framework(s), %d environment(s), %d platform type(s)',
            len(compliance), len(environments), len(platform),
        )
        return DefaultLayers(compliance=compliance, platform=platform, environments=environments)

    @staticmethod
    async def _load_type_maps(directory: Path) -> Dict[str, Dict[str, Dict[str, Any]]]:
        maps: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for path in sorted(directory.glob('*.yaml')):
            data = expand_os_vars(await asyncio.to_thread(read_config_file, path))
            maps[path.stem] = _type_map(data, str(path))
            logger.debug('Loaded %s defaults for %s', directory.name, path.stem)
        return maps

    @staticmethod
    def _check_pipeline_section(cfg: Mapping[str, Any]) -> None:
        section = cfg.get('pipeline')
        if not isinstance(section, dict):
            raise ConfigurationError("Resolver configuration has no 'pipeline' mapping", path='/pipeline')
        if section.get('cycle_check') not in ('all', 'invocation'):
            raise ConfigurationError(
                f"pipeline.cycle_check must be 'all' or 'invocation', got {section.get('cycle_check')!r}",
                path='/pipeline/cycle_check',
            )
