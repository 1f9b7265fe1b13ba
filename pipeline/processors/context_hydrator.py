"""
Context Hydrator
────────────────
* Effective compliance framework (declared, else the configured default)
* Per-environment maps → the target environment's entry
* ``${env:key}`` / ``${envIs:name}`` tokens → values
* Five-layer merge per component, ``policy`` applied last
* Resolved manifest config re-checked against the type's declared schema
* Post-condition: no tokens remain
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from jsonschema import Draft202012Validator

from configs.config_loader import DefaultLayers
from configs.config_utils import merge_labeled
from core.cancellation import CancellationToken
from core.schema_cache import SchemaCache
from domain.compliance import ComplianceFramework
from domain.manifest import ComponentSpec, Manifest
from domain.plan import HydratedComponent, HydratedManifest
from pipeline.exceptions import SchemaValidationError, UnresolvedInterpolationError
from pipeline.pipeline_config import PipelineConfig
from pipeline.processors.interpolation import Interpolator, find_unresolved_tokens
from pipeline.processors.schema_composer import MasterSchema
from pipeline.processors.schema_validator import config_violations

logger = logging.getLogger(__name__)

STAGE = 'hydration'


class ContextHydrator:
    """Produce one concrete configuration per component for one environment."""

    def __init__(
        self,
        layers: Optional[DefaultLayers] = None,
        config: Optional[PipelineConfig] = None,
        schema_cache: Optional[SchemaCache] = None,
    ) -> None:
        self.layers = layers if layers is not None else DefaultLayers()
        self.config = config if config is not None else PipelineConfig()
        self.schema_cache = schema_cache if schema_cache is not None else SchemaCache(self.config.schema_compile_timeout_seconds)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def hydrate(
        self,
        manifest: Manifest,
        target_environment: str,
        cancel_token: Optional[CancellationToken] = None,
        master_schema: Optional[MasterSchema] = None,
    ) -> HydratedManifest:
        """
        With *master_schema*, each component's resolved config is validated
        against its type's declared schema, since tokens and per-environment
        maps only pass schema validation as deferred values.
        """
        framework = manifest.compliance_framework or self.config.default_compliance_framework
        if manifest.environments and target_environment not in manifest.environments:
            raise UnresolvedInterpolationError(
                f"Environment '{target_environment}' is not declared; declared environments: "
                f"{sorted(manifest.environments)}",
                key=target_environment, path='/environments', rule='unknown-environment',
            )

        env_defaults = manifest.environments.get(target_environment, {})
        interpolator = Interpolator(target_environment, env_defaults)
        env_names = set(self.config.environment_names) | set(manifest.environments) | {target_environment}
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        validators = await self._config_validators(manifest, master_schema)

        logger.info(
            "Hydrating %d component(s) for environment '%s' under framework '%s'",
            len(manifest.components), target_environment, framework.value,
        )

        async def _unit(index: int, component: ComponentSpec) -> HydratedComponent:
            async with semaphore:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled(STAGE, path=f'/components/{index}')
                return self.hydrate_component(
                    index, component, framework, target_environment, interpolator, env_names,
                    validators.get(component.type),
                )

        outcomes = await asyncio.gather(
            *(_unit(i, c) for i, c in enumerate(manifest.components)), return_exceptions=True,
        )
        # Earliest-declared failure wins, whatever finished first.
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        logger.info("✓ Hydrated %d component(s) for '%s'", len(outcomes), target_environment)
        return HydratedManifest(
            manifest=manifest,
            environment=target_environment,
            compliance_framework=framework,
            components=tuple(outcomes),
        )

    def hydrate_component(
        self,
        index: int,
        component: ComponentSpec,
        framework: ComplianceFramework,
        environment: str,
        interpolator: Interpolator,
        env_names: Set[str],
        validator: Optional[Draft202012Validator] = None,
    ) -> HydratedComponent:
        base_path = f'/components/{index}'
        try:
            config = self._resolve(component.config, f'{base_path}/config', interpolator, env_names)
            overrides = self._resolve(component.overrides, f'{base_path}/overrides', interpolator, env_names)
            policy = self._resolve(component.policy, f'{base_path}/policy', interpolator, env_names)
        except UnresolvedInterpolationError as exc:
            raise UnresolvedInterpolationError(
                exc.message, key=exc.key, path=exc.path, rule=exc.rule,
                component_name=component.name, component_type=component.type,
            ) from exc

        if validator is not None:
            violations = config_violations(
                validator.iter_errors(config), f'{base_path}/config', component.name, component.type,
            )
            if violations:
                logger.info("Component '%s' config breaks its schema after hydration (%d violation(s))",
                            component.name, len(violations))
                raise SchemaValidationError(violations, stage=STAGE)

        layers: List[Tuple[str, Dict[str, Any]]] = self.layers.layers_for(component.type, framework.value, environment)
        layers += [('config', config), ('overrides', overrides), ('policy', policy)]
        merged, contributed = merge_labeled(layers, context=f'hydrate[{component.name}]')

        leftovers = find_unresolved_tokens(merged)
        if leftovers:
            where, token = leftovers[0]
            raise UnresolvedInterpolationError(
                f"Unresolved token {token} remains in component '{component.name}' after hydration",
                key=token, path=f'{base_path}/config{where}',
                component_name=component.name, component_type=component.type,
            )

        logger.debug("Hydrated component '%s' (%s) from layers %s", component.name, component.type,
                     list(contributed))
        return HydratedComponent(
            name=component.name,
            type=component.type,
            config=merged,
            binds=component.binds,
            labels=component.labels,
            policy=policy,
            layers=contributed,
        )

    async def _config_validators(self, manifest: Manifest, master_schema: Optional[MasterSchema]) -> Dict[str, Draft202012Validator]:
        if master_schema is None:
            return {}
        validators: Dict[str, Draft202012Validator] = {}
        for component_type in dict.fromkeys(c.type for c in manifest.components):
            schema = master_schema.declared_config_schema(component_type)
            if schema is not None:
                validators[component_type] = await self.schema_cache.get_validator(schema)
        return validators

    # ------------------------------------------------------------------ #
    # Tree resolution
    # ------------------------------------------------------------------ #
    def _resolve(self, node: Any, path: str, interpolator: Interpolator, env_names: Set[str]) -> Any:
        if isinstance(node, Mapping):
            if self._is_per_environment_map(node, env_names):
                chosen_key, value = self._select_environment(node, path, interpolator.environment)
                return self._resolve(value, f'{path}/{chosen_key}', interpolator, env_names)
            return {k: self._resolve(v, f'{path}/{k}', interpolator, env_names) for k, v in node.items()}
        if isinstance(node, (list, tuple)):
            return [self._resolve(v, f'{path}/{i}', interpolator, env_names) for i, v in enumerate(node)]
        if isinstance(node, str):
            return interpolator.resolve_string(node, path)
        return node

    def _is_per_environment_map(self, node: Mapping[str, Any], env_names: Set[str]) -> bool:
        if not node:
            return False
        fallback = self.config.per_environment_fallback_key
        keys = set(node)
        return keys <= (env_names | {fallback}) and bool(keys - {fallback})

    def _select_environment(self, node: Mapping[str, Any], path: str, environment: str) -> Tuple[str, Any]:
        if environment in node:
            return environment, node[environment]
        fallback = self.config.per_environment_fallback_key
        if self.config.allow_per_environment_fallback and fallback in node:
            logger.debug("No '%s' entry at %s; using '%s'", environment, path, fallback)
            return fallback, node[fallback]
        raise UnresolvedInterpolationError(
            f"Per-environment value at {path} has no entry for environment '{environment}' "
            f"(available: {sorted(node)})",
            key=environment, path=path, rule='missing-environment-value',
        )
