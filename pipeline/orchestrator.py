"""
Manifest Resolver
─────────────────
Entry point of the resolution pipeline:

    parse → schema validation → hydration → semantic validation → binding

A resolution either returns a complete ``ResolvedPlan`` or raises the first
``ResolutionError`` encountered. Nothing partial escapes.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from binding.cache import BindingResultCache
from binding.compliance import ComplianceEnforcer
from binding.registry import StrategyRegistry
from binding.resolver import CapabilityBindingResolver
from binding.strategies import default_strategy_registry
from configs.config_loader import ConfigLoader, DefaultLayers
from core.cancellation import CancellationToken
from core.registry.type_registry import ComponentTypeRegistry
from core.schema_cache import SchemaCache
from domain.plan import ResolvedPlan
from domain.ports.capability_provider_port import CapabilityProviderPort
from domain.ports.type_registry_port import ComponentTypeRegistryPort
from pipeline.core.phase_executor import PhaseExecutionSummary, PhaseExecutor
from pipeline.exceptions import ParseError
from pipeline.phases import (
    BindingPhase,
    HydrationPhase,
    ParsePhase,
    PipelinePhase,
    SchemaValidationPhase,
    SemanticValidationPhase,
)
from pipeline.pipeline_config import PipelineConfig
from pipeline.pipeline_context import PipelineContext
from pipeline.processors.context_hydrator import ContextHydrator
from pipeline.processors.governance_validator import GovernanceValidator
from pipeline.processors.manifest_parser import ManifestParser
from pipeline.processors.reference_validator import ReferenceValidator
from pipeline.processors.schema_composer import SchemaComposer
from pipeline.processors.schema_validator import SchemaValidator

logger = logging.getLogger(__name__)


class ManifestResolver:
    """
    Long-lived resolver. The schema cache and composed master schema are
    shared across resolutions; a binding result cache is created per
    resolution unless one is supplied.
    """

    def __init__(
        self,
        type_registry: ComponentTypeRegistryPort,
        capability_provider: CapabilityProviderPort,
        strategy_registry: Optional[StrategyRegistry] = None,
        config: Optional[PipelineConfig] = None,
        schema_cache: Optional[SchemaCache] = None,
        layers: Optional[DefaultLayers] = None,
        compliance_enforcer: Optional[ComplianceEnforcer] = None,
        binding_cache: Optional[BindingResultCache] = None,
        base_schema: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.config = config if config is not None else PipelineConfig()
        self.type_registry = type_registry
        self.capability_provider = capability_provider
        self.strategy_registry = strategy_registry if strategy_registry is not None else default_strategy_registry()
        self.schema_cache = schema_cache if schema_cache is not None else SchemaCache(self.config.schema_compile_timeout_seconds)
        self.layers = layers if layers is not None else DefaultLayers()
        self.compliance_enforcer = compliance_enforcer if compliance_enforcer is not None else ComplianceEnforcer()
        self.binding_cache = binding_cache
        self.base_schema = base_schema

        self.parser = ManifestParser()
        self.composer = SchemaComposer()
        self.schema_validator = SchemaValidator(self.schema_cache, self.config.schema_compile_timeout_seconds)
        self.hydrator = ContextHydrator(self.layers, self.config, self.schema_cache)
        self.reference_validator = ReferenceValidator(self.config, GovernanceValidator(self.config))
        self.last_summary: Optional[PhaseExecutionSummary] = None

        logger.debug(
            'ManifestResolver constructed: %d component type(s), %d strategy key(s)',
            len(self.type_registry.list_types()), len(self.strategy_registry),
        )

    # ------------------------------------------------------------------ #
    # Construction from shipped defaults
    # ------------------------------------------------------------------ #
    @classmethod
    async def from_defaults(
        cls,
        capability_provider: CapabilityProviderPort,
        env: Optional[str] = None,
        provided_config: Optional[Dict[str, Any]] = None,
        loader: Optional[ConfigLoader] = None,
        **kwargs: Any,
    ) -> 'ManifestResolver':
        """Shipped component schemas, default layers and resolver config."""
        loader = loader if loader is not None else ConfigLoader()
        resolver_config = await loader.load_resolver_config(env=env, provided_config=provided_config)
        layers = await loader.load_config_layers()
        return cls(
            type_registry=kwargs.pop('type_registry', None) or ComponentTypeRegistry.with_shipped_schemas(),
            capability_provider=capability_provider,
            config=PipelineConfig.from_mapping(resolver_config),
            layers=layers,
            **kwargs,
        )

    # ------------------------------------------------------------------ #
    # Resolution
    # ------------------------------------------------------------------ #
    def _create_phases(self, binding_cache: BindingResultCache) -> List[PipelinePhase]:
        binding_resolver = CapabilityBindingResolver(
            self.strategy_registry,
            self.capability_provider,
            compliance_enforcer=self.compliance_enforcer,
            config=self.config,
            cache=binding_cache,
        )
        return [
            ParsePhase(self.parser),
            SchemaValidationPhase(self.type_registry, self.composer, self.schema_validator, self.base_schema),
            HydrationPhase(self.hydrator),
            SemanticValidationPhase(self.reference_validator),
            BindingPhase(binding_resolver),
        ]

    async def resolve(
        self,
        text: Union[str, bytes],
        environment: str,
        cancel_token: Optional[CancellationToken] = None,
        source: Optional[str] = None,
    ) -> ResolvedPlan:
        context = PipelineContext(
            text=text,
            environment=environment,
            config=self.config,
            cancel_token=cancel_token if cancel_token is not None else CancellationToken(),
            source=source,
        )
        cache = self.binding_cache if self.binding_cache is not None else BindingResultCache()
        logger.info("[%s] Resolving manifest%s for environment '%s'", context.run_id, f' {source}' if source else '', environment)

        executor = PhaseExecutor(self._create_phases(cache))
        self.last_summary = await executor.execute_phases(context)

        plan = context.plan
        logger.info(
            "[%s] ✓ Resolved plan %s: %d component(s), %d binding(s) in %.3fs",
            context.run_id, plan.plan_id, len(plan.components), len(plan.bindings), self.last_summary.total_duration,
        )
        return plan

    async def resolve_file(
        self,
        path: Union[str, Path],
        environment: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResolvedPlan:
        path = Path(path)
        try:
            text = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as exc:
            raise ParseError(f'Cannot read manifest: {exc}', source=str(path), rule='io') from exc
        return await self.resolve(text, environment, cancel_token=cancel_token, source=str(path))


async def resolve_manifest(
    text: Union[str, bytes],
    environment: str,
    capability_provider: CapabilityProviderPort,
    cancel_token: Optional[CancellationToken] = None,
    **kwargs: Any,
) -> ResolvedPlan:
    """One-shot resolution with the shipped defaults."""
    resolver = await ManifestResolver.from_defaults(capability_provider, **kwargs)
    return await resolver.resolve(text, environment, cancel_token=cancel_token)
