"""
Capability Binding Resolver
───────────────────────────
Per bind: fetch the target's published Capability Data, select a strategy,
enforce compliance, let the strategy compute env vars / grants / network
rules, then freeze the result under a deterministic binding id.

State machine per binding:
    PENDING → RESOLVING_TARGET_DATA → STRATEGY_SELECTED → COMPLIANCE_CHECKED → RESOLVED
    any non-terminal state → REJECTED
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from core.cancellation import CancellationToken
from domain.bindings import BindingResult, ComplianceAction
from domain.capabilities import CapabilityData, parse_capability_data
from domain.compliance import ComplianceFramework
from domain.manifest import Governance
from domain.plan import ResolvedBind, ValidatedGraph
from domain.ports.capability_provider_port import CapabilityProviderPort
from pipeline.exceptions import (
    BindingResolutionError,
    CapabilityMismatchError,
    MissingCapabilityDataError,
    NoStrategyFoundError,
    ResolutionError,
    ResolutionTimeoutError,
    StrategyContractError,
)
from pipeline.pipeline_config import PipelineConfig

from .cache import BindingResultCache
from .compliance import ComplianceEnforcer
from .identity import binding_key, compute_binding_id, directive_digest
from .models import BindingContext, BindingDraft
from .registry import StrategyRegistry

logger = logging.getLogger(__name__)

STAGE = 'binding'


class BindingState(str, Enum):
    PENDING = 'pending'
    RESOLVING_TARGET_DATA = 'resolving-target-data'
    STRATEGY_SELECTED = 'strategy-selected'
    COMPLIANCE_CHECKED = 'compliance-checked'
    RESOLVED = 'resolved'
    REJECTED = 'rejected'


_TRANSITIONS: Dict[BindingState, frozenset] = {
    BindingState.PENDING: frozenset({BindingState.RESOLVING_TARGET_DATA, BindingState.REJECTED}),
    BindingState.RESOLVING_TARGET_DATA: frozenset({BindingState.STRATEGY_SELECTED, BindingState.REJECTED}),
    BindingState.STRATEGY_SELECTED: frozenset({BindingState.COMPLIANCE_CHECKED, BindingState.REJECTED}),
    BindingState.COMPLIANCE_CHECKED: frozenset({BindingState.RESOLVED, BindingState.REJECTED}),
    BindingState.RESOLVED: frozenset(),
    BindingState.REJECTED: frozenset(),
}


class IllegalBindingTransition(RuntimeError):
    """A programming error: the resolver tried to skip or revisit a state."""


class BindingStateMachine:
    def __init__(self, label: str) -> None:
        self.label = label
        self.state = BindingState.PENDING
        self.history: List[BindingState] = [BindingState.PENDING]
        self.error: Optional[ResolutionError] = None

    def advance(self, new_state: BindingState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise IllegalBindingTransition(f"{self.label}: illegal transition {self.state.value} -> {new_state.value}")
        logger.debug('%s: %s -> %s', self.label, self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)

    def reject(self, error: ResolutionError) -> None:
        self.error = error
        self.advance(BindingState.REJECTED)

    @property
    def terminal(self) -> bool:
        return not _TRANSITIONS[self.state]


class CapabilityBindingResolver:

    def __init__(
        self,
        strategy_registry: StrategyRegistry,
        capability_provider: CapabilityProviderPort,
        compliance_enforcer: Optional[ComplianceEnforcer] = None,
        config: Optional[PipelineConfig] = None,
        cache: Optional[BindingResultCache] = None,
    ) -> None:
        self.strategy_registry = strategy_registry
        self.capability_provider = capability_provider
        self.compliance_enforcer = compliance_enforcer if compliance_enforcer is not None else ComplianceEnforcer()
        self.config = config if config is not None else PipelineConfig()
        self.cache = cache if cache is not None else BindingResultCache()
        self.state_machines: Dict[int, BindingStateMachine] = {}

    # ------------------------------------------------------------------ #
    # Whole graph
    # ------------------------------------------------------------------ #
    async def resolve_all(self, graph: ValidatedGraph, cancel_token: Optional[CancellationToken] = None) -> List[BindingResult]:
        """
        Resolve every bind concurrently (bounded by ``max_concurrency``).
        Results follow declaration order. On the first failure the remaining
        units are cancelled and the earliest-declared failure is raised.
        """
        binds = list(graph.binds)
        if not binds:
            return []

        hydrated = graph.hydrated
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def _unit(bind: ResolvedBind) -> BindingResult:
            async with semaphore:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled(STAGE, path=bind.path)
                return await self.resolve_with_timeout(
                    bind, hydrated.compliance_framework, hydrated.environment,
                    hydrated.manifest.governance, graph, cancel_token,
                )

        tasks = [asyncio.ensure_future(_unit(b)) for b in binds]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            if pending:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                logger.error('Binding resolution failed: %s', task.exception())
                raise task.exception()

        results = [task.result() for task in tasks]
        logger.info('✓ Resolved %d binding(s)', len(results))
        return results

    async def resolve_with_timeout(
        self,
        bind: ResolvedBind,
        framework: ComplianceFramework,
        environment: str,
        governance: Optional[Governance] = None,
        graph: Optional[ValidatedGraph] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BindingResult:
        budget = self.config.binding_timeout_seconds
        try:
            return await asyncio.wait_for(
                self.resolve_binding(bind, framework, environment, governance, graph, cancel_token), timeout=budget,
            )
        except asyncio.TimeoutError as exc:
            raise ResolutionTimeoutError(
                f"Binding {bind.source} -> {bind.target} ({bind.directive.capability}) exceeded {budget}s",
                timeout_seconds=budget, stage=STAGE, path=bind.path,
                component_name=bind.source, component_type=bind.source_type,
            ) from exc

    # ------------------------------------------------------------------ #
    # Single binding
    # ------------------------------------------------------------------ #
    async def resolve_binding(
        self,
        bind: ResolvedBind,
        framework: ComplianceFramework,
        environment: str,
        governance: Optional[Governance] = None,
        graph: Optional[ValidatedGraph] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BindingResult:
        directive = bind.directive
        key = (
            *binding_key(bind.source, bind.target, directive.capability, directive.access, framework, environment),
            directive_digest(directive.env, directive.options, bind.path),
        )

        async def _compute() -> BindingResult:
            return await self._compute(bind, framework, environment, governance or Governance(), graph, cancel_token)

        return await self.cache.get_or_compute(key, _compute)

    async def _compute(
        self,
        bind: ResolvedBind,
        framework: ComplianceFramework,
        environment: str,
        governance: Governance,
        graph: Optional[ValidatedGraph],
        cancel_token: Optional[CancellationToken],
    ) -> BindingResult:
        directive = bind.directive
        machine = BindingStateMachine(f'{bind.source}->{bind.target}[{directive.capability}]')
        self.state_machines[bind.index] = machine
        binding_id = compute_binding_id(bind.source, bind.target, directive.capability, directive.access, framework, environment)
        owner = dict(source=bind.source, target=bind.target, capability=directive.capability,
                     path=bind.path, component_type=bind.source_type)

        try:
            machine.advance(BindingState.RESOLVING_TARGET_DATA)
            data = await self._fetch_capability_data(bind, cancel_token, owner)

            strategy = self.strategy_registry.find(bind.source_type, directive.capability)
            if strategy is None:
                raise NoStrategyFoundError(bind.source_type, directive.capability, source=bind.source, target=bind.target, path=bind.path)
            machine.advance(BindingState.STRATEGY_SELECTED)

            decision = self.compliance_enforcer.enforce(
                bind.source, directive, data, framework, governance, path=bind.path, target=bind.target,
            )
            machine.advance(BindingState.COMPLIANCE_CHECKED)

            if cancel_token is not None:
                cancel_token.raise_if_cancelled(STAGE, path=bind.path)

            target_component = graph.hydrated.component(bind.target) if graph is not None else None
            context = BindingContext(
                source=bind.source,
                source_type=bind.source_type,
                target=bind.target,
                target_type=bind.target_type,
                directive=directive,
                capability_data=data,
                framework=framework,
                environment=environment,
                binding_id=binding_id,
                options=decision.options,
                target_config=dict(target_component.config) if target_component is not None else {},
                cancel_token=cancel_token,
            )
            draft = await strategy.bind(context)
            result = self._finalize(bind, context, draft, decision.actions, strategy.strategy_id, owner)
            machine.advance(BindingState.RESOLVED)
        except ResolutionError as exc:
            machine.reject(exc)
            logger.debug('%s rejected: %s', machine.label, exc)
            raise

        logger.debug('Resolved binding %s (%s)', binding_id, machine.label)
        return result

    async def _fetch_capability_data(self, bind: ResolvedBind, cancel_token: Optional[CancellationToken], owner: Dict[str, Any]) -> CapabilityData:
        capability = bind.directive.capability
        raw = await self.capability_provider.get_capability_data(bind.target, capability, cancel_token)
        if raw is None:
            raise MissingCapabilityDataError(
                f"Component '{bind.target}' has not published capability data for '{capability}'", **owner,
            )
        try:
            data = parse_capability_data(raw)
        except (ModelValidationError, ValueError) as exc:
            raise BindingResolutionError(
                f"Capability data published by '{bind.target}' for '{capability}' is invalid: {exc}",
                rule='invalid-capability-data', **owner,
            ) from exc
        if data.type != capability:
            raise CapabilityMismatchError(
                f"Component '{bind.target}' published '{data.type}' but the bind requests '{capability}'", **owner,
            )
        return data

    # ------------------------------------------------------------------ #
    # Freezing
    # ------------------------------------------------------------------ #
    def _finalize(
        self,
        bind: ResolvedBind,
        context: BindingContext,
        draft: BindingDraft,
        actions: tuple,
        strategy_id: str,
        owner: Dict[str, Any],
    ) -> BindingResult:
        if not isinstance(draft, BindingDraft):
            raise StrategyContractError(f"Strategy '{strategy_id}' returned {type(draft).__name__}, not BindingDraft", **owner)
        if not draft.access_grants:
            raise StrategyContractError(f"Strategy '{strategy_id}' produced no access grants", **owner)

        identifiers = context.capability_data.resource_identifiers()
        for grant in draft.access_grants:
            if grant.is_unscoped:
                raise StrategyContractError(f"Strategy '{strategy_id}' produced an unscoped grant: {list(grant.unscoped_entries)}", **owner)
            outside = [r for r in grant.resources
                       if not any(r == ident or r.startswith(ident + '/') for ident in identifiers)]
            if outside:
                raise StrategyContractError(
                    f"Strategy '{strategy_id}' granted access outside the target's resources: {outside}", **owner,
                )

        environment_variables = self._environment_variables(bind, draft, owner)
        metadata = {
            **draft.metadata,
            'bindingId': context.binding_id,
            'strategy': strategy_id,
            'framework': context.framework.value,
            'environment': context.environment,
            'sourceType': bind.source_type,
            'targetType': bind.target_type,
            'path': bind.path,
            'options': dict(context.options),
        }
        return BindingResult(
            source=bind.source,
            target=bind.target,
            capability=bind.directive.capability,
            access=bind.directive.access,
            environment_variables=environment_variables,
            access_grants=tuple(draft.access_grants),
            network_rules=tuple(draft.network_rules),
            compliance_actions=tuple(a for a in actions if isinstance(a, ComplianceAction)),
            metadata=metadata,
        )

    @staticmethod
    def _environment_variables(bind: ResolvedBind, draft: BindingDraft, owner: Dict[str, Any]) -> Dict[str, str]:
        by_key = {e.key: e for e in draft.environment}
        unknown = sorted(set(bind.directive.env) - set(by_key))
        if unknown:
            raise BindingResolutionError(
                f"Bind env mapping names unknown key(s) {unknown}; available: {sorted(by_key)}",
                rule='unknown-env-key', **owner,
            )
        variables: Dict[str, str] = {}
        for entry in draft.environment:
            name = bind.directive.env.get(entry.key, entry.default_name)
            if name in variables:
                raise BindingResolutionError(f"Environment variable '{name}' is assigned twice", rule='duplicate-env-var', **owner)
            variables[name] = entry.value
        return variables
