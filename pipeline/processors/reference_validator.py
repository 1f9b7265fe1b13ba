"""
Semantic & Reference Validator
──────────────────────────────
* Component names are unique
* Every bind resolves to exactly one component (``to`` or ``select``)
* The bind graph has no cycles (edge policy: ``all`` or ``invocation``)
* Governance entries are complete and current
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

from domain.manifest import BindingDirective, BindingSelector
from domain.plan import HydratedComponent, HydratedManifest, ResolvedBind, ValidatedGraph
from pipeline.exceptions import CircularDependencyError, ManifestReferenceError
from pipeline.pipeline_config import PipelineConfig
from pipeline.processors.governance_validator import GovernanceValidator

logger = logging.getLogger(__name__)


def selector_matches(selector: BindingSelector, component: HydratedComponent) -> bool:
    if component.type != selector.type:
        return False
    return all(component.labels.get(k) == v for k, v in selector.with_labels.items())


class ReferenceValidator:
    """Turn a hydrated manifest into a validated bind graph."""

    def __init__(self, config: Optional[PipelineConfig] = None, governance_validator: Optional[GovernanceValidator] = None) -> None:
        self.config = config if config is not None else PipelineConfig()
        self.governance_validator = governance_validator if governance_validator is not None else GovernanceValidator(self.config)

    def validate(self, hydrated: HydratedManifest) -> ValidatedGraph:
        components = list(hydrated.components)
        self._check_unique_names(components)

        binds: List[ResolvedBind] = []
        for i, component in enumerate(components):
            for j, directive in enumerate(component.binds):
                path = f'/components/{i}/binds/{j}'
                target = self.resolve_target(directive, component, components, path)
                binds.append(ResolvedBind(
                    index=len(binds),
                    source=component.name,
                    source_type=component.type,
                    target=target.name,
                    target_type=target.type,
                    directive=directive,
                    path=path,
                ))
                logger.debug("Resolved bind %s: %s -> %s (%s)", path, component.name, target.name, directive.capability)

        names = [c.name for c in components]
        checked = [b for b in binds if self._counts_for_cycles(b)]
        self._check_cycles(names, checked)
        order = self._topological_order(names, binds)

        self.governance_validator.validate(hydrated.manifest, names)

        logger.info('✓ Semantic validation passed: %d component(s), %d bind(s)', len(components), len(binds))
        return ValidatedGraph(hydrated=hydrated, binds=tuple(binds), topological_order=tuple(order))

    # ------------------------------------------------------------------ #
    # Names and targets
    # ------------------------------------------------------------------ #
    @staticmethod
    def _check_unique_names(components: Sequence[HydratedComponent]) -> None:
        counts = Counter(c.name for c in components)
        for component in components:
            if counts[component.name] > 1:
                duplicates = [j for j, c in enumerate(components) if c.name == component.name]
                raise ManifestReferenceError(
                    f"Duplicate component name '{component.name}' at indexes {duplicates}",
                    candidates=[component.name],
                    path=f'/components/{duplicates[1]}/name',
                    rule='duplicate-component-name',
                    component_name=component.name,
                    component_type=components[duplicates[1]].type,
                )

    @staticmethod
    def resolve_target(
        directive: BindingDirective,
        source: HydratedComponent,
        components: Sequence[HydratedComponent],
        path: str,
    ) -> HydratedComponent:
        if directive.to is not None:
            for candidate in components:
                if candidate.name == directive.to:
                    return candidate
            raise ManifestReferenceError(
                f"Bind target '{directive.to}' does not name a component in this manifest",
                path=f'{path}/to', rule='missing-target',
                component_name=source.name, component_type=source.type,
            )

        matches = [c for c in components if selector_matches(directive.select, c)]
        if not matches:
            raise ManifestReferenceError(
                f"Selector found no matching components for {directive.select.describe()}",
                path=f'{path}/select', rule='selector-no-match',
                component_name=source.name, component_type=source.type,
            )
        if len(matches) > 1:
            names = [c.name for c in matches]
            raise ManifestReferenceError(
                f"Ambiguous selector: found {len(matches)} components matching "
                f"{directive.select.describe()}: [{', '.join(names)}]",
                candidates=names, path=f'{path}/select', rule='selector-ambiguous',
                component_name=source.name, component_type=source.type,
            )
        return matches[0]

    # ------------------------------------------------------------------ #
    # Graph
    # ------------------------------------------------------------------ #
    def _counts_for_cycles(self, bind: ResolvedBind) -> bool:
        if self.config.cycle_check == 'all':
            return True
        return self.config.is_invocation_capability(bind.directive.capability)

    @staticmethod
    def _check_cycles(names: Sequence[str], binds: Sequence[ResolvedBind]) -> None:
        adjacency: Dict[str, List[str]] = {n: [] for n in names}
        for b in binds:
            adjacency[b.source].append(b.target)

        white, grey, black = 0, 1, 2
        colour = {n: white for n in names}
        stack: List[str] = []

        def visit(node: str) -> None:
            colour[node] = grey
            stack.append(node)
            for nxt in adjacency[node]:
                if colour[nxt] == grey:
                    cycle = stack[stack.index(nxt):] + [nxt]
                    raise CircularDependencyError(cycle)
                if colour[nxt] == white:
                    visit(nxt)
            stack.pop()
            colour[node] = black

        for name in names:
            if colour[name] == white:
                visit(name)

    @staticmethod
    def _topological_order(names: Sequence[str], binds: Sequence[ResolvedBind]) -> List[str]:
        """Dependencies first; ties broken by declaration order."""
        position = {n: i for i, n in enumerate(names)}
        pending: Dict[str, set] = {n: set() for n in names}
        for b in binds:
            if b.source != b.target:
                pending[b.source].add(b.target)

        order: List[str] = []
        remaining = list(names)
        while remaining:
            ready = [n for n in remaining if not (pending[n] - set(order))]
            if not ready:
                # Cycles allowed by the edge policy: keep declaration order.
                order.extend(sorted(remaining, key=position.__getitem__))
                break
            order.extend(ready)
            remaining = [n for n in remaining if n not in ready]
        return order
