from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import ClassVar, Dict, List, Optional, Sequence, Tuple

from domain.bindings import AccessGrant, NetworkRule
from domain.manifest import AccessLevel

from ..models import BindingContext, BindingDraft, EnvBinding

logger = logging.getLogger(__name__)

_ENV_UNSAFE = re.compile(r'[^A-Z0-9_]')


def env_prefix(component_name: str) -> str:
    """'orders-queue' -> 'ORDERS_QUEUE'."""
    return _ENV_UNSAFE.sub('_', component_name.upper())


class BaseBindingStrategy(ABC):
    """
    Shared plumbing for concrete strategies.

    Subclasses declare ``strategy_id``, ``source_types``, ``capabilities`` and an
    ``ACTIONS`` table (access level → service actions) and implement
    ``_build``. Grants must only name resources the target published.
    """

    strategy_id: ClassVar[str] = 'base'
    source_types: ClassVar[Tuple[str, ...]] = ()
    capabilities: ClassVar[Tuple[str, ...]] = ()
    ACTIONS: ClassVar[Dict[AccessLevel, Tuple[str, ...]]] = {}

    async def bind(self, context: BindingContext) -> BindingDraft:
        if context.cancel_token is not None:
            context.cancel_token.raise_if_cancelled('binding')
        draft = self._build(context)
        draft.strategy_id = self.strategy_id
        logger.debug(
            '%s: %s -> %s produced %d env var(s), %d grant(s), %d network rule(s)',
            self.strategy_id, context.source, context.target,
            len(draft.environment), len(draft.access_grants), len(draft.network_rules),
        )
        return draft

    @abstractmethod
    def _build(self, context: BindingContext) -> BindingDraft: ...

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def actions_for(self, access: AccessLevel) -> Tuple[str, ...]:
        """READWRITE is the union of READ and WRITE unless declared explicitly."""
        if access in self.ACTIONS:
            return self.ACTIONS[access]
        if access is AccessLevel.READWRITE:
            merged: List[str] = []
            for level in (AccessLevel.READ, AccessLevel.WRITE):
                merged.extend(a for a in self.ACTIONS.get(level, ()) if a not in merged)
            return tuple(merged)
        return ()

    @staticmethod
    def env(context: BindingContext, key: str, suffix: str, value: Optional[str]) -> Optional[EnvBinding]:
        if value is None:
            return None
        return EnvBinding(key=key, default_name=f'{env_prefix(context.target)}_{suffix}', value=str(value))

    @staticmethod
    def transport_conditions(context: BindingContext) -> Dict[str, Dict[str, str]]:
        conditions: Dict[str, Dict[str, str]] = {}
        if context.option('tlsRequired') is True:
            conditions['Bool'] = {'aws:SecureTransport': 'true'}
        vpce = context.capability_data.vpc_endpoint
        if context.option('privateNetworkOnly') is True and vpce:
            conditions['StringEquals'] = {'aws:SourceVpce': vpce}
        return conditions

    @staticmethod
    def grant(actions: Sequence[str], resources: Sequence[str], description: str,
              conditions: Optional[Dict[str, Dict[str, str]]] = None) -> AccessGrant:
        return AccessGrant(
            actions=tuple(actions), resources=tuple(resources),
            conditions=conditions or {}, description=description,
        )

    @staticmethod
    def egress_rules(context: BindingContext, port: int, label: str) -> List[NetworkRule]:
        """One rule to the target's security group, plus one per allowed CIDR."""
        rules: List[NetworkRule] = []
        group = context.capability_data.security_group_id
        if group:
            rules.append(NetworkRule(peer=group, portFrom=port, portTo=port, description=f'{label} via security group'))
        for cidr in context.option('allowedCidrs') or ():
            rules.append(NetworkRule(peer=str(cidr), portFrom=port, portTo=port, description=f'{label} via {cidr}'))
        return rules
