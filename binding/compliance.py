"""
Compliance enforcement for capability bindings.

Runs before the strategy. Depending on the active framework a rule either
records an advisory action, enforces an option on the strategy input
(``tlsRequired``, ``privateNetworkOnly``) or rejects the binding. A governance
suppression naming the rule id and the source component turns a rejection
into a recorded ``suppressed`` action.
"""
from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from domain.bindings import ComplianceAction
from domain.capabilities import CapabilityData
from domain.compliance import ComplianceFramework
from domain.manifest import AccessLevel, BindingDirective, Governance
from pipeline.exceptions import ComplianceViolationError

logger = logging.getLogger(__name__)

ENCRYPTED_KINDS = ('storage', 'db')

_RFC1918 = tuple(ipaddress.ip_network(n) for n in ('10.0.0.0/8', '172.16.0.0/12', '192.168.0.0/16'))
_PRIVATE_BLOCKS = _RFC1918 + (ipaddress.ip_network('fc00::/7'),)


def _within(network, blocks) -> bool:
    return any(network.version == block.version and network.subnet_of(block) for block in blocks)


@dataclass(frozen=True)
class ComplianceRule:
    rule_id: str
    framework: ComplianceFramework
    requirement: str
    description: str
    remediation: str


RULES: Dict[str, ComplianceRule] = {r.rule_id: r for r in (
    ComplianceRule('COM-NET-001', ComplianceFramework.COMMERCIAL, 'tls-recommended',
                   'Target mandates TLS; the bind does not request it', "Set options.tlsRequired: true"),
    ComplianceRule('COM-NET-002', ComplianceFramework.COMMERCIAL, 'private-network-recommended',
                   'Network peer is not a private address range', 'Restrict allowedCidrs to private ranges'),
    ComplianceRule('COM-ENC-001', ComplianceFramework.COMMERCIAL, 'encryption-at-rest-recommended',
                   'Target does not report encryption at rest', 'Enable encryption on the target'),
    ComplianceRule('MOD-NET-001', ComplianceFramework.MODERATE, 'tls-required',
                   'TLS enforced because the target mandates it', "Set options.tlsRequired: true"),
    ComplianceRule('MOD-NET-002', ComplianceFramework.MODERATE, 'private-network',
                   'Network peers must be private address ranges', 'Restrict allowedCidrs to private ranges'),
    ComplianceRule('MOD-ENC-001', ComplianceFramework.MODERATE, 'encryption-at-rest',
                   'Storage and database targets must be encrypted at rest', 'Enable encryption on the target'),
    ComplianceRule('HIGH-NET-001', ComplianceFramework.HIGH, 'tls-required',
                   'Target mandates TLS and the bind must request it explicitly', "Set options.tlsRequired: true"),
    ComplianceRule('HIGH-NET-002', ComplianceFramework.HIGH, 'private-network-only',
                   'Bindings are restricted to private networking', 'No action required'),
    ComplianceRule('HIGH-NET-003', ComplianceFramework.HIGH, 'rfc1918-only',
                   'Network peers must lie within RFC 1918 ranges', 'Use 10/8, 172.16/12 or 192.168/16 peers'),
    ComplianceRule('HIGH-ENC-001', ComplianceFramework.HIGH, 'encryption-at-rest',
                   'Storage and database targets must be encrypted at rest', 'Enable encryption on the target'),
    ComplianceRule('HIGH-IAM-001', ComplianceFramework.HIGH, 'least-privilege',
                   'Admin access is not permitted', 'Request read, write or readwrite access'),
)}


@dataclass(frozen=True)
class ComplianceDecision:
    options: Dict[str, Any]
    actions: Tuple[ComplianceAction, ...] = field(default_factory=tuple)


class ComplianceEnforcer:

    def enforce(
        self,
        source: str,
        directive: BindingDirective,
        capability_data: CapabilityData,
        framework: ComplianceFramework,
        governance: Optional[Governance] = None,
        path: str = '',
        target: Optional[str] = None,
    ) -> ComplianceDecision:
        run = _Run(source, target or directive.to, directive, framework, governance or Governance(), path)
        options = dict(directive.options)

        self._check_tls(run, options, capability_data)
        self._check_network(run, options)
        self._check_encryption(run, capability_data)
        self._check_access(run, directive)

        logger.debug(
            "Compliance (%s) for %s -> %s: %d action(s)",
            framework.value, source, directive.capability, len(run.actions),
        )
        return ComplianceDecision(options=options, actions=tuple(run.actions))

    # ------------------------------------------------------------------ #
    @staticmethod
    def _check_tls(run: '_Run', options: Dict[str, Any], data: CapabilityData) -> None:
        if not data.tls_required or options.get('tlsRequired') is True:
            return
        if run.framework is ComplianceFramework.HIGH:
            run.reject('HIGH-NET-001', f"Target of capability '{run.directive.capability}' mandates TLS "
                                       f"but the bind does not set tlsRequired (TLS requirement)")
        elif run.framework is ComplianceFramework.MODERATE:
            options['tlsRequired'] = True
            run.record('MOD-NET-001', 'enforced', 'info', 'tlsRequired forced to true')
        else:
            run.record('COM-NET-001', 'advisory', 'warning', 'Target mandates TLS; consider setting tlsRequired')

    @staticmethod
    def _check_network(run: '_Run', options: Dict[str, Any]) -> None:
        if run.framework is ComplianceFramework.HIGH and options.get('privateNetworkOnly') is not True:
            options['privateNetworkOnly'] = True
            run.record('HIGH-NET-002', 'enforced', 'info', 'privateNetworkOnly forced to true')

        for cidr in options.get('allowedCidrs') or ():
            try:
                network = ipaddress.ip_network(str(cidr), strict=False)
            except ValueError:
                run.reject_invalid(f"allowedCidrs entry {cidr!r} is not a valid CIDR block")
                continue
            if run.framework is ComplianceFramework.HIGH:
                if not _within(network, _RFC1918):
                    run.reject('HIGH-NET-003', f"Network peer {cidr} is outside RFC 1918 ranges")
            elif not _within(network, _PRIVATE_BLOCKS):
                if run.framework is ComplianceFramework.MODERATE:
                    run.reject('MOD-NET-002', f"Network peer {cidr} is not a private range")
                else:
                    run.record('COM-NET-002', 'advisory', 'warning', f"Network peer {cidr} is public")

    @staticmethod
    def _check_encryption(run: '_Run', data: CapabilityData) -> None:
        if data.kind not in ENCRYPTED_KINDS or data.encryption_at_rest is True:
            return
        if run.framework is ComplianceFramework.HIGH:
            run.reject('HIGH-ENC-001', f"Target '{data.type}' does not report encryption at rest")
        elif run.framework is ComplianceFramework.MODERATE:
            run.reject('MOD-ENC-001', f"Target '{data.type}' does not report encryption at rest")
        elif data.encryption_at_rest is False:
            run.record('COM-ENC-001', 'advisory', 'warning', f"Target '{data.type}' is not encrypted at rest")

    @staticmethod
    def _check_access(run: '_Run', directive: BindingDirective) -> None:
        if run.framework is ComplianceFramework.HIGH and directive.access is AccessLevel.ADMIN:
            run.reject('HIGH-IAM-001', f"Admin access to '{directive.capability}' is not permitted")


class _Run:
    """Accumulates actions for one enforcement pass."""

    def __init__(self, source: str, target: Optional[str], directive: BindingDirective, framework: ComplianceFramework, governance: Governance, path: str):
        self.source = source
        self.target = target
        self.directive = directive
        self.framework = framework
        self.governance = governance
        self.path = path
        self.actions: List[ComplianceAction] = []

    def record(self, rule_id: str, kind: str, severity: str, message: str, suppression_id: Optional[str] = None) -> None:
        rule = RULES[rule_id]
        action = ComplianceAction(
            rule_id=rule_id, framework=self.framework.value, requirement=rule.requirement,
            kind=kind, severity=severity, message=message, remediation=rule.remediation,
            suppression_id=suppression_id,
        )
        if kind != 'enforced':
            logger.warning("Compliance %s [%s] on %s: %s", kind, rule_id, self.source, message)
        self.actions.append(action)

    def reject(self, rule_id: str, message: str) -> None:
        suppressions = self.governance.suppressions_for(rule_id, self.source)
        if suppressions:
            self.record(rule_id, 'suppressed', 'warning', f"{message} (suppressed)", suppression_id=suppressions[0].id)
            return
        rule = RULES[rule_id]
        raise ComplianceViolationError(
            f"{message} [{rule_id}: {rule.requirement}]",
            requirement=rule.requirement, rule_id=rule_id, framework=self.framework.value,
            source=self.source, target=self.target, capability=self.directive.capability,
            path=self.path,
        )

    def reject_invalid(self, message: str) -> None:
        raise ComplianceViolationError(
            message, requirement='valid-cidr', rule_id='INVALID-CIDR', framework=self.framework.value,
            source=self.source, target=self.target, capability=self.directive.capability, path=f'{self.path}/options/allowedCidrs',
        )
