from __future__ import annotations

from typing import ClassVar, Dict, Tuple

from domain.manifest import AccessLevel

from ..models import BindingContext, BindingDraft
from .base import BaseBindingStrategy


class SecretBindingStrategy(BaseBindingStrategy):
    """Any component type may read a Secrets Manager secret."""

    strategy_id: ClassVar[str] = 'any-to-secret'
    source_types: ClassVar[Tuple[str, ...]] = ('*',)
    capabilities: ClassVar[Tuple[str, ...]] = ('secret:secretsmanager',)
    ACTIONS: ClassVar[Dict[AccessLevel, Tuple[str, ...]]] = {
        AccessLevel.READ: ('secretsmanager:GetSecretValue', 'secretsmanager:DescribeSecret'),
        AccessLevel.WRITE: ('secretsmanager:PutSecretValue',),
        AccessLevel.ADMIN: (
            'secretsmanager:GetSecretValue', 'secretsmanager:DescribeSecret',
            'secretsmanager:PutSecretValue', 'secretsmanager:RotateSecret',
        ),
    }

    def _build(self, context: BindingContext) -> BindingDraft:
        arn = context.capability_data.resources['arn']
        draft = BindingDraft()
        draft.environment = [self.env(context, 'secretArn', 'SECRET_ARN', arn)]
        draft.access_grants = [self.grant(
            self.actions_for(context.access), [arn],
            f'{context.access.value} access to secret {context.target}',
            self.transport_conditions(context),
        )]
        return draft
