from __future__ import annotations

from typing import ClassVar, Dict, Tuple

from domain.manifest import AccessLevel

from ..models import BindingContext, BindingDraft
from .base import BaseBindingStrategy
from .queue_strategy import COMPUTE_TYPES

DEFAULT_POSTGRES_PORT = 5432


class PostgresBindingStrategy(BaseBindingStrategy):
    """
    Connection details go into env vars. IAM auth is granted on the instance
    ARN; when the target publishes ``secretArn`` the credentials secret is
    readable too. Network access is egress on the database port.
    """

    strategy_id: ClassVar[str] = 'compute-to-postgres'
    source_types: ClassVar[Tuple[str, ...]] = COMPUTE_TYPES
    capabilities: ClassVar[Tuple[str, ...]] = ('db:postgres',)
    ACTIONS: ClassVar[Dict[AccessLevel, Tuple[str, ...]]] = {
        AccessLevel.READ: ('rds-db:connect',),
        AccessLevel.WRITE: ('rds-db:connect',),
        AccessLevel.READWRITE: ('rds-db:connect',),
        AccessLevel.ADMIN: ('rds-db:connect', 'rds:DescribeDBInstances'),
    }

    def _build(self, context: BindingContext) -> BindingDraft:
        data = context.capability_data
        arn = data.resources['arn']
        port = data.port or DEFAULT_POSTGRES_PORT
        database = getattr(data, 'database', None) or context.target_config.get('dbName')
        secret_arn = data.resources.get('secretArn')

        draft = BindingDraft()
        draft.environment = [e for e in (
            self.env(context, 'host', 'DB_HOST', data.endpoint),
            self.env(context, 'port', 'DB_PORT', port),
            self.env(context, 'database', 'DB_NAME', database),
            self.env(context, 'secretArn', 'DB_SECRET_ARN', secret_arn),
            self.env(context, 'sslMode', 'DB_SSLMODE', 'require' if context.option('tlsRequired') is True else None),
        ) if e is not None]

        draft.access_grants = [self.grant(
            self.actions_for(context.access), [arn], f'{context.access.value} connect to {context.target}',
        )]
        if secret_arn:
            draft.access_grants.append(self.grant(
                ('secretsmanager:GetSecretValue',), [secret_arn], f'credentials for {context.target}',
                self.transport_conditions(context),
            ))
        draft.network_rules = self.egress_rules(context, port, f'postgres {context.target}')
        draft.metadata = {'port': port}
        return draft
