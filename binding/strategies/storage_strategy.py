from __future__ import annotations

from typing import ClassVar, Dict, List, Tuple

from domain.manifest import AccessLevel

from ..models import BindingContext, BindingDraft
from .base import BaseBindingStrategy
from .queue_strategy import COMPUTE_TYPES


class S3BucketBindingStrategy(BaseBindingStrategy):
    """
    Bucket-level actions are granted on the bucket ARN and object-level
    actions on ``<bucket arn>/*``. An optional ``prefix`` option narrows the
    object grant to ``<bucket arn>/<prefix>*``.
    """

    strategy_id: ClassVar[str] = 'compute-to-s3'
    source_types: ClassVar[Tuple[str, ...]] = COMPUTE_TYPES
    capabilities: ClassVar[Tuple[str, ...]] = ('storage:s3',)
    BUCKET_ACTIONS: ClassVar[Dict[AccessLevel, Tuple[str, ...]]] = {
        AccessLevel.READ: ('s3:ListBucket',),
        AccessLevel.WRITE: (),
        AccessLevel.READWRITE: ('s3:ListBucket',),
        AccessLevel.ADMIN: ('s3:ListBucket', 's3:GetBucketPolicy', 's3:PutBucketPolicy'),
    }
    ACTIONS: ClassVar[Dict[AccessLevel, Tuple[str, ...]]] = {
        AccessLevel.READ: ('s3:GetObject',),
        AccessLevel.WRITE: ('s3:PutObject', 's3:DeleteObject'),
        AccessLevel.ADMIN: ('s3:GetObject', 's3:PutObject', 's3:DeleteObject', 's3:PutObjectAcl'),
    }

    def _build(self, context: BindingContext) -> BindingDraft:
        data = context.capability_data
        arn = data.resources['arn']
        prefix = str(context.option('prefix') or '').lstrip('/')
        conditions = self.transport_conditions(context)

        draft = BindingDraft()
        draft.environment = [
            self.env(context, 'bucketName', 'BUCKET_NAME', data.resources['name']),
            self.env(context, 'bucketArn', 'BUCKET_ARN', arn),
        ]
        if prefix:
            draft.environment.append(self.env(context, 'bucketPrefix', 'BUCKET_PREFIX', prefix))

        grants: List = []
        bucket_actions = self.BUCKET_ACTIONS.get(context.access, ())
        if bucket_actions:
            grants.append(self.grant(bucket_actions, [arn], f'bucket access to {context.target}', conditions))
        grants.append(self.grant(
            self.actions_for(context.access), [f'{arn}/{prefix}*'],
            f'{context.access.value} object access to {context.target}', conditions,
        ))
        draft.access_grants = grants
        return draft
