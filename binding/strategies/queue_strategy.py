"""Compute → SQS queue and compute → SNS topic bindings."""
from __future__ import annotations

from typing import ClassVar, Dict, Tuple

from domain.manifest import AccessLevel

from ..models import BindingContext, BindingDraft
from .base import BaseBindingStrategy

COMPUTE_TYPES: Tuple[str, ...] = ('lambda-api', 'lambda-worker', 'ecs-fargate-service')


class SqsQueueBindingStrategy(BaseBindingStrategy):
    strategy_id: ClassVar[str] = 'compute-to-sqs'
    source_types: ClassVar[Tuple[str, ...]] = COMPUTE_TYPES
    capabilities: ClassVar[Tuple[str, ...]] = ('queue:sqs',)
    ACTIONS: ClassVar[Dict[AccessLevel, Tuple[str, ...]]] = {
        AccessLevel.READ: (
            'sqs:ReceiveMessage', 'sqs:DeleteMessage',
            'sqs:GetQueueAttributes', 'sqs:ChangeMessageVisibility',
        ),
        AccessLevel.WRITE: ('sqs:SendMessage', 'sqs:GetQueueAttributes'),
        AccessLevel.ADMIN: (
            'sqs:SendMessage', 'sqs:ReceiveMessage', 'sqs:DeleteMessage',
            'sqs:GetQueueAttributes', 'sqs:ChangeMessageVisibility',
            'sqs:PurgeQueue', 'sqs:SetQueueAttributes',
        ),
    }

    def _build(self, context: BindingContext) -> BindingDraft:
        data = context.capability_data
        arn = data.resources['arn']
        draft = BindingDraft()
        draft.environment = [e for e in (
            self.env(context, 'queueUrl', 'QUEUE_URL', data.resources.get('url')),
            self.env(context, 'queueArn', 'QUEUE_ARN', arn),
        ) if e is not None]
        draft.access_grants = [self.grant(
            self.actions_for(context.access), [arn],
            f'{context.access.value} access to queue {context.target}',
            self.transport_conditions(context),
        )]
        draft.metadata = {'queueArn': arn}
        return draft


class SnsTopicBindingStrategy(BaseBindingStrategy):
    strategy_id: ClassVar[str] = 'compute-to-sns'
    source_types: ClassVar[Tuple[str, ...]] = COMPUTE_TYPES
    capabilities: ClassVar[Tuple[str, ...]] = ('topic:sns',)
    ACTIONS: ClassVar[Dict[AccessLevel, Tuple[str, ...]]] = {
        AccessLevel.READ: ('sns:GetTopicAttributes', 'sns:ListSubscriptionsByTopic'),
        AccessLevel.WRITE: ('sns:Publish',),
        AccessLevel.ADMIN: (
            'sns:Publish', 'sns:GetTopicAttributes', 'sns:ListSubscriptionsByTopic',
            'sns:SetTopicAttributes', 'sns:Subscribe',
        ),
    }

    def _build(self, context: BindingContext) -> BindingDraft:
        arn = context.capability_data.resources['arn']
        draft = BindingDraft()
        draft.environment = [self.env(context, 'topicArn', 'TOPIC_ARN', arn)]
        draft.access_grants = [self.grant(
            self.actions_for(context.access), [arn],
            f'{context.access.value} access to topic {context.target}',
            self.transport_conditions(context),
        )]
        return draft
