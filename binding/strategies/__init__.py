from __future__ import annotations

from ..registry import StrategyRegistry
from .base import BaseBindingStrategy, env_prefix
from .database_strategy import PostgresBindingStrategy
from .queue_strategy import COMPUTE_TYPES, SnsTopicBindingStrategy, SqsQueueBindingStrategy
from .secret_strategy import SecretBindingStrategy
from .storage_strategy import S3BucketBindingStrategy

DEFAULT_STRATEGIES = (
    SqsQueueBindingStrategy,
    SnsTopicBindingStrategy,
    S3BucketBindingStrategy,
    PostgresBindingStrategy,
    SecretBindingStrategy,
)


def default_strategy_registry() -> StrategyRegistry:
    return StrategyRegistry(cls() for cls in DEFAULT_STRATEGIES)


__all__ = [
    'BaseBindingStrategy',
    'COMPUTE_TYPES',
    'DEFAULT_STRATEGIES',
    'PostgresBindingStrategy',
    'S3BucketBindingStrategy',
    'SecretBindingStrategy',
    'SnsTopicBindingStrategy',
    'SqsQueueBindingStrategy',
    'default_strategy_registry',
    'env_prefix',
]
