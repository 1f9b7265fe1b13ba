"""
Capability Data: the externally observable shape a synthesized component
publishes for others to bind against. Records are discriminated by ``type``
(the namespaced capability string). Unknown capability types still parse,
into ``GenericCapabilityData``.
"""
from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, model_validator


def capability_kind(capability: str) -> str:
    """'queue:sqs' -> 'queue'."""
    return capability.split(':', 1)[0]


class CapabilityData(BaseModel):
    model_config = ConfigDict(frozen=True, extra='allow', populate_by_name=True)

    # Resource identifiers a record of this type must publish.
    REQUIRED_RESOURCES: ClassVar[Tuple[str, ...]] = ()

    type: str
    endpoint: Optional[str] = None
    port: Optional[int] = None
    region: Optional[str] = None
    resources: Dict[str, str] = Field(default_factory=dict)
    secrets: Dict[str, str] = Field(default_factory=dict)
    tls_required: bool = Field(default=False, alias='tlsRequired')
    encryption_at_rest: Optional[bool] = Field(default=None, alias='encryptionAtRest')
    security_group_id: Optional[str] = Field(default=None, alias='securityGroupId')
    vpc_endpoint: Optional[str] = Field(default=None, alias='vpcEndpoint')

    @model_validator(mode='after')
    def _required_identifiers(self) -> 'CapabilityData':
        missing = [key for key in self.REQUIRED_RESOURCES if not self.resources.get(key)]
        if missing:
            raise ValueError(f"Capability data of type '{self.type}' is missing resource identifier(s): {missing}")
        return self

    @property
    def kind(self) -> str:
        return capability_kind(self.type)

    @property
    def arn(self) -> Optional[str]:
        return self.resources.get('arn')

    def resource_identifiers(self) -> List[str]:
        """Every published ARN, the primary `arn` first, then by key."""
        ids = [self.resources['arn']] if self.resources.get('arn') else []
        ids.extend(v for k, v in sorted(self.resources.items()) if k != 'arn' and v.startswith('arn:'))
        return ids


class SqsQueueCapability(CapabilityData):
    REQUIRED_RESOURCES: ClassVar[Tuple[str, ...]] = ('arn', 'url')


class SnsTopicCapability(CapabilityData):
    REQUIRED_RESOURCES: ClassVar[Tuple[str, ...]] = ('arn',)


class S3BucketCapability(CapabilityData):
    REQUIRED_RESOURCES: ClassVar[Tuple[str, ...]] = ('arn', 'name')


class PostgresCapability(CapabilityData):
    REQUIRED_RESOURCES: ClassVar[Tuple[str, ...]] = ('arn',)

    database: Optional[str] = None

    @model_validator(mode='after')
    def _connection(self) -> 'PostgresCapability':
        if not self.endpoint or not self.port:
            raise ValueError("Capability data of type 'db:postgres' must publish 'endpoint' and 'port'")
        return self


class SecretCapability(CapabilityData):
    REQUIRED_RESOURCES: ClassVar[Tuple[str, ...]] = ('arn',)


class RedisCapability(CapabilityData):
    @model_validator(mode='after')
    def _connection(self) -> 'RedisCapability':
        if not self.endpoint:
            raise ValueError("Capability data of type 'cache:redis' must publish 'endpoint'")
        return self


class GenericCapabilityData(CapabilityData):
    pass


CAPABILITY_MODELS: Dict[str, Type[CapabilityData]] = {
    'queue:sqs': SqsQueueCapability,
    'topic:sns': SnsTopicCapability,
    'storage:s3': S3BucketCapability,
    'db:postgres': PostgresCapability,
    'secret:secretsmanager': SecretCapability,
    'cache:redis': RedisCapability,
}


def parse_capability_data(data: Any) -> CapabilityData:
    """Validates a published record into the model registered for its type."""
    if isinstance(data, CapabilityData):
        return data
    if not isinstance(data, Mapping) or not isinstance(data.get('type'), str):
        raise ValueError("Capability data must be a mapping with a string 'type'")
    model = CAPABILITY_MODELS.get(data['type'], GenericCapabilityData)
    return model.model_validate(dict(data))
