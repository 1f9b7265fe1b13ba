import pytest

from binding.models import BindingContext
from binding.strategies import (
    PostgresBindingStrategy,
    S3BucketBindingStrategy,
    SecretBindingStrategy,
    SnsTopicBindingStrategy,
    SqsQueueBindingStrategy,
    default_strategy_registry,
    env_prefix,
)
from core.cancellation import CancellationToken
from domain.capabilities import parse_capability_data
from domain.compliance import ComplianceFramework
from domain.manifest import AccessLevel, BindingDirective
from pipeline.exceptions import ResolutionCancelledError
from tests.conftest import (
    BUCKET_ARN,
    DB_ARN,
    DB_SECRET_ARN,
    QUEUE_ARN,
    SECRET_ARN,
    TOPIC_ARN,
    capability_records,
)


def _context(target, capability, access, options=None, source_type='lambda-api', **kwargs):
    record = capability_records()[target][0]
    return BindingContext(
        source='api', source_type=source_type, target=target, target_type='any',
        directive=BindingDirective(to=target, capability=capability, access=access, options=options or {}),
        capability_data=parse_capability_data(record),
        framework=ComplianceFramework.COMMERCIAL, environment='dev', binding_id='bnd-test',
        options=options or {}, **kwargs,
    )


def test_env_prefix():
    assert env_prefix('orders-queue') == 'ORDERS_QUEUE'
    assert env_prefix('api.v2') == 'API_V2'


def test_default_registry_covers_shipped_pairs():
    registry = default_strategy_registry()
    assert registry.find('lambda-api', 'queue:sqs').strategy_id == 'compute-to-sqs'
    assert registry.find('ecs-fargate-service', 'db:postgres').strategy_id == 'compute-to-postgres'
    assert registry.find('anything', 'secret:secretsmanager').strategy_id == 'any-to-secret'
    assert registry.find('sqs-queue', 'queue:sqs') is None


@pytest.mark.asyncio
async def test_sqs_read_actions():
    draft = await SqsQueueBindingStrategy().bind(_context('queue', 'queue:sqs', 'read'))
    (grant,) = draft.access_grants
    assert 'sqs:ReceiveMessage' in grant.actions
    assert 'sqs:SendMessage' not in grant.actions
    assert grant.resources == (QUEUE_ARN,)
    assert draft.strategy_id == 'compute-to-sqs'


def test_sqs_readwrite_is_union_of_read_and_write():
    strategy = SqsQueueBindingStrategy()
    actions = strategy.actions_for(AccessLevel.READWRITE)
    assert set(actions) == set(strategy.ACTIONS[AccessLevel.READ]) | set(strategy.ACTIONS[AccessLevel.WRITE])
    assert len(actions) == len(set(actions))


@pytest.mark.asyncio
async def test_transport_conditions_follow_options():
    context = _context('queue', 'queue:sqs', 'write', options={'tlsRequired': True, 'privateNetworkOnly': True})
    draft = await SqsQueueBindingStrategy().bind(context)
    conditions = draft.access_grants[0].conditions
    assert conditions['Bool'] == {'aws:SecureTransport': 'true'}
    assert conditions['StringEquals'] == {'aws:SourceVpce': 'vpce-0abc'}


@pytest.mark.asyncio
async def test_sns_publish():
    draft = await SnsTopicBindingStrategy().bind(_context('events', 'topic:sns', 'write'))
    assert draft.access_grants[0].actions == ('sns:Publish',)
    assert draft.access_grants[0].resources == (TOPIC_ARN,)
    assert draft.environment[0].default_name == 'EVENTS_TOPIC_ARN'


@pytest.mark.asyncio
async def test_s3_splits_bucket_and_object_grants():
    draft = await S3BucketBindingStrategy().bind(_context('uploads', 'storage:s3', 'read'))
    bucket, objects = draft.access_grants
    assert bucket.actions == ('s3:ListBucket',)
    assert bucket.resources == (BUCKET_ARN,)
    assert objects.actions == ('s3:GetObject',)
    assert objects.resources == (f'{BUCKET_ARN}/*',)


@pytest.mark.asyncio
async def test_s3_write_with_prefix():
    draft = await S3BucketBindingStrategy().bind(_context('uploads', 'storage:s3', 'write', options={'prefix': '/incoming/'}))
    (objects,) = draft.access_grants
    assert objects.resources == (f'{BUCKET_ARN}/incoming/*',)
    assert {e.key: e.value for e in draft.environment}['bucketPrefix'] == 'incoming/'


@pytest.mark.asyncio
async def test_postgres_connection_env_and_network():
    context = _context('orders-db', 'db:postgres', 'readwrite', options={'tlsRequired': True, 'allowedCidrs': ['10.1.0.0/16']})
    draft = await PostgresBindingStrategy().bind(context)

    env = {e.default_name: e.value for e in draft.environment}
    assert env['ORDERS_DB_DB_HOST'] == 'orders-db.abc.us-east-1.rds.amazonaws.com'
    assert env['ORDERS_DB_DB_PORT'] == '5432'
    assert env['ORDERS_DB_DB_NAME'] == 'orders'
    assert env['ORDERS_DB_DB_SECRET_ARN'] == DB_SECRET_ARN
    assert env['ORDERS_DB_DB_SSLMODE'] == 'require'

    connect, secret = draft.access_grants
    assert connect.actions == ('rds-db:connect',) and connect.resources == (DB_ARN,)
    assert secret.actions == ('secretsmanager:GetSecretValue',) and secret.resources == (DB_SECRET_ARN,)

    assert [(r.peer, r.port_from, r.direction) for r in draft.network_rules] == [
        ('sg-0db', 5432, 'egress'),
        ('10.1.0.0/16', 5432, 'egress'),
    ]


@pytest.mark.asyncio
async def test_secret_strategy_accepts_any_source_type():
    draft = await SecretBindingStrategy().bind(_context('api-key', 'secret:secretsmanager', 'read', source_type='custom-job'))
    assert draft.access_grants[0].resources == (SECRET_ARN,)
    assert 'secretsmanager:PutSecretValue' not in draft.access_grants[0].actions


@pytest.mark.asyncio
async def test_bind_checks_cancellation():
    token = CancellationToken()
    token.cancel()
    with pytest.raises(ResolutionCancelledError):
        await SqsQueueBindingStrategy().bind(_context('queue', 'queue:sqs', 'write', cancel_token=token))
