import pytest

from core.cancellation import CancellationToken
from domain.capabilities import SqsQueueCapability
from domain.ports.capability_provider_port import CapabilityProviderPort
from infrastructure.capabilities import StaticCapabilityProvider
from pipeline.exceptions import ConfigurationError, ResolutionCancelledError
from tests.conftest import QUEUE_ARN, QUEUE_URL, capability_records


@pytest.mark.asyncio
async def test_lookup_by_component_and_capability():
    provider = StaticCapabilityProvider(capability_records())
    assert isinstance(provider, CapabilityProviderPort)

    record = await provider.get_capability_data('queue', 'queue:sqs')
    assert isinstance(record, SqsQueueCapability)
    assert record.arn == QUEUE_ARN
    assert await provider.get_capability_data('queue', 'topic:sns') is None
    assert await provider.get_capability_data('nobody', 'queue:sqs') is None
    assert provider.calls == 3


def test_from_mapping_accepts_capability_keyed_bodies():
    provider = StaticCapabilityProvider.from_mapping({
        'queue': {'queue:sqs': {'resources': {'arn': QUEUE_ARN, 'url': QUEUE_URL}}},
    })
    assert ('queue', 'queue:sqs') in provider.published()


def test_from_mapping_rejects_scalars():
    with pytest.raises(ConfigurationError):
        StaticCapabilityProvider.from_mapping({'queue': 'queue:sqs'})


def test_from_yaml(tmp_path):
    path = tmp_path / 'capabilities.yaml'
    path.write_text(
        'queue:\n'
        '  - type: queue:sqs\n'
        f'    resources: {{arn: "{QUEUE_ARN}", url: "{QUEUE_URL}"}}\n',
        encoding='utf-8',
    )
    provider = StaticCapabilityProvider.from_yaml(path)
    assert provider.published()[('queue', 'queue:sqs')].resources['url'] == QUEUE_URL

    with pytest.raises(ConfigurationError):
        StaticCapabilityProvider.from_yaml(tmp_path / 'missing.yaml')


@pytest.mark.asyncio
async def test_cancelled_lookup():
    token = CancellationToken()
    token.cancel()
    with pytest.raises(ResolutionCancelledError):
        await StaticCapabilityProvider(capability_records()).get_capability_data('queue', 'queue:sqs', token)
