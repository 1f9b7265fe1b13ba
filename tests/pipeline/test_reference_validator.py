import pytest

from domain.manifest import Manifest
from pipeline.exceptions import CircularDependencyError, GovernanceValidationError, ManifestReferenceError
from pipeline.pipeline_config import PipelineConfig
from pipeline.processors.context_hydrator import ContextHydrator
from pipeline.processors.reference_validator import ReferenceValidator
from tests.conftest import REFERENCE_DATE


async def _hydrate(components, **extra):
    manifest = Manifest.model_validate({'service': 'orders', 'owner': 'team', 'components': components, **extra})
    return await ContextHydrator().hydrate(manifest, 'dev')


def _validator(**kwargs):
    return ReferenceValidator(PipelineConfig(reference_date=REFERENCE_DATE, **kwargs))


def _api(name='api', binds=(), labels=None):
    return {'name': name, 'type': 'lambda-api', 'config': {'handler': 'h'}, 'binds': list(binds), 'labels': labels or {}}


def _queue(name, labels=None):
    return {'name': name, 'type': 'sqs-queue', 'config': {}, 'labels': labels or {}}


@pytest.mark.asyncio
async def test_direct_target_resolves():
    hydrated = await _hydrate([_api(binds=[{'to': 'queue', 'capability': 'queue:sqs', 'access': 'write'}]), _queue('queue')])
    graph = _validator().validate(hydrated)
    (bind,) = graph.binds
    assert (bind.source, bind.target, bind.target_type) == ('api', 'queue', 'sqs-queue')
    assert bind.path == '/components/0/binds/0'
    assert graph.topological_order == ('queue', 'api')


@pytest.mark.asyncio
async def test_missing_target_is_a_reference_error():
    hydrated = await _hydrate([_api(binds=[{'to': 'ghost', 'capability': 'queue:sqs', 'access': 'write'}])])
    with pytest.raises(ManifestReferenceError) as exc_info:
        _validator().validate(hydrated)
    assert exc_info.value.rule == 'missing-target'
    assert 'ghost' in str(exc_info.value)


@pytest.mark.asyncio
async def test_selector_matches_exactly_one():
    select = {'select': {'type': 'sqs-queue', 'withLabels': {'tier': 'gold'}}, 'capability': 'queue:sqs', 'access': 'read'}
    hydrated = await _hydrate([
        _api(binds=[select]),
        _queue('gold-queue', {'tier': 'gold'}),
        _queue('silver-queue', {'tier': 'silver'}),
    ])
    graph = _validator().validate(hydrated)
    assert graph.binds[0].target == 'gold-queue'


@pytest.mark.asyncio
async def test_ambiguous_selector_lists_candidates():
    select = {'select': {'type': 'sqs-queue', 'withLabels': {'tier': 'gold'}}, 'capability': 'queue:sqs', 'access': 'read'}
    hydrated = await _hydrate([
        _api(binds=[select]),
        _queue('orders-queue', {'tier': 'gold'}),
        _queue('billing-queue', {'tier': 'gold'}),
    ])
    with pytest.raises(ManifestReferenceError) as exc_info:
        _validator().validate(hydrated)
    err = exc_info.value
    assert err.rule == 'selector-ambiguous'
    assert err.candidates == ['orders-queue', 'billing-queue']
    assert 'orders-queue' in str(err) and 'billing-queue' in str(err)


@pytest.mark.asyncio
async def test_selector_without_match():
    select = {'select': {'type': 'sqs-queue', 'withLabels': {'tier': 'platinum'}}, 'capability': 'queue:sqs', 'access': 'read'}
    hydrated = await _hydrate([_api(binds=[select]), _queue('q', {'tier': 'gold'})])
    with pytest.raises(ManifestReferenceError) as exc_info:
        _validator().validate(hydrated)
    assert exc_info.value.rule == 'selector-no-match'
    assert 'tier=platinum' in str(exc_info.value)


@pytest.mark.asyncio
async def test_duplicate_component_names():
    hydrated = await _hydrate([_queue('queue'), _queue('queue')])
    with pytest.raises(ManifestReferenceError) as exc_info:
        _validator().validate(hydrated)
    assert exc_info.value.rule == 'duplicate-component-name'
    assert exc_info.value.path == '/components/1/name'


@pytest.mark.asyncio
async def test_cycle_is_named():
    hydrated = await _hydrate([
        _api('a', binds=[{'to': 'b', 'capability': 'api:http', 'access': 'read'}]),
        _api('b', binds=[{'to': 'c', 'capability': 'api:http', 'access': 'read'}]),
        _api('c', binds=[{'to': 'a', 'capability': 'api:http', 'access': 'read'}]),
    ])
    with pytest.raises(CircularDependencyError) as exc_info:
        _validator().validate(hydrated)
    assert exc_info.value.cycle == ['a', 'b', 'c', 'a']


@pytest.mark.asyncio
async def test_invocation_policy_ignores_data_edges():
    hydrated = await _hydrate([
        _api('a', binds=[{'to': 'b', 'capability': 'queue:sqs', 'access': 'write'}]),
        _api('b', binds=[{'to': 'a', 'capability': 'queue:sqs', 'access': 'read'}]),
    ])
    with pytest.raises(CircularDependencyError):
        _validator(cycle_check='all').validate(hydrated)
    graph = _validator(cycle_check='invocation').validate(hydrated)
    assert len(graph.binds) == 2
    assert graph.topological_order == ('a', 'b')


@pytest.mark.asyncio
async def test_governance_is_checked_after_references():
    hydrated = await _hydrate(
        [_queue('queue')],
        governance={'suppress': [{'id': 'MOD-ENC-001', 'owner': 'sec', 'expiresOn': '2099-01-01', 'appliesTo': ['queue']}]},
    )
    with pytest.raises(GovernanceValidationError) as exc_info:
        _validator().validate(hydrated)
    assert 'justification' in str(exc_info.value)
