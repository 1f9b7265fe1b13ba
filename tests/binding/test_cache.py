import asyncio

import pytest

from binding.cache import BindingResultCache
from domain.bindings import AccessGrant, BindingResult


def _result(source='api'):
    return BindingResult(
        source=source, target='queue', capability='queue:sqs', access='write',
        access_grants=(AccessGrant(actions=('sqs:SendMessage',), resources=('arn:aws:sqs:us-east-1:1:q',)),),
        metadata={'bindingId': f'bnd-{source}'},
    )


@pytest.mark.asyncio
async def test_put_if_absent_is_write_once():
    cache = BindingResultCache()
    first = await cache.put_if_absent('k', _result('api'))
    second = await cache.put_if_absent('k', _result('worker'))
    assert second is first
    assert cache.get('k').source == 'api'
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_computation():
    cache = BindingResultCache()
    calls = 0

    async def factory():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return _result()

    results = await asyncio.gather(*(cache.get_or_compute('k', factory) for _ in range(5)))
    assert calls == 1
    assert all(r is results[0] for r in results)
    assert cache.stats()['misses'] == 1
    assert cache.stats()['in_flight'] == 0


@pytest.mark.asyncio
async def test_cached_value_is_a_hit():
    cache = BindingResultCache()

    async def factory():
        return _result()

    await cache.get_or_compute('k', factory)
    await cache.get_or_compute('k', factory)
    assert cache.hits == 1 and cache.misses == 1


@pytest.mark.asyncio
async def test_failures_are_not_cached():
    cache = BindingResultCache()
    attempts = 0

    async def flaky():
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError('boom')
        return _result()

    with pytest.raises(RuntimeError):
        await cache.get_or_compute('k', flaky)
    assert 'k' not in cache
    result = await cache.get_or_compute('k', flaky)
    assert result.source == 'api'
    assert attempts == 2
