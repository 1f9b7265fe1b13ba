import json

import pytest

from core.registry.type_registry import ComponentTypeRegistry
from domain.ports.type_registry_port import ComponentTypeRegistryPort
from pipeline.exceptions import ConfigurationError


def test_registration_order_is_kept():
    registry = ComponentTypeRegistry([('b-type', {}), ('a-type', {'type': 'object'})])
    assert registry.list_types() == ['b-type', 'a-type']
    assert isinstance(registry, ComponentTypeRegistryPort)


def test_first_registration_wins():
    registry = ComponentTypeRegistry()
    assert registry.register('queue', {'title': 'first'})
    assert not registry.register('queue', {'title': 'second'})
    assert registry.get_config_schema('queue') == {'title': 'first'}


def test_returned_schemas_are_copies():
    registry = ComponentTypeRegistry({'queue': {'properties': {}}})
    registry.get_config_schema('queue')['properties']['x'] = {}
    assert registry.get_config_schema('queue') == {'properties': {}}
    assert registry.get_config_schema('unknown') is None


@pytest.mark.parametrize('component_type,schema', [('', {}), ('queue', ['not', 'a', 'dict'])])
def test_invalid_registrations(component_type, schema):
    with pytest.raises(ConfigurationError):
        ComponentTypeRegistry().register(component_type, schema)


def test_load_directory(tmp_path):
    (tmp_path / 'b-queue.schema.json').write_text(json.dumps({'type': 'object'}), encoding='utf-8')
    (tmp_path / 'a-thing.schema.json').write_text(json.dumps({'x-component-type': 'renamed'}), encoding='utf-8')
    (tmp_path / 'notes.txt').write_text('ignored', encoding='utf-8')

    registry = ComponentTypeRegistry.from_directory(tmp_path)
    assert registry.list_types() == ['renamed', 'b-queue']


def test_load_directory_errors(tmp_path):
    with pytest.raises(ConfigurationError):
        ComponentTypeRegistry.from_directory(tmp_path / 'missing')
    (tmp_path / 'broken.schema.json').write_text('{', encoding='utf-8')
    with pytest.raises(ConfigurationError):
        ComponentTypeRegistry.from_directory(tmp_path)


def test_shipped_schemas_cover_strategy_targets():
    registry = ComponentTypeRegistry.with_shipped_schemas()
    for component_type in ('lambda-api', 'lambda-worker', 'ecs-fargate-service', 'sqs-queue', 'sns-topic',
                           's3-bucket', 'rds-postgres', 'secrets-manager'):
        assert component_type in registry
