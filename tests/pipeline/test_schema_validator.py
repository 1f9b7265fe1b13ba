import pytest

from core.schema_cache import SchemaCache
from domain.compliance import ComplianceFramework
from pipeline.exceptions import SchemaValidationError
from pipeline.processors.manifest_parser import parse
from pipeline.processors.schema_composer import SchemaComposer
from pipeline.processors.schema_validator import SchemaValidator, json_pointer, locate_component


@pytest.fixture
def master_schema(type_registry):
    return SchemaComposer().compose_from_registry(type_registry)


@pytest.fixture
def validator():
    return SchemaValidator(SchemaCache())


async def _violations(validator, master_schema, text):
    with pytest.raises(SchemaValidationError) as exc_info:
        await validator.validate(parse(text), master_schema)
    return exc_info.value.violations


@pytest.mark.asyncio
async def test_valid_manifest_becomes_model(validator, master_schema, api_queue_manifest):
    manifest = await validator.validate(parse(api_queue_manifest), master_schema)
    assert manifest.service == 'orders'
    assert manifest.component_names() == ['api', 'queue']
    assert manifest.components[0].binds[0].to == 'queue'
    assert manifest.compliance_framework is None


@pytest.mark.asyncio
async def test_framework_aliases_are_normalized(validator, master_schema, api_queue_manifest):
    manifest = await validator.validate(parse('complianceFramework: fedramp-high\n' + api_queue_manifest), master_schema)
    assert manifest.compliance_framework is ComplianceFramework.HIGH


@pytest.mark.asyncio
async def test_unknown_type_lists_allowed_types(validator, master_schema):
    violations = await _violations(validator, master_schema, """
service: orders
owner: team
components:
  - name: mainframe
    type: cobol-batch
    config: {}
""")
    type_errors = [v for v in violations if v.path == '/components/0/type']
    assert len(type_errors) == 1
    err = type_errors[0]
    assert err.rule == 'enum'
    assert 'cobol-batch' in err.message
    assert 'lambda-api' in err.message
    assert 'lambda-api' in err.allowed_values
    assert err.component_name == 'mainframe'
    assert err.component_type == 'cobol-batch'


@pytest.mark.asyncio
async def test_all_violations_are_aggregated_and_sorted(validator, master_schema):
    violations = await _violations(validator, master_schema, """
service: Orders
components:
  - name: api
    type: lambda-api
    config:
      memorySize: 64
  - name: db
    type: rds-postgres
""")
    paths = [v.path for v in violations]
    assert paths == sorted(paths)
    by_path = {(v.path, v.rule) for v in violations}
    assert ('', 'required') in by_path                         # owner
    assert ('/service', 'pattern') in by_path
    assert ('/components/0/config', 'required') in by_path      # handler
    assert ('/components/0/config/memorySize', 'minimum') in by_path
    assert ('/components/1', 'required') in by_path             # config


@pytest.mark.asyncio
async def test_violation_carries_scalar_value_and_owner(validator, master_schema):
    violations = await _violations(validator, master_schema, """
service: orders
owner: team
components:
  - name: api
    type: lambda-api
    config:
      handler: main.handler
      memorySize: 64
""")
    (v,) = violations
    assert v.path == '/components/0/config/memorySize'
    assert v.value == 64
    assert v.component_name == 'api'
    assert v.component_type == 'lambda-api'


@pytest.mark.asyncio
async def test_tokens_and_per_environment_maps_pass_validation(validator, master_schema):
    manifest = await validator.validate(parse("""
service: orders
owner: team
components:
  - name: api
    type: lambda-api
    config:
      handler: main.handler
      memorySize: {dev: 256, prod: 1024}
      debug: ${envIs:dev}
"""), master_schema)
    assert manifest.components[0].config['debug'] == '${envIs:dev}'


@pytest.mark.asyncio
async def test_values_that_only_look_deferred_are_violations(validator, type_registry):
    master = SchemaComposer().compose_from_registry(type_registry, environment_keys=['default', 'dev', 'prod'])
    violations = await _violations(validator, master, """
service: orders
owner: team
components:
  - name: api
    type: lambda-api
    config:
      handler: main.handler
      memorySize: {not: an-integer}
      timeout: "30 ${env:unit}"
""")
    by_path = {v.path: v for v in violations}
    assert set(by_path) == {'/components/0/config/memorySize', '/components/0/config/timeout'}
    assert all(v.rule == 'type' and v.component_name == 'api' for v in violations)


@pytest.mark.asyncio
async def test_bind_needs_exactly_one_target(validator, master_schema):
    violations = await _violations(validator, master_schema, """
service: orders
owner: team
components:
  - name: api
    type: lambda-api
    config: {handler: main.handler}
    binds:
      - to: queue
        select: {type: sqs-queue}
        capability: queue:sqs
        access: write
  - name: queue
    type: sqs-queue
    config: {}
""")
    messages = [v.message for v in violations if v.path == '/components/0/binds/0']
    assert "A bind must declare exactly one of 'to' or 'select'" in messages


@pytest.mark.asyncio
async def test_compiled_validator_is_cached(master_schema, api_queue_manifest):
    cache = SchemaCache()
    validator = SchemaValidator(cache)
    await validator.validate(parse(api_queue_manifest), master_schema)
    await validator.validate(parse(api_queue_manifest), master_schema)
    assert cache.stats() == {'entries': 1, 'hits': 1, 'misses': 1}


def test_json_pointer_escapes():
    assert json_pointer(['components', 0, 'a/b', 'c~d']) == '/components/0/a~1b/c~0d'
    assert json_pointer([]) == ''


def test_locate_component_walks_back_to_component():
    tree = {'components': [{'name': 'api', 'type': 'lambda-api', 'config': {'x': 1}}]}
    assert locate_component(tree, ['components', 0, 'config', 'x']) == ('api', 'lambda-api')
    assert locate_component(tree, ['service']) == (None, None)
