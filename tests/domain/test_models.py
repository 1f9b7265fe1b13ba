from datetime import date

import pytest
from pydantic import ValidationError

from domain.bindings import AccessGrant, FrozenDict, NetworkRule, freeze, is_wildcard, thaw
from domain.capabilities import GenericCapabilityData, SqsQueueCapability, parse_capability_data
from domain.compliance import ComplianceFramework
from domain.fingerprint import canonical_json, fingerprint
from domain.manifest import BindingDirective, Manifest, SuppressionEntry


def test_framework_parsing_and_order():
    assert ComplianceFramework.parse('FedRAMP-High') is ComplianceFramework.HIGH
    assert ComplianceFramework.HIGH.is_at_least('moderate')
    assert not ComplianceFramework.COMMERCIAL.is_at_least(ComplianceFramework.MODERATE)
    with pytest.raises(ValueError):
        ComplianceFramework.parse('pci')


def test_manifest_environment_entries_are_normalized():
    manifest = Manifest(service='orders', environments={'dev': {'defaults': {'logLevel': 'debug'}}, 'prod': None, 'test': {'a': 1}})
    assert manifest.environments == {'dev': {'logLevel': 'debug'}, 'prod': {}, 'test': {'a': 1}}


def test_manifest_framework_alias():
    assert Manifest(service='orders', complianceFramework='fedramp-moderate').compliance_framework is ComplianceFramework.MODERATE


@pytest.mark.parametrize('kwargs', [
    {},
    {'to': 'queue', 'select': {'type': 'sqs-queue'}},
])
def test_bind_requires_exactly_one_target(kwargs):
    with pytest.raises(ValidationError):
        BindingDirective(capability='queue:sqs', access='write', **kwargs)


def test_selector_description():
    directive = BindingDirective(select={'type': 'sqs-queue', 'withLabels': {'tier': 'gold'}}, capability='queue:sqs', access='read')
    assert directive.describe_target() == "type 'sqs-queue' with labels {tier=gold}"


def test_suppression_dates_and_applies_to():
    entry = SuppressionEntry(id='MOD-NET-002', expiresOn=date(2027, 1, 1), appliesTo=[{'component': 'api'}, 'worker'])
    assert entry.expires_on == '2027-01-01'
    assert entry.applies_to == ('api', 'worker')


def test_capability_records_parse_by_type():
    record = parse_capability_data({'type': 'queue:sqs', 'resources': {'arn': 'arn:aws:sqs:x', 'url': 'https://q'}})
    assert isinstance(record, SqsQueueCapability)
    assert record.kind == 'queue'
    assert isinstance(parse_capability_data({'type': 'stream:kinesis'}), GenericCapabilityData)


def test_capability_records_require_identifiers():
    with pytest.raises(ValidationError):
        parse_capability_data({'type': 'queue:sqs', 'resources': {'arn': 'arn:aws:sqs:x'}})
    with pytest.raises(ValidationError):
        parse_capability_data({'type': 'db:postgres', 'resources': {'arn': 'arn:aws:rds:x'}})
    with pytest.raises(ValueError):
        parse_capability_data(['not', 'a', 'mapping'])


def test_resource_identifiers_put_primary_arn_first():
    record = parse_capability_data({'type': 'db:postgres', 'endpoint': 'h', 'port': 5432,
                                    'resources': {'secretArn': 'arn:aws:secretsmanager:s', 'arn': 'arn:aws:rds:db', 'name': 'db'}})
    assert record.resource_identifiers() == ['arn:aws:rds:db', 'arn:aws:secretsmanager:s']


def test_frozen_dict_is_read_only():
    frozen = freeze({'a': {'b': [1, {'c': 2}]}})
    assert isinstance(frozen['a'], FrozenDict)
    assert frozen['a']['b'] == (1, FrozenDict(c=2))
    for mutate in (lambda: frozen.__setitem__('x', 1), lambda: frozen.update(x=1), lambda: frozen.pop('a')):
        with pytest.raises(TypeError):
            mutate()
    assert thaw(frozen) == {'a': {'b': [1, {'c': 2}]}}


def test_grant_and_rule_validation():
    with pytest.raises(ValidationError):
        AccessGrant(actions=(), resources=('arn:x',))
    assert AccessGrant(actions=('*',), resources=('arn:x',)).is_unscoped
    with pytest.raises(ValidationError):
        NetworkRule(peer='sg-1', portFrom=5433, portTo=5432)


@pytest.mark.parametrize('actions, resources, expected', [
    (('sqs:SendMessage',), ('arn:aws:sqs:us-east-1:1:q',), ()),
    (('*',), ('arn:aws:sqs:us-east-1:1:q',), ('*',)),
    (('sqs:*',), ('arn:aws:sqs:us-east-1:1:q',), ('sqs:*',)),
    (('s3:GetObject',), ('arn:aws:s3:::bucket/*',), ()),
    (('s3:GetObject',), (' * ',), (' * ',)),
])
def test_grant_flags_bare_and_service_wide_wildcards(actions, resources, expected):
    grant = AccessGrant(actions=actions, resources=resources)
    assert grant.unscoped_entries == expected
    assert grant.is_unscoped is bool(expected)
    assert all(is_wildcard(v) for v in expected)


def test_canonical_json_ignores_key_order():
    assert canonical_json({'b': 1, 'a': [2, 'é']}) == '{"a":[2,"é"],"b":1}'
    assert fingerprint({'a': 1, 'b': 2}) == fingerprint({'b': 2, 'a': 1})
