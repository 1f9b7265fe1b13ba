import pytest

from pipeline.exceptions import ParseError
from pipeline.processors.manifest_parser import ManifestParser, parse


@pytest.fixture
def parser():
    return ManifestParser()


def test_yaml_document_parses_to_plain_tree(parser):
    tree = parser.parse("service: orders\ncomponents:\n  - name: api\n    type: lambda-api\n")
    assert tree == {'service': 'orders', 'components': [{'name': 'api', 'type': 'lambda-api'}]}


def test_json_is_accepted(parser):
    tree = parser.parse('{"service": "orders", "components": []}')
    assert tree == {'service': 'orders', 'components': []}


@pytest.mark.parametrize('text', ['', '   \n\n', '# only a comment\n'])
def test_empty_document_parses_to_empty_mapping(parser, text):
    assert parser.parse(text) == {}


def test_dates_are_kept_as_text(parser):
    tree = parser.parse('expiresOn: 2027-01-31\n')
    assert tree == {'expiresOn': '2027-01-31'}


def test_tab_indentation_is_rejected_with_location(parser):
    with pytest.raises(ParseError) as exc_info:
        parser.parse('service: orders\ncomponents:\n\t- name: api\n')
    err = exc_info.value
    assert err.rule == 'indentation'
    assert err.location == (3, 1)


def test_duplicate_keys_are_rejected(parser):
    with pytest.raises(ParseError) as exc_info:
        parser.parse('service: orders\nowner: a\nservice: billing\n')
    err = exc_info.value
    assert err.rule == 'duplicate-key'
    assert 'service' in err.message
    assert err.location[0] == 3


def test_duplicate_keys_in_nested_mapping_are_rejected(parser):
    with pytest.raises(ParseError) as exc_info:
        parser.parse('components:\n  - name: api\n    name: other\n')
    assert exc_info.value.rule == 'duplicate-key'


def test_duplicate_keys_in_json_are_rejected(parser):
    with pytest.raises(ParseError) as exc_info:
        parser.parse('{"service": "a", "service": "b"}')
    assert exc_info.value.rule == 'duplicate-key'


def test_multiple_documents_are_rejected(parser):
    with pytest.raises(ParseError) as exc_info:
        parser.parse('service: a\n---\nservice: b\n')
    assert exc_info.value.rule == 'multiple-documents'


def test_syntax_error_reports_line_and_column(parser):
    with pytest.raises(ParseError) as exc_info:
        parser.parse('service: [unclosed\nowner: x\n', source='broken.yaml')
    err = exc_info.value
    assert err.rule == 'syntax'
    assert err.location is not None
    assert err.stage == 'parse'


def test_invalid_json_reports_location(parser):
    with pytest.raises(ParseError) as exc_info:
        parser.parse('{"service": }')
    assert exc_info.value.location == (1, 13)


def test_bytes_input_is_decoded(parser):
    assert parser.parse('owner: "zoë"\n'.encode('utf-8')) == {'owner': 'zoë'}


def test_parse_file_missing_file(parser, tmp_path):
    with pytest.raises(ParseError) as exc_info:
        parser.parse_file(tmp_path / 'missing.yaml')
    assert exc_info.value.rule == 'io'


def test_parse_file_reads_yaml(parser, tmp_path):
    path = tmp_path / 'manifest.yaml'
    path.write_text('service: orders\n', encoding='utf-8')
    assert parser.parse_file(path) == {'service': 'orders'}


def test_module_level_parse():
    assert parse('a: 1') == {'a': 1}
