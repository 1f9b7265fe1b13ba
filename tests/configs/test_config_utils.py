import copy


from configs.config_utils import ConfigMerger, merge_configs, merge_labeled


def test_nested_mappings_merge_key_by_key():
    base = {'a': 1, 'nested': {'x': 1, 'y': 2}}
    override = {'nested': {'y': 3, 'z': 4}, 'b': 2}
    assert ConfigMerger.merge(base, override) == {'a': 1, 'b': 2, 'nested': {'x': 1, 'y': 3, 'z': 4}}


def test_lists_are_replaced_not_concatenated():
    merged = ConfigMerger.merge({'subnets': ['a', 'b']}, {'subnets': ['c']})
    assert merged == {'subnets': ['c']}


def test_merge_is_idempotent():
    value = {'a': {'b': [1, 2], 'c': {'d': None}}, 'e': 'f'}
    assert ConfigMerger.merge(value, value) == value


def test_inputs_are_not_modified():
    base = {'nested': {'x': [1]}}
    override = {'nested': {'x': [2], 'y': {'z': 1}}}
    base_copy, override_copy = copy.deepcopy(base), copy.deepcopy(override)

    merged = ConfigMerger.merge(base, override)
    merged['nested']['y']['z'] = 99

    assert base == base_copy
    assert override == override_copy


def test_scalar_override_replaces_mapping():
    assert ConfigMerger.merge({'a': {'b': 1}}, {'a': 'flat'}) == {'a': 'flat'}


def test_merge_labeled_reports_contributing_layers():
    merged, labels = merge_labeled([('hardcoded', {'a': 1}), ('platform', {}), ('config', {'a': 2, 'b': 1})])
    assert merged == {'a': 2, 'b': 1}
    assert labels == ('hardcoded', 'config')


def test_merge_configs_applies_layers_left_to_right():
    result = merge_configs({'a': 1, 'b': 1}, {'a': 2}, {}, {'a': 3, 'c': 3})
    assert result == {'a': 3, 'b': 1, 'c': 3}
