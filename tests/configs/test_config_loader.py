from pathlib import Path

import pytest

from configs.config_loader import ALL_TYPES, DEFAULT_CONFIG, ConfigLoader, DefaultLayers
from pipeline.exceptions import ConfigurationError
from pipeline.pipeline_config import PipelineConfig


@pytest.mark.asyncio
async def test_shipped_resolver_config_loads(monkeypatch):
    monkeypatch.delenv('MANIFEST_RESOLVER_CONCURRENCY', raising=False)
    cfg = await ConfigLoader().load_resolver_config()
    assert cfg['pipeline']['cycle_check'] == 'all'
    assert PipelineConfig.from_mapping(cfg).max_concurrency == 8


@pytest.mark.asyncio
async def test_environment_variable_expansion(monkeypatch):
    monkeypatch.setenv('MANIFEST_RESOLVER_CONCURRENCY', '3')
    cfg = await ConfigLoader().load_resolver_config()
    assert cfg['pipeline']['max_concurrency'] == '3'
    assert PipelineConfig.from_mapping(cfg).max_concurrency == 3


@pytest.mark.asyncio
async def test_provided_config_merges_over_defaults():
    cfg = await ConfigLoader().load_resolver_config(provided_config={'pipeline': {'cycle_check': 'invocation'}})
    assert cfg['pipeline']['cycle_check'] == 'invocation'
    assert cfg['pipeline']['max_concurrency'] == DEFAULT_CONFIG['pipeline']['max_concurrency']


@pytest.mark.asyncio
async def test_env_specific_file_overrides_defaults(tmp_path):
    _write(tmp_path / 'configs' / 'default' / 'resolver_config.yaml', 'pipeline:\n  max_concurrency: 4\n')
    _write(tmp_path / 'configs' / 'ci' / 'resolver_config.yaml', 'pipeline:\n  cycle_check: invocation\n')

    cfg = await ConfigLoader(package_root=tmp_path).load_resolver_config(env='ci')
    assert cfg['env'] == 'ci'
    assert cfg['pipeline']['max_concurrency'] == 4
    assert cfg['pipeline']['cycle_check'] == 'invocation'


@pytest.mark.asyncio
async def test_invalid_cycle_check_is_rejected(tmp_path):
    _write(tmp_path / 'configs' / 'default' / 'resolver_config.yaml', 'pipeline:\n  cycle_check: sometimes\n')
    with pytest.raises(ConfigurationError):
        await ConfigLoader(package_root=tmp_path).load_resolver_config()


@pytest.mark.asyncio
async def test_unparseable_yaml_is_a_configuration_error(tmp_path):
    _write(tmp_path / 'configs' / 'default' / 'resolver_config.yaml', 'pipeline: [unclosed\n')
    with pytest.raises(ConfigurationError):
        await ConfigLoader(package_root=tmp_path).load_resolver_config()


@pytest.mark.asyncio
async def test_shipped_default_layers():
    layers = await ConfigLoader().load_config_layers()
    assert {'commercial', 'moderate', 'high'} <= set(layers.compliance)
    assert {'dev', 'staging', 'prod'} <= set(layers.environments)
    assert layers.platform['sqs-queue']['deadLetterQueue']['enabled'] is True


@pytest.mark.asyncio
async def test_layer_file_with_non_mapping_defaults(tmp_path):
    _write(tmp_path / 'compliance' / 'high.yaml', 'defaults:\n  s3-bucket: [not, a, mapping]\n')
    with pytest.raises(ConfigurationError):
        await ConfigLoader().load_config_layers(defaults_dir=tmp_path)


def test_layers_for_merges_wildcard_beneath_type():
    layers = DefaultLayers(
        hardcoded={ALL_TYPES: {}, 'sqs-queue': {'fifo': False}},
        compliance={'high': {ALL_TYPES: {'audit': True}, 'sqs-queue': {'encryption': 'KMS'}}},
        platform={ALL_TYPES: {'tags': {'a': 1}}},
        environments={'prod': {'sqs-queue': {'fifo': True}}},
    )
    result = layers.layers_for('sqs-queue', 'high', 'prod')
    assert [label for label, _ in result] == ['hardcoded', 'compliance:high', 'platform', 'environment:prod']
    assert result[1][1] == {'audit': True, 'encryption': 'KMS'}
    assert result[3][1] == {'fifo': True}


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding='utf-8')
