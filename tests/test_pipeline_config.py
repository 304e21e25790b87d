import logging

import pytest

from config.logger_config import configure_logger
from config.pipeline_config import PipelineSettings, load_pipeline_settings
from utils.config_utils import ConfigLoaderError, load_config


def _clear_credentials(monkeypatch):
    # setenv first so the variables are removed again after the test
    for name in ("NCBI_API_KEY", "NCBI_EMAIL"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def no_env(tmp_path, monkeypatch):
    """Points settings at an empty .env and clears NCBI credentials."""
    _clear_credentials(monkeypatch)
    env_path = tmp_path / ".env"
    env_path.write_text("")
    return env_path


def test_packaged_defaults(no_env):
    settings = load_pipeline_settings(env_path=no_env)
    assert settings.sample_accession_pattern == r"^GSM\d+$"
    assert settings.superseries_marker == "SuperSeries of:"
    assert settings.symbol_vocabulary == ["gene", "symbol"]
    assert settings.max_workers == 3
    assert settings.ncbi_api_key is None


def test_override_file(tmp_path, no_env):
    override = tmp_path / "override.yaml"
    override.write_text("max_workers: 2\nsymbol_vocabulary: [Gene, Name]\n")

    settings = load_pipeline_settings(str(override), env_path=no_env)
    assert settings.max_workers == 2
    assert settings.symbol_vocabulary == ["gene", "name"]
    assert settings.backoff_cap == 30.0


def test_credentials_from_env_file(tmp_path, monkeypatch):
    _clear_credentials(monkeypatch)
    env_path = tmp_path / ".env"
    env_path.write_text("NCBI_API_KEY=abc123\nNCBI_EMAIL=lab@example.org\n")

    settings = load_pipeline_settings(env_path=env_path)
    assert settings.ncbi_api_key == "abc123"
    assert settings.ncbi_email == "lab@example.org"


@pytest.mark.parametrize("content", ["gene_id_pattern: '('\n", "max_workers: 0\n", "max_workers: 20\n"])
def test_invalid_settings_rejected(tmp_path, no_env, content):
    override = tmp_path / "bad.yaml"
    override.write_text(content)
    with pytest.raises(ConfigLoaderError):
        load_pipeline_settings(str(override), env_path=no_env)


def test_missing_override_file(no_env):
    with pytest.raises(ConfigLoaderError, match="not found"):
        load_pipeline_settings("/nonexistent/settings.yaml", env_path=no_env)


def test_load_config_fallbacks(tmp_path):
    assert load_config(str(tmp_path / "absent.yaml"), default_config={"a": 1}) == {"a": 1}

    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    assert load_config(str(empty)) == {}

    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n")
    with pytest.raises(ConfigLoaderError, match="mapping"):
        load_config(str(listing))

    broken = tmp_path / "broken.yaml"
    broken.write_text("key: [unclosed\n")
    with pytest.raises(ConfigLoaderError):
        load_config(str(broken))


def test_settings_model_defaults():
    settings = PipelineSettings()
    assert settings.excluded_numeric_columns == ["Length"]
    assert settings.sample_table_name == "samples.tsv"


def test_configure_logger_writes_to_log_dir(tmp_path):
    logger = configure_logger(name="ConfigTestLogger", log_dir=str(tmp_path), log_file="config_test.log")
    logger.info("hello")
    assert (tmp_path / "config_test.log").exists()
    assert len(logger.handlers) == 2

    # Reconfiguring updates levels without stacking handlers
    same = configure_logger(name="ConfigTestLogger", level=logging.DEBUG)
    assert same is logger
    assert len(same.handlers) == 2
    assert all(handler.level == logging.DEBUG for handler in same.handlers)


def test_configure_logger_rejects_unknown_output():
    with pytest.raises(ValueError):
        configure_logger(name="BadOutputLogger", output="syslog")
