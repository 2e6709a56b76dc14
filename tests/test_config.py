"""
Tests for environment configuration.
"""
import pytest

from envelope_rotation import ConfigError, ServiceConfig


def test_defaults():
    config = ServiceConfig.from_env(environ={})
    assert config.database_url is None
    assert config.key_family == "encryption-key"
    assert config.key_backend == "env"
    assert config.record_table == "owners"
    assert config.rotation_concurrency == 10
    assert config.rotation_batch_size == 100


def test_reads_values():
    config = ServiceConfig.from_env(
        environ={
            "DATABASE_URL": "postgresql://localhost/envelopes",
            "ENVELOPE_KEY_FAMILY": "payroll",
            "ENVELOPE_KEY_BACKEND": "POSTGRES",
            "ENVELOPE_RECORD_TABLE": "staff",
            "ENVELOPE_ROTATION_CONCURRENCY": "4",
            "ENVELOPE_ROTATION_BATCH_SIZE": "25",
        }
    )
    assert config.database_url == "postgresql://localhost/envelopes"
    assert config.key_family == "payroll"
    assert config.key_backend == "postgres"
    assert config.record_table == "staff"
    assert config.rotation_concurrency == 4
    assert config.rotation_batch_size == 25


@pytest.mark.parametrize("value", ["zero", "0", "-3"])
def test_invalid_concurrency(value):
    with pytest.raises(ConfigError):
        ServiceConfig.from_env(environ={"ENVELOPE_ROTATION_CONCURRENCY": value})


def test_unknown_backend():
    with pytest.raises(ConfigError):
        ServiceConfig.from_env(environ={"ENVELOPE_KEY_BACKEND": "vault"})


def test_require_database_url():
    with pytest.raises(ConfigError):
        ServiceConfig().require_database_url()


def test_loads_env_file(tmp_path, monkeypatch):
    # Register the variable so teardown removes what load_dotenv sets
    monkeypatch.setenv("ENVELOPE_RECORD_TABLE", "placeholder")
    monkeypatch.delenv("ENVELOPE_RECORD_TABLE")
    env_file = tmp_path / ".env"
    env_file.write_text("ENVELOPE_RECORD_TABLE=from_dotenv\n")
    config = ServiceConfig.from_env(env_file=env_file)
    assert config.record_table == "from_dotenv"
