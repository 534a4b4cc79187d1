"""Unit tests for configuration loading and validation."""

from pathlib import Path

import pytest

from dokploy_dns.config import (
    Config,
    load_config,
    load_config_file,
    require_valid_config,
    validate_config,
)
from dokploy_dns.engine import DeleteRetryPolicy
from dokploy_dns.errors import ConfigurationError

CREDS = {"SIMPLY_ACCOUNT_NAME": "S123456", "SIMPLY_API_KEY": "secret"}


def test_defaults() -> None:
    config = load_config(CREDS, config_path="")

    assert config.poll_interval == 30
    assert config.delete_delay == 300
    assert config.port == 3000
    assert config.record_ttl == 3600
    assert config.target_domain == ""
    assert config.retry_policy is DeleteRetryPolicy.RETRY
    assert config.adopt_existing_records is False
    assert config.sync_mode == "watch"
    assert config.has_credentials is True


def test_environment_values() -> None:
    env = dict(
        CREDS,
        TARGET_DOMAIN="server.example.net.",
        POLL_INTERVAL_SECONDS="10",
        DELETE_DELAY_SECONDS="60",
        PORT="8080",
        DELETE_RETRY_POLICY="Manual",
        ADOPT_EXISTING_RECORDS="yes",
        REGISTRAR_TIMEOUT_SECONDS="2.5",
        LOG_LEVEL="debug",
    )

    config = load_config(env, config_path="")

    assert config.target_domain == "server.example.net"
    assert config.poll_interval == 10
    assert config.delete_delay == 60
    assert config.port == 8080
    assert config.retry_policy is DeleteRetryPolicy.MANUAL
    assert config.adopt_existing_records is True
    assert config.registrar_timeout == 2.5
    assert config.log_level == "DEBUG"


def test_invalid_integer_falls_back_to_default() -> None:
    config = load_config(dict(CREDS, POLL_INTERVAL_SECONDS="soon"), config_path="")

    assert config.poll_interval == 30


def test_yaml_file_values_are_overridden_by_environment(tmp_path: Path) -> None:
    config_file = tmp_path / "dokploy-dns.yaml"
    config_file.write_text(
        """
simply_account_name: S999
simply_api_key: from-file
target_domain: file.example.net
delete_delay_seconds: 120
"""
    )

    config = load_config({"SIMPLY_API_KEY": "from-env", "TARGET_DOMAIN": ""}, str(config_file))

    assert config.account_name == "S999"
    assert config.api_key == "from-env"
    assert config.target_domain == "file.example.net"
    assert config.delete_delay == 120


def test_config_path_taken_from_environment(tmp_path: Path) -> None:
    config_file = tmp_path / "cfg.yaml"
    config_file.write_text("poll_interval_seconds: 5\n")

    config = load_config(dict(CREDS, CONFIG_PATH=str(config_file)))

    assert config.poll_interval == 5


def test_missing_config_file_is_empty(tmp_path: Path) -> None:
    assert load_config_file(str(tmp_path / "missing.yaml")) == {}


def test_malformed_config_file_raises(tmp_path: Path) -> None:
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("- just\n- a list\n")

    with pytest.raises(ConfigurationError):
        load_config_file(str(config_file))


def test_missing_credentials_is_an_error() -> None:
    errors = validate_config(Config(account_name="S123456"))

    assert any("SIMPLY_API_KEY" in e for e in errors)
    with pytest.raises(ConfigurationError):
        require_valid_config(Config())


def test_invalid_policy_and_mode_are_errors() -> None:
    errors = validate_config(
        Config(account_name="a", api_key="b", delete_retry_policy="never", sync_mode="daemon")
    )

    assert len(errors) == 2


def test_valid_config_passes() -> None:
    config = Config(account_name="a", api_key="b")

    assert validate_config(config) == []
    assert require_valid_config(config) is config
