"""Configuration loading.

Values come from an optional YAML file and from environment variables;
the environment wins. Keys in the YAML file are the lower-case names of
the environment variables:

    Registrar (Simply.com):
        SIMPLY_ACCOUNT_NAME        Account name, e.g. S123456 (required)
        SIMPLY_API_KEY             API key (required)
        TARGET_DOMAIN              CNAME target. Empty means each record
                                   points at its own hostname.
        RECORD_TTL                 TTL of created records (default: 3600)
        REGISTRAR_TIMEOUT_SECONDS  Per-call HTTP timeout (default: 10)

    Reconciliation:
        POLL_INTERVAL_SECONDS      Seconds between ticks (default: 30)
        DELETE_DELAY_SECONDS       Grace period before records of a stopped
                                   container are deleted (default: 300)
        DELETE_RETRY_POLICY        "retry" or "manual" (default: retry)
        ADOPT_EXISTING_RECORDS     Reuse matching CNAMEs already at the
                                   registrar instead of creating duplicates
                                   (default: false)

    Runtime:
        SYNC_MODE                  "once" or "watch" (default: watch)
        PORT                       Port reported to the HTTP layer (default: 3000)
        LOG_LEVEL                  DEBUG, INFO, WARNING, ERROR (default: INFO)
        CONFIG_PATH                YAML file (default: /config/dokploy-dns.yaml)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .engine import DeleteRetryPolicy
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/config/dokploy-dns.yaml"
SYNC_MODES = ("once", "watch")


@dataclass(frozen=True)
class Config:
    account_name: str = ""
    api_key: str = ""
    target_domain: str = ""
    record_ttl: int = 3600
    registrar_timeout: float = 10.0
    poll_interval: int = 30
    delete_delay: int = 300
    delete_retry_policy: str = DeleteRetryPolicy.RETRY.value
    adopt_existing_records: bool = False
    sync_mode: str = "watch"
    port: int = 3000
    log_level: str = "INFO"

    @property
    def has_credentials(self) -> bool:
        return bool(self.account_name and self.api_key)

    @property
    def retry_policy(self) -> DeleteRetryPolicy:
        return DeleteRetryPolicy(self.delete_retry_policy)


# =============================================================================
# Parsing Helpers
# =============================================================================


def _parse_bool(value: Any, *, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_int(name: str, value: Any, default: int) -> int:
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {value!r}, using {default}")
        return default


def _parse_float(name: str, value: Any, default: float) -> float:
    if value is None or str(value).strip() == "":
        return default
    try:
        return float(str(value).strip())
    except ValueError:
        logger.warning(f"Invalid number for {name}: {value!r}, using {default}")
        return default


def load_config_file(path: str) -> Dict[str, Any]:
    """Read the YAML config file. A missing file is an empty config."""
    config_file = Path(path)
    if not path or not config_file.is_file():
        return {}
    try:
        with open(config_file, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config from {config_file}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_file} must contain a mapping")
    return {str(k).upper(): v for k, v in data.items()}


def load_config(
    environ: Optional[Mapping[str, str]] = None, config_path: Optional[str] = None
) -> Config:
    """Build a Config from the YAML file and the environment."""
    env = os.environ if environ is None else environ
    path = config_path if config_path is not None else env.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)

    values: Dict[str, Any] = load_config_file(path)
    values.update({k: v for k, v in env.items() if v not in (None, "")})

    def get(name: str, default: str = "") -> str:
        value = values.get(name)
        return default if value is None else str(value).strip()

    return Config(
        account_name=get("SIMPLY_ACCOUNT_NAME"),
        api_key=get("SIMPLY_API_KEY"),
        target_domain=get("TARGET_DOMAIN").rstrip("."),
        record_ttl=_parse_int("RECORD_TTL", values.get("RECORD_TTL"), 3600),
        registrar_timeout=_parse_float(
            "REGISTRAR_TIMEOUT_SECONDS", values.get("REGISTRAR_TIMEOUT_SECONDS"), 10.0
        ),
        poll_interval=_parse_int("POLL_INTERVAL_SECONDS", values.get("POLL_INTERVAL_SECONDS"), 30),
        delete_delay=_parse_int("DELETE_DELAY_SECONDS", values.get("DELETE_DELAY_SECONDS"), 300),
        delete_retry_policy=get("DELETE_RETRY_POLICY", DeleteRetryPolicy.RETRY.value).lower(),
        adopt_existing_records=_parse_bool(values.get("ADOPT_EXISTING_RECORDS")),
        sync_mode=get("SYNC_MODE", "watch").lower(),
        port=_parse_int("PORT", values.get("PORT"), 3000),
        log_level=get("LOG_LEVEL", "INFO").upper(),
    )


def validate_config(config: Config) -> List[str]:
    """Return a list of configuration errors; empty when valid."""
    errors = []

    if not config.account_name or not config.api_key:
        errors.append("Missing required environment variables: SIMPLY_ACCOUNT_NAME and SIMPLY_API_KEY")

    if config.delete_retry_policy not in {p.value for p in DeleteRetryPolicy}:
        errors.append(
            f"Invalid DELETE_RETRY_POLICY: {config.delete_retry_policy}. Use 'retry' or 'manual'"
        )

    if config.sync_mode not in SYNC_MODES:
        errors.append(f"Invalid SYNC_MODE: {config.sync_mode}. Use 'once' or 'watch'")

    if config.poll_interval < 1:
        errors.append("POLL_INTERVAL_SECONDS must be at least 1")

    if config.delete_delay < 0:
        errors.append("DELETE_DELAY_SECONDS must not be negative")

    if config.record_ttl < 1:
        errors.append("RECORD_TTL must be positive")

    return errors


def require_valid_config(config: Config) -> Config:
    """Raise ConfigurationError listing every problem with ``config``."""
    errors = validate_config(config)
    if errors:
        raise ConfigurationError("; ".join(errors))
    return config
