"""
Configuration for the catalog crawler.

Settings come from CRAWLER_-prefixed environment variables (or a .env file)
and a per-environment YAML file shipped next to this module. A variable set
in the environment wins over the same key in the YAML file. YAML values
may reference environment variables as ${VAR} or ${VAR:default}.
"""

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENVIRONMENTS = ("dev", "devlocal", "staging", "prod")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "en,zh-CN;q=0.9,zh;q=0.8,de;q=0.7",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "same-origin",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}

_ENV_REFERENCE = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


class CrawlerSettings(BaseSettings):
    """Every knob of a crawl run: catalog root, gate size, ledger and record store backends."""

    model_config = SettingsConfigDict(
        env_prefix="CRAWLER_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    environment: str = Field("dev", description="One of dev/devlocal/staging/prod")

    # Catalog
    base_url: str = Field("https://www.motorcyclespecs.co.za/index.htm", description="Root catalog page")

    # Fetching
    max_concurrent_requests: int = Field(32, ge=1, le=256, description="Request gate permit count")
    request_timeout: int = Field(30, ge=1, le=300, description="Total seconds allowed per fetch")
    user_agent: str = Field(
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/89.0.4389.128 Safari/537.36"
    )
    default_headers: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_HEADERS))

    # Reconciliation
    max_retries: int = Field(3, ge=0, le=10, description="Highest retry count still replayed by reconciliation")

    # Ledger
    ledger_backend: Literal["local", "dynamodb"] = "local"
    ledger_table: Optional[str] = Field(None, description="DynamoDB table holding ledger entries")
    local_ledger_file: Path = Path("data/ledger.json")

    # Record store
    record_store_backend: Literal["local", "s3"] = "local"
    s3_records_bucket: Optional[str] = Field(None, description="S3 bucket receiving leaf records")
    s3_records_prefix: str = "records"
    local_records_file: Path = Path("data/records.jsonl")

    # AWS
    aws_region: str = "us-east-1"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_session_token: Optional[str] = None
    localstack_endpoint: Optional[str] = Field(None, description="LocalStack endpoint used by devlocal")

    # Logging
    log_level: str = "INFO"
    json_logs: bool = Field(True, description="Render logs as JSON instead of console lines")

    @field_validator("log_level")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level {value!r}, expected one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("environment")
    @classmethod
    def check_environment(cls, value: str) -> str:
        if value not in ENVIRONMENTS:
            raise ValueError(f"Unknown environment {value!r}, expected one of {', '.join(ENVIRONMENTS)}")
        return value

    @model_validator(mode="after")
    def check_backend_resources(self) -> "CrawlerSettings":
        if self.ledger_backend == "dynamodb" and not self.ledger_table:
            raise ValueError("ledger_table is required for the dynamodb ledger backend")
        if self.record_store_backend == "s3" and not self.s3_records_bucket:
            raise ValueError("s3_records_bucket is required for the s3 record store backend")
        if self.environment == "devlocal" and not self.localstack_endpoint:
            raise ValueError("devlocal needs localstack_endpoint to reach its AWS services")
        return self


def _substitute_env(match: "re.Match[str]") -> str:
    name, default = match.group(1), match.group(2)
    if default is None:
        return os.environ.get(name, match.group(0))
    return os.environ.get(name, default)


def _expand_env_variables(value: Any) -> Any:
    """Expand ${VAR} and ${VAR:default} inside every string of a parsed YAML tree."""
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(_substitute_env, value)
    if isinstance(value, dict):
        return {key: _expand_env_variables(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_variables(item) for item in value]
    return value


def load_config_from_yaml(file_path: Path) -> Dict[str, Any]:
    """
    Read a YAML config file and expand environment references in it.

    Raises:
        FileNotFoundError: If file_path does not exist
        yaml.YAMLError: If the file is not valid YAML
    """
    path = Path(file_path)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    return _expand_env_variables(raw or {})


def _set_in_environment(field_name: str) -> bool:
    return f"CRAWLER_{field_name}".upper() in {name.upper() for name in os.environ}


def get_config_file_path(environment: str) -> Path:
    """Path of the YAML file bundled for an environment."""
    return Path(__file__).with_name(f"{environment}.yaml")


def load_settings(
    environment: Optional[str] = None, config_file: Optional[Path] = None, **overrides: Any
) -> CrawlerSettings:
    """
    Build CrawlerSettings for one environment.

    Precedence, lowest first: field defaults, the YAML file, CRAWLER_
    environment variables, then keyword overrides. Without config_file the
    bundled <environment>.yaml is used when it exists.

    Raises:
        pydantic.ValidationError: If the merged values are invalid
        FileNotFoundError: If config_file is given but missing
    """
    environment = environment or os.environ.get("CRAWLER_ENVIRONMENT", "dev")

    if config_file is not None:
        values = load_config_from_yaml(config_file)
    else:
        bundled = get_config_file_path(environment)
        values = load_config_from_yaml(bundled) if bundled.is_file() else {}

    # Init kwargs outrank the environment in pydantic-settings, so keys the
    # environment sets are left for BaseSettings to read
    values = {key: value for key, value in values.items() if not _set_in_environment(key)}
    values.update(overrides, environment=environment)
    return CrawlerSettings(**values)


@lru_cache(maxsize=1)
def get_cached_settings() -> CrawlerSettings:
    """Settings for the current process, loaded on first use."""
    return load_settings()


def reset_settings_cache() -> None:
    get_cached_settings.cache_clear()
