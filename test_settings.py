"""Tests for crawler configuration loading."""

import pytest
from pydantic import ValidationError

from catalog_crawler.config.settings import (
    CrawlerSettings,
    get_cached_settings,
    get_config_file_path,
    load_config_from_yaml,
    load_settings,
    reset_settings_cache,
)


def test_defaults_use_local_backends():
    """Without configuration the crawler keeps its ledger and records on disk."""
    settings = CrawlerSettings()

    assert settings.ledger_backend == "local"
    assert settings.record_store_backend == "local"
    assert settings.max_retries == 3
    assert settings.max_concurrent_requests == 32


def test_log_level_is_normalised():
    """Log levels are accepted in any case and stored upper-case."""
    assert CrawlerSettings(log_level="debug").log_level == "DEBUG"

    with pytest.raises(ValidationError):
        CrawlerSettings(log_level="chatty")


def test_gate_permits_must_be_positive():
    """The request gate needs at least one permit."""
    with pytest.raises(ValidationError):
        CrawlerSettings(max_concurrent_requests=0)


def test_cloud_backends_need_resource_names():
    """DynamoDB needs a table and S3 needs a bucket."""
    with pytest.raises(ValidationError, match="ledger_table"):
        CrawlerSettings(ledger_backend="dynamodb")
    with pytest.raises(ValidationError, match="s3_records_bucket"):
        CrawlerSettings(record_store_backend="s3")

    settings = CrawlerSettings(ledger_backend="dynamodb", ledger_table="ledger")
    assert settings.ledger_table == "ledger"


def test_devlocal_requires_localstack():
    """The devlocal environment only makes sense with a LocalStack endpoint."""
    with pytest.raises(ValidationError):
        CrawlerSettings(environment="devlocal")


def test_environment_variables_override_defaults(monkeypatch):
    """CRAWLER_-prefixed variables configure the crawler."""
    monkeypatch.setenv("CRAWLER_MAX_CONCURRENT_REQUESTS", "8")
    monkeypatch.setenv("CRAWLER_BASE_URL", "https://catalog.test/index.htm")

    settings = CrawlerSettings()

    assert settings.max_concurrent_requests == 8
    assert settings.base_url == "https://catalog.test/index.htm"


def test_yaml_values_expand_environment_variables(tmp_path, monkeypatch):
    """${VAR} and ${VAR:default} are expanded when a YAML file is loaded."""
    monkeypatch.setenv("CATALOG_HOST", "catalog.test")
    monkeypatch.delenv("CATALOG_TABLE", raising=False)
    config_file = tmp_path / "custom.yaml"
    config_file.write_text(
        "base_url: https://${CATALOG_HOST}/index.htm\n"
        "ledger_backend: dynamodb\n"
        "ledger_table: ${CATALOG_TABLE:crawl-ledger}\n"
        "max_concurrent_requests: 4\n",
        encoding="utf-8",
    )

    assert load_config_from_yaml(config_file)["ledger_table"] == "crawl-ledger"

    settings = load_settings(environment="staging", config_file=config_file, log_level="WARNING")

    assert settings.environment == "staging"
    assert settings.base_url == "https://catalog.test/index.htm"
    assert settings.ledger_table == "crawl-ledger"
    assert settings.max_concurrent_requests == 4
    assert settings.log_level == "WARNING"


def test_missing_config_file_raises(tmp_path):
    """An explicitly named config file must exist."""
    with pytest.raises(FileNotFoundError):
        load_settings(environment="dev", config_file=tmp_path / "absent.yaml")


def test_bundled_environment_configs():
    """The packaged dev and prod configs load and pick the expected backends."""
    assert get_config_file_path("dev").exists()

    dev = load_settings(environment="dev")
    prod = load_settings(environment="prod")

    assert dev.ledger_backend == "local"
    assert dev.json_logs is False
    assert prod.ledger_backend == "dynamodb"
    assert prod.record_store_backend == "s3"


def test_environment_variables_win_over_bundled_config(monkeypatch):
    """A CRAWLER_ variable replaces the YAML value; keys it does not name still come from the file."""
    monkeypatch.setenv("CRAWLER_MAX_CONCURRENT_REQUESTS", "4")

    settings = load_settings(environment="dev")

    assert settings.max_concurrent_requests == 4
    assert settings.json_logs is False
    assert settings.ledger_backend == "local"

    assert load_settings(environment="dev", max_concurrent_requests=2).max_concurrent_requests == 2


def test_cached_settings_reset(monkeypatch):
    """The cached settings instance is rebuilt after a reset."""
    monkeypatch.setenv("CRAWLER_ENVIRONMENT", "dev")
    reset_settings_cache()

    first = get_cached_settings()
    assert get_cached_settings() is first

    reset_settings_cache()
    assert get_cached_settings() is not first
    reset_settings_cache()
