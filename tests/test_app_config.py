"""
Unit tests for src/app_config.py — config.ini loading and validation.
"""

from pathlib import Path

import pytest

from app_config import (
    ENV_API_KEY,
    ENV_CATALOG_URL,
    AppConfig,
    ScannerSettings,
    default_db_path,
    load_config,
    validate_config,
)
from exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(ENV_CATALOG_URL, raising=False)
    monkeypatch.delenv(ENV_API_KEY, raising=False)


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.ini"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_file(tmp_path):
    config = load_config(tmp_path / "missing.ini")

    assert config.scanner.min_length == 8
    assert config.scanner.max_length == 20
    assert config.scanner.timeout_ms == 100
    assert config.scanner.capture_in_text_fields is False
    assert config.catalog.page_size == 200
    assert config.db_path is None
    assert config.save_debounce_ms == 100


def test_values_from_file(tmp_path):
    path = write_config(tmp_path, """
[Scanner]
MinLength = 6
MaxLength = 30
TimeoutMs = 150
CaptureInTextFields = yes

[Catalog]
BaseUrl = https://catalog.example.test/
ApiKey = file-key
PageSize = 50
TimeoutSeconds = 2.5

[Storage]
DbPath = /data/orders.db

[Order]
SaveDebounceMs = 250
""")

    config = load_config(path)

    assert config.scanner == ScannerSettings(6, 30, 150, True)
    assert config.catalog.base_url == "https://catalog.example.test"
    assert config.catalog.api_key == "file-key"
    assert config.catalog.page_size == 50
    assert config.catalog.timeout_seconds == 2.5
    assert config.db_path == Path("/data/orders.db")
    assert config.save_debounce_ms == 250


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = write_config(tmp_path, "[Catalog]\nBaseUrl = https://file.test\nApiKey = file-key\n")
    monkeypatch.setenv(ENV_CATALOG_URL, "https://env.test/")
    monkeypatch.setenv(ENV_API_KEY, "env-key")

    config = load_config(path)

    assert config.catalog.base_url == "https://env.test"
    assert config.catalog.api_key == "env-key"


def test_non_numeric_value_rejected(tmp_path):
    path = write_config(tmp_path, "[Scanner]\nMinLength = eight\n")
    with pytest.raises(ConfigurationError):
        load_config(path)


@pytest.mark.parametrize("section, text", [
    ("Scanner", "MinLength = 0"),
    ("Scanner", "MinLength = 25"),
    ("Scanner", "TimeoutMs = 0"),
    ("Catalog", "PageSize = 0"),
    ("Catalog", "TimeoutSeconds = -1"),
    ("Order", "SaveDebounceMs = -5"),
])
def test_out_of_range_rejected(tmp_path, section, text):
    path = write_config(tmp_path, f"[{section}]\n{text}\n")
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_validate_accepts_defaults():
    validate_config(AppConfig())


def test_min_equal_to_max_allowed():
    validate_config(AppConfig(scanner=ScannerSettings(min_length=13, max_length=13)))


def test_default_db_path_name():
    path = default_db_path()
    assert path.name == "order_store.db"
    assert path.parent.name == "OrderDesk"
