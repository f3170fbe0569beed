"""
Application settings loaded from config.ini.

Every option has a fallback so the application starts with no config.ini at
all. The catalog URL and API key may also come from the environment, which
keeps credentials out of files copied between laptops.

Example config.ini:
    [Scanner]
    MinLength = 8
    MaxLength = 20
    TimeoutMs = 100
    CaptureInTextFields = false

    [Catalog]
    BaseUrl = https://example.supabase.co
    ApiKey = ...
    PageSize = 200
    TimeoutSeconds = 10

    [Storage]
    DbPath =

    [Order]
    SaveDebounceMs = 100
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from exceptions import ConfigurationError
from logger import get_logger

logger = get_logger(__name__)

ENV_CATALOG_URL = "ORDER_DESK_CATALOG_URL"
ENV_API_KEY = "ORDER_DESK_API_KEY"


@dataclass
class ScannerSettings:
    min_length: int = 8
    max_length: int = 20
    timeout_ms: int = 100
    capture_in_text_fields: bool = False


@dataclass
class CatalogSettings:
    base_url: str = ""
    api_key: str = ""
    page_size: int = 200
    timeout_seconds: float = 10.0


@dataclass
class AppConfig:
    scanner: ScannerSettings = field(default_factory=ScannerSettings)
    catalog: CatalogSettings = field(default_factory=CatalogSettings)
    db_path: Optional[Path] = None
    save_debounce_ms: int = 100


def default_db_path() -> Path:
    """Per-user location of the local order store."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / "OrderDesk" / "order_store.db"


def load_config(config_path: Path = Path("config.ini")) -> AppConfig:
    """
    Read config.ini (if present) and apply environment overrides.

    Args:
        config_path: Path to the INI file

    Returns:
        Validated AppConfig

    Raises:
        ConfigurationError: If a value is not a number or out of range
    """
    parser = configparser.ConfigParser()
    if config_path.exists():
        parser.read(config_path, encoding='utf-8')
        logger.debug(f"Loaded configuration from {config_path}")
    else:
        logger.debug(f"No {config_path} found, using defaults")

    try:
        scanner = ScannerSettings(
            min_length=parser.getint('Scanner', 'MinLength', fallback=8),
            max_length=parser.getint('Scanner', 'MaxLength', fallback=20),
            timeout_ms=parser.getint('Scanner', 'TimeoutMs', fallback=100),
            capture_in_text_fields=parser.getboolean('Scanner', 'CaptureInTextFields', fallback=False),
        )
        catalog = CatalogSettings(
            base_url=parser.get('Catalog', 'BaseUrl', fallback=''),
            api_key=parser.get('Catalog', 'ApiKey', fallback=''),
            page_size=parser.getint('Catalog', 'PageSize', fallback=200),
            timeout_seconds=parser.getfloat('Catalog', 'TimeoutSeconds', fallback=10.0),
        )
        save_debounce_ms = parser.getint('Order', 'SaveDebounceMs', fallback=100)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value in {config_path}: {e}")

    catalog.base_url = os.getenv(ENV_CATALOG_URL, catalog.base_url).rstrip('/')
    catalog.api_key = os.getenv(ENV_API_KEY, catalog.api_key)

    db_path_str = parser.get('Storage', 'DbPath', fallback='').strip()
    db_path = Path(db_path_str) if db_path_str else None

    config = AppConfig(
        scanner=scanner,
        catalog=catalog,
        db_path=db_path,
        save_debounce_ms=save_debounce_ms,
    )
    validate_config(config)
    return config


def validate_config(config: AppConfig) -> None:
    """Raise ConfigurationError for values the scan flow cannot work with."""
    scanner = config.scanner
    if scanner.min_length < 1:
        raise ConfigurationError("Scanner MinLength must be at least 1")
    if scanner.min_length > scanner.max_length:
        raise ConfigurationError(
            f"Scanner MinLength ({scanner.min_length}) must not exceed MaxLength ({scanner.max_length})"
        )
    if scanner.timeout_ms <= 0:
        raise ConfigurationError("Scanner TimeoutMs must be positive")
    if config.catalog.page_size <= 0:
        raise ConfigurationError("Catalog PageSize must be positive")
    if config.catalog.timeout_seconds <= 0:
        raise ConfigurationError("Catalog TimeoutSeconds must be positive")
    if config.save_debounce_ms < 0:
        raise ConfigurationError("Order SaveDebounceMs must not be negative")
