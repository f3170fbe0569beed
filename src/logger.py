r"""
Centralized logging configuration for Order Desk.

This module provides the logging setup shared by every module:
- Structured JSON logging for easy parsing and analysis
- Automatic file rotation (prevents log files from growing indefinitely)
- Configurable log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- Automatic cleanup of old logs (retention policy)
- Both file and console output
- Context-aware logging (customer_id, brand_id, agent_id)

For a sales agent working on a laptop at a customer's premises, the log is
the only record of which scans were resolved, which failed, and why.

Log file location: <LogDir>/order_desk/ (default: ~/.order_desk/logs)
Log file format: YYYY-MM-DD.log

Example log entry (JSON format):
    {"timestamp": "2026-03-02T10:15:45.123", "level": "INFO", "tool": "order_desk",
     "customer_id": "C-1042", "brand_id": "elvang", "agent_id": "u-7",
     "module": "scan_controller", "function": "handle_scan", "line": 150,
     "message": "Scan resolved: FOUND_IN_VIEW 5012345678900"}
"""

import logging
import json
import os
from datetime import datetime, timedelta
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any
import configparser
from contextvars import ContextVar


# Context variables for structured logging
_customer_id: ContextVar[Optional[str]] = ContextVar('customer_id', default=None)
_brand_id: ContextVar[Optional[str]] = ContextVar('brand_id', default=None)
_agent_id: ContextVar[Optional[str]] = ContextVar('agent_id', default=None)


class StructuredJSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON with fields:
    - timestamp: ISO 8601 format with milliseconds
    - level: Log level
    - tool: Always "order_desk"
    - customer_id / brand_id / agent_id: Current context (if set)
    - module, function, line: Source location
    - message: Log message
    - exc_info: Exception information (if present)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'tool': 'order_desk',
            'customer_id': _customer_id.get(),
            'brand_id': _brand_id.get(),
            'agent_id': _agent_id.get(),
            'module': record.name,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_data['exc_info'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_data['extra'] = record.extra_data

        return json.dumps(log_data, ensure_ascii=False)


class AppLogger:
    """
    Centralized application logger with file rotation and cleanup.

    Logging is configured once, on the first get_logger() call, regardless of
    how many modules import the logger.

    The logging system is configured from config.ini:
    - LogDir: Directory for log files
    - LogLevel: DEBUG, INFO, WARNING, ERROR, CRITICAL
    - MaxLogSizeMB: Maximum size per log file before rotation
    - LogRetentionDays: How many days of logs to keep

    Attributes:
        _initialized: Whether logging has been configured (class-level)
    """

    _initialized: bool = False

    @classmethod
    def get_logger(cls, name: str = 'OrderDesk') -> logging.Logger:
        """
        Get or create application logger with lazy initialization.

        Usage in modules:
            from logger import get_logger
            logger = get_logger(__name__)
            logger.info("Starting operation")

        Args:
            name: Logger name, typically the module name (__name__)

        Returns:
            Configured logger instance for the specified name
        """
        if not cls._initialized:
            cls._setup_logging()
            cls._initialized = True

        return logging.getLogger(name)

    @classmethod
    def _setup_logging(cls):
        """
        Setup logging configuration from config.ini.

        Configures:
        1. Log directory and daily file path
        2. Log level (default INFO)
        3. JSON file handler with rotation, readable console handler
        4. Old log cleanup
        """
        config = cls._load_config()

        default_dir = Path(os.path.expanduser("~")) / ".order_desk" / "logs"
        configured_dir = config.get('Logging', 'LogDir', fallback='').strip()
        log_dir = Path(configured_dir) / "order_desk" if configured_dir else default_dir

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Configured directory may be on an unmounted share
            log_dir = default_dir
            log_dir.mkdir(parents=True, exist_ok=True)
            print(f"Warning: Could not access configured log directory. Using local: {log_dir}. Error: {e}")

        log_file = log_dir / f"{datetime.now():%Y-%m-%d}.log"

        log_level_str = config.get('Logging', 'LogLevel', fallback='INFO')
        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        max_log_size = config.getint('Logging', 'MaxLogSizeMB', fallback=10) * 1024 * 1024

        json_formatter = StructuredJSONFormatter()

        # Example: 2026-03-02 10:15:45 | scan_controller | INFO | handle_scan:150 | Scan resolved
        console_formatter = logging.Formatter(
            fmt='%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=30,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(json_formatter)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(console_formatter)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

        retention_days = config.getint('Logging', 'LogRetentionDays', fallback=30)
        cls._cleanup_old_logs(log_dir, retention_days)

        logger = logging.getLogger('OrderDesk')
        logger.info("=" * 80)
        logger.info("Order Desk Started")
        logger.info(f"Log Level: {log_level_str}")
        logger.info(f"Log File: {log_file}")
        logger.info("=" * 80)

    @staticmethod
    def _load_config() -> configparser.ConfigParser:
        """
        Load configuration from config.ini in the working directory.

        Configuration options:
            [Logging]
            LogDir =                    # Empty = ~/.order_desk/logs
            LogLevel = INFO
            MaxLogSizeMB = 10
            LogRetentionDays = 30

        Returns:
            ConfigParser object, empty if config.ini is missing (defaults apply)
        """
        config = configparser.ConfigParser()
        config_path = Path('config.ini')

        if config_path.exists():
            config.read(config_path, encoding='utf-8')

        return config

    @staticmethod
    def _cleanup_old_logs(log_dir: Path, retention_days: int):
        """
        Delete log files older than the retention period.

        Args:
            log_dir: Directory containing log files
            retention_days: Number of days to keep logs
                          0 or negative = keep all logs forever
        """
        if retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=retention_days)

        try:
            # Matches 2026-03-02.log and rotated 2026-03-02.log.1
            for log_file in log_dir.glob("*.log*"):
                file_mtime = datetime.fromtimestamp(log_file.stat().st_mtime)

                if file_mtime < cutoff_date:
                    log_file.unlink()
                    logging.getLogger('OrderDesk').debug(f"Deleted old log: {log_file.name}")

        except OSError as e:
            # Non-fatal: file in use or permission issues
            logging.getLogger('OrderDesk').warning(f"Failed to cleanup old logs: {e}")


def get_logger(name: str = 'OrderDesk') -> logging.Logger:
    """
    Get application logger.

    Example:
        >>> from logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Starting process")
    """
    return AppLogger.get_logger(name)


def set_customer_context(customer_id: Optional[str]) -> None:
    """
    Set the customer whose order is being built.

    Included in every subsequent log entry from the current context.

    Example:
        >>> set_customer_context("C-1042")
        >>> logger.info("Order cleared")  # Will include customer_id="C-1042"
    """
    _customer_id.set(customer_id)


def set_brand_context(brand_id: Optional[str]) -> None:
    """Set the brand currently being browsed (or None to clear)."""
    _brand_id.set(brand_id)


def set_agent_context(agent_id: Optional[str]) -> None:
    """Set the signed-in sales agent (or None to clear)."""
    _agent_id.set(agent_id)


def clear_logging_context() -> None:
    """Clear customer_id, brand_id and agent_id."""
    _customer_id.set(None)
    _brand_id.set(None)
    _agent_id.set(None)
