"""
Custom exceptions for the Order Desk application.

This module defines application-specific exceptions so the UI layer can tell
apart the failures an agent can act on (scan again, check the network) from
programming errors. Using custom exceptions allows the application to:
- Show specific alerts tailored to order entry
- Carry context (scanned barcode, backend URL, storage key)
- Catch all application errors with a single except clause

Exception hierarchy:
    OrderDeskError (base)
    ├── CatalogLookupError (catalog backend unreachable or returned garbage)
    ├── StorageError (local on-device order store failures)
    ├── ValidationError (catalog records the application cannot use)
    └── ConfigurationError (invalid config.ini values)
"""

from typing import Optional


class OrderDeskError(Exception):
    """
    Base exception for all Order Desk errors.

    All application-specific exceptions inherit from this class:
        try:
            # ... application code ...
        except OrderDeskError as e:
            logger.error(f"Application error: {e}")

    Note: This does NOT inherit from built-in errors like ValueError, IOError
    to keep application and system errors apart.
    """
    pass


class CatalogLookupError(OrderDeskError):
    """
    Raised when a request to the hosted catalog backend fails.

    Common scenarios on a sales agent's laptop:
    - Wi-Fi dropped while visiting a customer
    - Backend rejected the API key
    - Backend returned an error page instead of JSON
    - Request timed out

    A lookup failure is terminal for the scan that triggered it. The scan is
    not retried; the agent is asked to scan again.

    Attributes:
        barcode (str | None): The scanned code being looked up, if any
        url (str | None): The backend URL that failed
    """

    def __init__(self, message: str, barcode: Optional[str] = None, url: Optional[str] = None):
        """
        Initialize CatalogLookupError with request context.

        Args:
            message: Brief error message
            barcode: Scanned code that was being resolved (None for page fetches)
            url: Backend endpoint that failed

        Example:
            raise CatalogLookupError(
                "Catalog request timed out",
                barcode="5012345678900",
                url="https://example.supabase.co/rest/v1/items"
            )
        """
        super().__init__(message)
        self.barcode = barcode
        self.url = url

    def get_display_message(self) -> str:
        """
        Get the message shown to the agent in the blocking alert.

        The technical cause goes to the log, never to the alert.
        """
        return "Error scanning barcode. Please try again."


class StorageError(OrderDeskError):
    """
    Raised when the local on-device order store cannot be read or written.

    The in-memory order is never discarded because of a storage failure;
    the next successful write brings the store back in line.

    Attributes:
        key (str | None): Store key involved in the failed operation
    """

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class ValidationError(OrderDeskError):
    """
    Raised when a catalog record fails validation, e.g. a row without an id.

    The catalog client converts it to CatalogLookupError, so a scan that hits
    a broken record is reported like any other lookup failure.
    """
    pass


class ConfigurationError(OrderDeskError):
    """
    Raised when config.ini contains values the application cannot use.

    Example usage:
        if min_length > max_length:
            raise ConfigurationError("MinLength must not exceed MaxLength")
    """
    pass
