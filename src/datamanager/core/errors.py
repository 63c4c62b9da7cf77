"""Exception types raised by the data manager.

Configuration errors are programming errors and propagate to the caller.
Transport errors are caught at the DataStore boundary and turned into
observable state (``DataStore.error``).
"""

from __future__ import annotations

from typing import Optional


class DataManagerError(Exception):
    """Base class for all data manager errors."""


class ConfigurationError(DataManagerError):
    """Invalid configuration or API usage (missing action id, bad mode, ...)."""


class DuplicateKeyError(ConfigurationError):
    """A registry already holds an entry with this key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Duplicate key: {key!r}")
        self.key = key


class TransportError(DataManagerError):
    """A request to the backend failed.

    Attributes:
        endpoint: Name of the API endpoint that was called.
        status: HTTP status code, or None for network/decoding failures.
    """

    def __init__(self, message: str, *, endpoint: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status = status

    def __str__(self) -> str:
        base = super().__str__()
        if self.status is not None:
            return f"{base} (endpoint={self.endpoint}, status={self.status})"
        if self.endpoint is not None:
            return f"{base} (endpoint={self.endpoint})"
        return base
