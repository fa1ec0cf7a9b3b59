"""
# Error Taxonomy

Exceptions raised by the data-access layer.

| Exception | Raised when | Retry? |
|-----------|-------------|--------|
| `ConfigurationError` | `MONGODB_URI` is missing | No, fatal |
| `DatabaseConnectionError` | connect/ping failed; the memoized slot is reset | Caller may retry |
| `ValidationError` | caller or schema validation rejected the input, before any write | No |
| `UpsertFailedError` | find-and-update returned neither an existing nor a new document | No |
| `NotFoundError` | the post-write verification read found nothing | No |

Driver errors (`pymongo.errors.PyMongoError`) are never wrapped: they are logged with
operation context and re-raised as-is.
"""

from typing import Any, Dict, List, Optional


class GenericMongoError(Exception):
    """Base class for all errors raised by the data-access layer."""


class ConfigurationError(GenericMongoError):
    """Required configuration (the MongoDB connection URI) is absent."""


class DatabaseConnectionError(GenericMongoError, ConnectionError):
    """Establishing or verifying a MongoDB connection failed."""


class ValidationError(GenericMongoError, ValueError):
    """
    Input rejected before it reached the datastore.

    Attributes:
        errors (`List[Dict[str, Any]]`): Per-field error details, when available.
    """

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class UpsertFailedError(GenericMongoError):
    """An upsert returned no document; indicates a race or an authorization mismatch."""


class NotFoundError(GenericMongoError, LookupError):
    """A document that must exist (post-write verification) was not found."""
