"""
# Database Management Module

Owns the process-wide MongoDB connections used by the read, write and delete paths,
built on the **Motor** async driver.

## Connection Kinds

| Kind | Alias | Handle | Used by |
|------|-------|--------|---------|
| `ConnectionKind.DRIVER` | `"get"` | `AsyncIOMotorClient` | read path |
| `ConnectionKind.MODEL` | `"update"` | `ModelConnection` | write and delete paths |

Each kind is memoized in its own slot: repeated `connect(kind)` calls return the same
handle without reconnecting. `close()` tears both slots down and the next `connect()`
starts fresh.

## Leases

Operations do not call `connect()`/`close()` directly. They hold a lease for their whole
duration:

```python
async with db_manager.lease(ConnectionKind.DRIVER) as client:
    collection = db_manager.get_collection("invoices")
    ...
```

Opening, closing and lease counting are serialized by one `asyncio.Lock`. With
`MONGODB_CLOSE_ON_IDLE` (the default) the connections are released when the last lease
ends, so a teardown never pulls a connection out from under an in-flight operation.

## Failure Modes

- Missing `MONGODB_URI` raises `ConfigurationError` before any network I/O.
- A failed connect or ping raises `DatabaseConnectionError`; the slot stays empty so the
  next call retries cleanly. There is no automatic retry.

## Connection Pool

Fixed: max 10, min 5, idle 30s, connect timeout 5s (see `generic_mongo.config`).
"""

import asyncio
import time
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Optional, Type, Union

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo.errors import ConfigurationError as PyMongoConfigurationError
from pymongo.errors import PyMongoError

from generic_mongo.config import (
    MONGODB_CONNECT_TIMEOUT_MS,
    MONGODB_MAX_IDLE_TIME_MS,
    MONGODB_MAX_POOL_SIZE,
    MONGODB_MIN_POOL_SIZE,
    Settings,
    settings as default_settings,
)
from generic_mongo.database.scoped_collection import DocumentModel, ScopedCollection
from generic_mongo.exceptions import ConfigurationError, DatabaseConnectionError
from generic_mongo.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")

SENSITIVE_FIELDS = {
    "password",
    "password_hash",
    "token",
    "secret",
    "credential",
    "private_key",
    "api_key",
}


class ConnectionKind(str, Enum):
    """Which memoized connection an operation needs."""

    DRIVER = "get"
    MODEL = "update"


class ModelConnection:
    """
    Model-layer connection: collections bound to a schema and an ownership scope.

    Attributes:
        client (`AsyncIOMotorClient`): Dedicated client for the model layer.
        database (`AsyncIOMotorDatabase`): The selected database.
    """

    def __init__(self, client: AsyncIOMotorClient, database: AsyncIOMotorDatabase):
        self.client = client
        self.database = database

    def model(
        self,
        collection_name: str,
        schema: Optional[Type[BaseModel]] = None,
        scope: Optional[Dict[str, Any]] = None,
    ) -> Union[DocumentModel, ScopedCollection]:
        """Bind a collection to `schema` (if any) and `scope`."""
        collection = self.database[collection_name]
        if schema is None:
            return ScopedCollection(collection, scope)
        return DocumentModel(collection, schema, scope)

    def close(self) -> None:
        self.client.close()


class DatabaseManager:
    """
    Manages the driver-level and model-level MongoDB connections.

    Attributes:
        client (`Optional[AsyncIOMotorClient]`): Driver slot. `None` until connected.
        database (`Optional[AsyncIOMotorDatabase]`): Database selected on the driver client.
        model_connection (`Optional[ModelConnection]`): Model slot. `None` until connected.

    Args:
        settings: Configuration source; defaults to the global settings.
        client_factory: Callable building a client from a URI and pool options.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Callable[..., AsyncIOMotorClient] = AsyncIOMotorClient,
    ):
        self.settings = settings or default_settings
        self._client_factory = client_factory
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.model_connection: Optional[ModelConnection] = None
        self._lock = asyncio.Lock()
        self._active_leases = 0

    @property
    def active_leases(self) -> int:
        return self._active_leases

    def _get_mongo_uri(self) -> str:
        uri = self.settings.MONGODB_URI
        if not uri:
            db_logger.error("MONGODB_URI is not configured")
            raise ConfigurationError("Please define the MONGODB_URI environment variable.")
        return uri

    def _select_database(self, client: AsyncIOMotorClient) -> AsyncIOMotorDatabase:
        if self.settings.MONGODB_DATABASE:
            return client[self.settings.MONGODB_DATABASE]
        try:
            return client.get_default_database()
        except PyMongoConfigurationError as e:
            raise ConfigurationError(
                "No database named in MONGODB_URI; set MONGODB_DATABASE or add one to the URI."
            ) from e

    async def _open_client(self, kind: ConnectionKind) -> AsyncIOMotorClient:
        uri = self._get_mongo_uri()
        start_time = time.time()
        db_logger.info(
            "Connecting %s client - MaxPool: %d, MinPool: %d, MaxIdle: %dms, ConnTimeout: %dms",
            kind.name,
            MONGODB_MAX_POOL_SIZE,
            MONGODB_MIN_POOL_SIZE,
            MONGODB_MAX_IDLE_TIME_MS,
            MONGODB_CONNECT_TIMEOUT_MS,
        )
        try:
            client = self._client_factory(
                uri,
                maxPoolSize=MONGODB_MAX_POOL_SIZE,
                minPoolSize=MONGODB_MIN_POOL_SIZE,
                maxIdleTimeMS=MONGODB_MAX_IDLE_TIME_MS,
                connectTimeoutMS=MONGODB_CONNECT_TIMEOUT_MS,
                tz_aware=True,
            )
        except PyMongoConfigurationError as e:
            db_logger.error("Invalid MongoDB configuration: %s", e)
            raise ConfigurationError(f"Invalid MONGODB_URI: {e}") from e
        try:
            await client.admin.command("ping")
        except (PyMongoError, ConnectionError, TimeoutError) as e:
            perf_logger.warning("%s connection attempt failed after %.3fs", kind.name, time.time() - start_time)
            db_logger.error("Error connecting to MongoDB: %s", e)
            client.close()
            raise DatabaseConnectionError(f"Could not connect to MongoDB: {e}") from e
        perf_logger.info("%s connection established in %.3fs", kind.name, time.time() - start_time)
        return client

    async def _connect_locked(self, kind: ConnectionKind) -> Union[AsyncIOMotorClient, ModelConnection]:
        if kind is ConnectionKind.DRIVER:
            if self.client is None:
                client = await self._open_client(kind)
                try:
                    database = self._select_database(client)
                except ConfigurationError:
                    client.close()
                    raise
                self.client, self.database = client, database
                db_logger.info("MongoDB client connected to database: %s", database.name)
            return self.client

        if self.model_connection is None:
            client = await self._open_client(kind)
            try:
                database = self._select_database(client)
            except ConfigurationError:
                client.close()
                raise
            self.model_connection = ModelConnection(client, database)
            db_logger.info("Model connection established to database: %s", database.name)
        return self.model_connection

    async def connect(self, kind: Union[ConnectionKind, str]) -> Union[AsyncIOMotorClient, ModelConnection]:
        """
        Return the memoized handle for `kind`, connecting on first use.

        Raises:
            ValueError: If `kind` is not a known connection kind.
            ConfigurationError: If `MONGODB_URI` is missing.
            DatabaseConnectionError: If the server cannot be reached.
        """
        kind = ConnectionKind(kind)
        async with self._lock:
            return await self._connect_locked(kind)

    async def _close_locked(self) -> None:
        if self._active_leases:
            db_logger.warning("Closing MongoDB connections with %d operation(s) in flight", self._active_leases)
        if self.client is not None:
            self.client.close()
            self.client = None
            self.database = None
            db_logger.info("MongoDB client connection closed")
        if self.model_connection is not None:
            self.model_connection.close()
            self.model_connection = None
            db_logger.info("Model connection closed")

    async def close(self) -> None:
        """Release both connections; safe to call when nothing is connected."""
        async with self._lock:
            await self._close_locked()

    @asynccontextmanager
    async def lease(self, kind: Union[ConnectionKind, str]) -> AsyncIterator[Union[AsyncIOMotorClient, ModelConnection]]:
        """Hold a connection of `kind` for the duration of one operation."""
        kind = ConnectionKind(kind)
        async with self._lock:
            handle = await self._connect_locked(kind)
            self._active_leases += 1
        try:
            yield handle
        finally:
            async with self._lock:
                self._active_leases -= 1
                if self._active_leases == 0 and self.settings.MONGODB_CLOSE_ON_IDLE:
                    db_logger.debug("Last operation finished, closing MongoDB connections")
                    await self._close_locked()

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """
        Retrieve a collection from the driver-level database.

        Raises:
            ConnectionError: If the driver connection has not been established.
        """
        if self.database is None:
            db_logger.error("Attempted to get collection '%s' without database connection", collection_name)
            raise DatabaseConnectionError("Database not connected. Call connect() first.")
        db_logger.debug("Retrieving collection: %s", collection_name)
        return self.database[collection_name]

    async def health_check(self) -> bool:
        """Ping whichever client is connected; `False` when none is or the ping fails."""
        client = self.client or (self.model_connection.client if self.model_connection else None)
        if client is None:
            health_logger.warning("Health check failed: No database client available")
            return False
        start_time = time.time()
        try:
            await client.admin.command("ping")
        except (PyMongoError, ConnectionError, TimeoutError) as e:
            perf_logger.warning("Database health check failed after %.3fs", time.time() - start_time)
            health_logger.error("Database health check failed: %s", e)
            return False
        perf_logger.debug("Database health check completed in %.3fs", time.time() - start_time)
        return True

    # Database operation logging utilities
    def log_query_start(self, collection_name: str, operation: str, query: Optional[Dict] = None) -> float:
        """Log the start of a database operation and return its start time."""
        start_time = time.time()
        safe_query = self._sanitize_query_for_logging(query) if query else {}
        db_logger.debug("Starting %s operation on collection '%s' - Query: %s", operation, collection_name, safe_query)
        return start_time

    def log_query_success(
        self,
        collection_name: str,
        operation: str,
        start_time: float,
        result_count: Optional[int] = None,
    ) -> None:
        duration = time.time() - start_time
        if result_count is not None:
            perf_logger.info(
                "%s on '%s' completed in %.3fs - %d records", operation, collection_name, duration, result_count
            )
        else:
            perf_logger.info("%s on '%s' completed in %.3fs", operation, collection_name, duration)

    def log_query_error(
        self, collection_name: str, operation: str, start_time: float, error: BaseException, query: Optional[Dict] = None
    ) -> None:
        duration = time.time() - start_time
        safe_query = self._sanitize_query_for_logging(query) if query else {}
        perf_logger.error("%s on '%s' failed after %.3fs", operation, collection_name, duration)
        db_logger.error(
            "%s operation failed on collection '%s' after %.3fs - Error: %s, Query: %s",
            operation,
            collection_name,
            duration,
            error,
            safe_query,
        )

    def _sanitize_query_for_logging(self, query: Dict[str, Any]) -> Dict[str, Any]:
        """Redact sensitive-looking keys and stringify values for safe logging."""
        if not isinstance(query, dict):
            return {}

        sanitized: Dict[str, Any] = {}
        for key, value in query.items():
            if any(sensitive in str(key).lower() for sensitive in SENSITIVE_FIELDS):
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_query_for_logging(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    self._sanitize_query_for_logging(item) if isinstance(item, dict) else str(item) for item in value
                ]
            else:
                sanitized[key] = str(value)
        return sanitized


# Global database manager instance
db_manager = DatabaseManager()
