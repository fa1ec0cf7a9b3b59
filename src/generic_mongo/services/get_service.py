"""
# Read Path

Staleness-aware reads over any collection.

## Flow

1. **Filter**: ownership scope ∧ caller filter ∧ (`_id` in single-item mode).
2. **Freshness check** (only when a non-empty cache *and* an extractor are given): fetch the
   most recently updated match. The cache is stale iff that document's `updatedAt` is
   strictly newer than the cached freshness value. No match means nothing contradicts the
   cache. A fresh cache is returned **unchanged** with no bookkeeping writes.
3. **Fetch**: one document (single-item mode) or every match.
4. **Bookkeeping**: one bulk write of `$inc getHitCount` / `$set lastAccessed` per fetched
   document. The returned documents reflect the increment.
5. **Serialize** and return `ReadResult(data, is_stale)`.

Single-item mode is selected by the identifier: any variant carrying an `id`.

## Watch Variant

`watch_from_mongo()` follows the same read and bookkeeping policy, then opens a change
subscription on the collection and hands it to the caller together with the data. The
connection lease stays held until the caller closes the subscription.

```python
result = await watch_from_mongo(CompanyIdentifier("65a..."), "invoices")
try:
    async for change in result.change_stream.events():
        ...
finally:
    await result.change_stream.close()
```
"""

from contextlib import AsyncExitStack
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Type, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import UpdateOne

from generic_mongo.bookkeeping import KeyValueStore, record_read
from generic_mongo.database.change_stream import ChangeSubscription, open_subscription
from generic_mongo.database.manager import ConnectionKind, DatabaseManager, db_manager
from generic_mongo.database.scoped_collection import ScopedCollection
from generic_mongo.managers.logging_manager import get_logger
from generic_mongo.models.documents import parse_timestamp, serialize_document, supports_bookkeeping
from generic_mongo.models.identifiers import Identifier
from generic_mongo.services.common import ChangeHandler, build_scope, resolve_side_store, utc_now

logger = get_logger(prefix="[GenericGet]")

SerializedDocument = Dict[str, Any]
ReadData = Union[List[SerializedDocument], SerializedDocument, None]
CachedData = Union[Sequence[Mapping[str, Any]], Mapping[str, Any]]
FreshnessExtractor = Callable[[Mapping[str, Any]], Union[datetime, str]]


@dataclass
class ReadResult:
    data: Any
    is_stale: bool


@dataclass
class WatchResult:
    data: ReadData
    change_stream: ChangeSubscription


def _first_cached(cached_data: Optional[CachedData]) -> Optional[Mapping[str, Any]]:
    """The cached item freshness is read from; `None` when there is no usable cache."""
    if cached_data is None:
        return None
    if isinstance(cached_data, Mapping):
        return cached_data
    return cached_data[0] if len(cached_data) > 0 else None


async def check_staleness(
    collection: ScopedCollection,
    query: Mapping[str, Any],
    cached_data: Optional[CachedData],
    get_updated_at: Optional[FreshnessExtractor],
) -> bool:
    """
    Decide whether the caller's cache is older than the stored data.

    Returns:
        bool: `True` without touching the store when there is no cache or no extractor.
    """
    cached_item = _first_cached(cached_data)
    if cached_item is None or get_updated_at is None:
        return True

    latest = await collection.find_one(query, sort=[("updatedAt", -1)])
    if latest is None or latest.get("updatedAt") is None:
        logger.debug("No stored document in %s to contradict the cache", collection.name)
        return False

    latest_updated_at = parse_timestamp(latest["updatedAt"])
    cached_updated_at = parse_timestamp(get_updated_at(cached_item))
    logger.debug("Comparing dates - stored: %s, cached: %s", latest_updated_at, cached_updated_at)
    return latest_updated_at > cached_updated_at


async def _fetch(collection: ScopedCollection, query: Mapping[str, Any], single: bool) -> List[Dict[str, Any]]:
    if single:
        document = await collection.find_one(query)
        logger.debug("Single document fetched from %s: %s", collection.name, "found" if document else "none")
        return [document] if document else []
    documents = await collection.find_many(query)
    logger.debug("%d document(s) fetched from %s", len(documents), collection.name)
    return documents


async def _record_reads(
    collection: ScopedCollection,
    documents: List[Dict[str, Any]],
    side_store: Optional[KeyValueStore],
) -> None:
    """Bump `getHitCount` and stamp `lastAccessed` on every fetched document, in one batch."""
    if not documents:
        return
    accessed_at = utc_now()
    operations = [
        UpdateOne(
            collection.scoped_filter({"_id": document["_id"]}),
            {"$inc": {"getHitCount": 1}, "$set": {"lastAccessed": accessed_at}},
        )
        for document in documents
    ]
    await collection.bulk_write(operations)

    for document in documents:
        document["getHitCount"] = int(document.get("getHitCount") or 0) + 1
        document["lastAccessed"] = accessed_at
        if side_store is not None:
            await record_read(side_store, str(document["_id"]), collection.name, accessed_at)


def _shape(documents: List[Dict[str, Any]], single: bool) -> ReadData:
    serialized = [serialize_document(document) for document in documents]
    if single:
        return serialized[0] if serialized else None
    return serialized


async def _read(
    collection: ScopedCollection,
    query: Dict[str, Any],
    single: bool,
    schema: Optional[Type[BaseModel]],
    side_store: Optional[KeyValueStore],
) -> ReadData:
    documents = await _fetch(collection, query, single)
    if schema is None or supports_bookkeeping(schema):
        await _record_reads(collection, documents, side_store)
    return _shape(documents, single)


def _build_query(identifier: Identifier, filter: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    query = dict(filter or {})
    record_id: Optional[ObjectId] = identifier.record_id
    if record_id is not None:
        query["_id"] = record_id
    return query


async def get_from_mongo(
    identifier: Identifier,
    collection_name: str,
    *,
    user_id: Optional[str] = None,
    filter: Optional[Mapping[str, Any]] = None,
    cached_data: Optional[CachedData] = None,
    get_updated_at: Optional[FreshnessExtractor] = None,
    schema: Optional[Type[BaseModel]] = None,
    side_store: Optional[KeyValueStore] = None,
    manager: Optional[DatabaseManager] = None,
) -> ReadResult:
    """
    Read one or many documents, skipping the store when the caller's cache is fresh.

    Args:
        identifier: Scope and, in single-item mode, the record id.
        collection_name: Target collection.
        user_id: Acting user; added to the ownership scope when given.
        filter: Extra predicate; scope fields override clashing keys.
        cached_data: The caller's previous result (a list, or a single document).
        get_updated_at: Extracts the freshness timestamp from a cached item.
        schema: Record schema; bookkeeping runs unless it lacks the bookkeeping capability.
        side_store: Key-value store that mirrors the read counters.
        manager: Connection manager; defaults to `db_manager`.

    Returns:
        ReadResult: `data` is the document or `None` in single-item mode, else a list.
    """
    manager = manager or db_manager
    side_store = resolve_side_store(side_store)
    context: Dict[str, Any] = {"collection": collection_name}
    query: Dict[str, Any] = dict(filter or {})

    start_time = manager.log_query_start(collection_name, "get", query)
    try:
        scope = build_scope(identifier, user_id)
        query = _build_query(identifier, filter)
        single = identifier.record_id is not None
        context.update(identifier=identifier.describe(), single=single)
        logger.debug("Entering get_from_mongo: %s", context)

        async with manager.lease(ConnectionKind.DRIVER):
            collection = ScopedCollection(manager.get_collection(collection_name), scope)

            is_stale = await check_staleness(collection, query, cached_data, get_updated_at)
            logger.info("Stale status for %s: %s", context, is_stale)
            if not is_stale:
                logger.debug("Returning cached data for %s", collection_name)
                return ReadResult(data=cached_data, is_stale=False)

            data = await _read(collection, query, single, schema, side_store)
    except Exception as e:
        manager.log_query_error(collection_name, "get", start_time, e, query)
        logger.error("Error in get_from_mongo for %s: %s", context, e)
        raise

    count = len(data) if isinstance(data, list) else int(data is not None)
    manager.log_query_success(collection_name, "get", start_time, count)
    return ReadResult(data=data, is_stale=True)


async def watch_from_mongo(
    identifier: Identifier,
    collection_name: str,
    *,
    user_id: Optional[str] = None,
    filter: Optional[Mapping[str, Any]] = None,
    on_change: Optional[ChangeHandler] = None,
    pipeline: Optional[List[Dict[str, Any]]] = None,
    schema: Optional[Type[BaseModel]] = None,
    side_store: Optional[KeyValueStore] = None,
    manager: Optional[DatabaseManager] = None,
) -> WatchResult:
    """
    Read like `get_from_mongo()` (without a cache) and open a change subscription.

    The caller owns the returned `change_stream` and must close it; closing it also
    releases the connection lease held for it.
    """
    manager = manager or db_manager
    side_store = resolve_side_store(side_store)
    context: Dict[str, Any] = {"collection": collection_name}
    query: Dict[str, Any] = dict(filter or {})

    start_time = manager.log_query_start(collection_name, "watch", query)
    stack = AsyncExitStack()
    try:
        scope = build_scope(identifier, user_id)
        query = _build_query(identifier, filter)
        single = identifier.record_id is not None
        context.update(identifier=identifier.describe(), single=single)
        logger.debug("Entering watch_from_mongo: %s", context)

        await stack.enter_async_context(manager.lease(ConnectionKind.DRIVER))
        collection = ScopedCollection(manager.get_collection(collection_name), scope)
        data = await _read(collection, query, single, schema, side_store)
        subscription = await open_subscription(collection, on_change, pipeline)
    except Exception as e:
        manager.log_query_error(collection_name, "watch", start_time, e, query)
        logger.error("Error in watch_from_mongo for %s: %s", context, e)
        await stack.aclose()
        raise

    subscription.on_error(lambda error: logger.error("Change stream error on %s: %s", collection_name, error))
    subscription.on_close(stack.aclose)
    manager.log_query_success(collection_name, "watch", start_time)
    return WatchResult(data=data, change_stream=subscription)
