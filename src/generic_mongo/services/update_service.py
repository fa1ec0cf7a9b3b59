"""
# Write Path

Create-or-update of a single record through the model connection.

## Steps

1. **Subscribe** (optional): with an `on_change` callback the change subscription is opened
   *before* anything is written, so the write's own event cannot be missed.
2. **Validate**: the caller's validator, then the schema. Nothing is sent on failure.
3. **Filter**: ownership scope ∧ `_id` (from the payload, else from the identifier).
4. **Upsert**: `$set` the payload with ownership fields, `updatedAt` and `lastAccessed`.
   New documents start with zeroed counters via `$setOnInsert`. Counters are never part
   of the merged `$set`.
5. **Count**: a separate atomic `$inc setHitCount`, so concurrent writers cannot clobber
   each other's increment.
6. **Verify**: re-read by `_id`; absence means a concurrent delete won the race.
7. **Serialize** the verified document.

The subscription and the connection lease are released on every exit path.

```python
saved = await update_item_in_mongo(
    CompanyIdentifier(company_id),
    "invoices",
    Invoice,
    {"number": "INV-7", "total": 120.0},
    validate_invoice,
    user_id=user_id,
)
saved["setHitCount"]  # 1 for a new record
```
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel

from generic_mongo.bookkeeping import KeyValueStore, record_write
from generic_mongo.database.change_stream import ChangeSubscription, open_subscription
from generic_mongo.database.manager import ConnectionKind, DatabaseManager, db_manager
from generic_mongo.database.scoped_collection import SYSTEM_FIELDS
from generic_mongo.exceptions import NotFoundError, UpsertFailedError, ValidationError
from generic_mongo.managers.logging_manager import get_logger
from generic_mongo.models.documents import serialize_document
from generic_mongo.models.identifiers import Identifier, to_object_id
from generic_mongo.services.common import ChangeHandler, build_scope, resolve_side_store, utc_now

logger = get_logger(prefix="[GenericUpdate]")

Validator = Callable[[Mapping[str, Any]], None]


def _run_validator(validate: Optional[Validator], item_data: Mapping[str, Any]) -> None:
    if validate is None:
        return
    try:
        validate(item_data)
    except ValidationError:
        raise
    except ValueError as e:
        raise ValidationError(str(e)) from e


def build_update(item_data: Mapping[str, Any], scope: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Build the upsert document for a partial payload.

    System-owned fields in the payload are dropped; scope fields and the write timestamps
    are stamped by the core.
    """
    dropped = sorted(key for key in item_data if key in SYSTEM_FIELDS and key != "_id")
    if dropped:
        logger.warning("Ignoring system-owned fields in payload: %s", dropped)

    now = utc_now()
    fields = {key: value for key, value in item_data.items() if key not in SYSTEM_FIELDS}
    fields.update(scope)
    fields["updatedAt"] = now
    fields["lastAccessed"] = now
    return {
        "$set": fields,
        "$setOnInsert": {"getHitCount": 0, "setHitCount": 0},
    }


async def update_item_in_mongo(
    identifier: Identifier,
    collection_name: str,
    schema: Optional[Type[BaseModel]],
    item_data: Mapping[str, Any],
    validate: Optional[Validator],
    *,
    user_id: Optional[str] = None,
    on_change: Optional[ChangeHandler] = None,
    pipeline: Optional[List[Dict[str, Any]]] = None,
    side_store: Optional[KeyValueStore] = None,
    manager: Optional[DatabaseManager] = None,
) -> Dict[str, Any]:
    """
    Create or update one document and return its verified serializable projection.

    Raises:
        ValidationError: If the caller's validator or the schema rejects `item_data`.
        UpsertFailedError: If the upsert returned no document.
        NotFoundError: If the document vanished before verification.
    """
    manager = manager or db_manager
    side_store = resolve_side_store(side_store)
    schema_name = schema.__name__ if schema is not None else None
    context: Dict[str, Any] = {"collection": collection_name, "schema": schema_name}
    subscription: Optional[ChangeSubscription] = None
    query: Dict[str, Any] = {}

    start_time = manager.log_query_start(collection_name, "update")
    try:
        scope = build_scope(identifier, user_id)
        context["identifier"] = identifier.describe()
        logger.info("Starting update_item_in_mongo: %s", context)
        logger.debug("Item data keys: %s", sorted(item_data))

        async with manager.lease(ConnectionKind.MODEL) as connection:
            model = connection.model(collection_name, schema, scope)
            try:
                if on_change is not None:
                    subscription = await open_subscription(model, on_change, pipeline)

                _run_validator(validate, item_data)
                logger.debug("Caller validation passed for %s", collection_name)

                raw_id = item_data.get("_id")
                record_id = to_object_id(raw_id, "_id") if raw_id else identifier.record_id
                if record_id is not None:
                    query["_id"] = record_id
                update = build_update(item_data, scope)

                document = await model.upsert(query, update)
                if document is None:
                    logger.error("Failed to update or insert document in %s: %s", collection_name, context)
                    raise UpsertFailedError(f"Failed to update or insert document in {collection_name}")

                document_id = document["_id"]
                await model.update_one({"_id": document_id}, {"$inc": {"setHitCount": 1}})
                logger.debug("setHitCount incremented for %s", document_id)
                if side_store is not None:
                    await record_write(side_store, str(document_id), collection_name, update["$set"]["updatedAt"])

                verified = await model.find_one({"_id": document_id})
                if verified is None:
                    logger.error("Document %s not found in final verification", document_id)
                    raise NotFoundError(f"Document {document_id} not found in final verification")
            finally:
                if subscription is not None:
                    await subscription.close()
    except Exception as e:
        manager.log_query_error(collection_name, "update", start_time, e, query)
        logger.error("Error in update_item_in_mongo for %s: %s", context, e)
        raise

    manager.log_query_success(collection_name, "update", start_time, 1)
    serialized = serialize_document(verified)
    logger.info("Update successful for %s in %s", serialized.get("_id"), collection_name)
    return serialized
