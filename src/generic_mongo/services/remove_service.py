"""
# Delete Path

Single-document deletion within an ownership scope. Deleting nothing is a normal
"not found" and returns `False`; it is never an error.
"""

from typing import Any, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel

from generic_mongo.database.change_stream import ChangeSubscription, open_subscription
from generic_mongo.database.manager import ConnectionKind, DatabaseManager, db_manager
from generic_mongo.managers.logging_manager import get_logger
from generic_mongo.models.identifiers import Identifier
from generic_mongo.services.common import ChangeHandler, build_scope

logger = get_logger(prefix="[GenericRemove]")


async def remove_from_mongo(
    identifier: Identifier,
    collection_name: str,
    *,
    user_id: Optional[str] = None,
    filter: Optional[Mapping[str, Any]] = None,
    schema: Optional[Type[BaseModel]] = None,
    on_change: Optional[ChangeHandler] = None,
    pipeline: Optional[List[Dict[str, Any]]] = None,
    manager: Optional[DatabaseManager] = None,
) -> bool:
    """
    Delete at most one document matching scope ∧ id ∧ `filter`.

    Returns:
        bool: `True` iff exactly one document was removed.
    """
    manager = manager or db_manager
    context: Dict[str, Any] = {"collection": collection_name}
    subscription: Optional[ChangeSubscription] = None
    query: Dict[str, Any] = dict(filter or {})

    start_time = manager.log_query_start(collection_name, "remove", query)
    try:
        scope = build_scope(identifier, user_id)
        context["identifier"] = identifier.describe()
        logger.debug("Entering remove_from_mongo: %s, extra filter keys: %s", context, sorted(query))

        async with manager.lease(ConnectionKind.MODEL) as connection:
            model = connection.model(collection_name, schema, scope)
            try:
                if on_change is not None:
                    subscription = await open_subscription(model, on_change, pipeline)

                if identifier.record_id is not None:
                    query["_id"] = identifier.record_id
                result = await model.delete_one(query)
            finally:
                if subscription is not None:
                    await subscription.close()
    except Exception as e:
        manager.log_query_error(collection_name, "remove", start_time, e, query)
        logger.error("Error in remove_from_mongo for %s: %s", context, e)
        raise

    removed = result.deleted_count == 1
    manager.log_query_success(collection_name, "remove", start_time, result.deleted_count)
    if removed:
        logger.info("Removed document for %s", context)
    else:
        logger.debug("No document found to remove for %s", context)
    return removed
