"""Helpers shared by the read, write and delete paths."""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from bson import ObjectId

from generic_mongo.bookkeeping import KeyValueStore
from generic_mongo.config import settings
from generic_mongo.managers.redis_manager import RedisKeyValueStore
from generic_mongo.models.identifiers import Identifier, to_object_id

ChangeHandler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


def utc_now() -> datetime:
    # Millisecond precision, the resolution MongoDB stores dates at
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def build_scope(identifier: Identifier, user_id: Optional[Union[str, ObjectId]] = None) -> Dict[str, Any]:
    """Ownership predicate for an operation: the identifier's scope plus the acting user."""
    scope = identifier.scope_filter()
    if user_id is not None:
        scope["user"] = to_object_id(user_id, "user_id")
    return scope


def resolve_side_store(side_store: Optional[KeyValueStore]) -> Optional[KeyValueStore]:
    """An explicit store wins; otherwise Redis when the side store is enabled in settings."""
    if side_store is not None:
        return side_store
    if settings.BOOKKEEPING_SIDE_STORE_ENABLED:
        return RedisKeyValueStore()
    return None
