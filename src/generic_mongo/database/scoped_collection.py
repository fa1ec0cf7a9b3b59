"""
# Scoped Collection Wrapper

Proxies around Motor collections that pin every operation to an ownership scope
(company, customer, user, additional identifier), so a caller cannot read or modify a
record outside the scope it was given.

```
┌──────────────┐      ┌───────────────────────────────┐
│  Read/Write  │─────▶│        ScopedCollection       │
│  /Delete     │      │ scope={"company": ObjectId..}│
└──────────────┘      └──────────────┬────────────────┘
                                     │  filter ∧ scope
                      ┌──────────────▼──────────────┐
                      │    AsyncIOMotorCollection   │
                      └─────────────────────────────┘
```

`DocumentModel` adds a Pydantic schema on top: the fields an update sets are validated
against the schema before the update is sent.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Type

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorCursor
from pydantic import BaseModel
from pymongo import ReturnDocument

from generic_mongo.managers.logging_manager import get_logger
from generic_mongo.models.documents import BOOKKEEPING_FIELDS, OWNERSHIP_FIELDS, validate_fields

logger = get_logger(prefix="[Scoped Collection]")

SYSTEM_FIELDS = frozenset(("_id",) + OWNERSHIP_FIELDS + BOOKKEEPING_FIELDS)


class ScopedCollection:
    """
    A wrapper around `AsyncIOMotorCollection` that enforces an ownership scope.

    **Mechanism:**
    - **Reads**: the scope predicate is merged into every filter.
    - **Updates/Deletes**: only documents inside the scope can match.

    The caller's filter dictionaries are never mutated.

    Attributes:
        _collection (`AsyncIOMotorCollection`): The underlying Motor collection.
        _scope (`Dict[str, Any]`): Field/value pairs every matched document must carry.
    """

    def __init__(self, collection: AsyncIOMotorCollection, scope: Optional[Mapping[str, Any]] = None):
        self._collection = collection
        self._scope = dict(scope or {})
        logger.debug("Created scoped collection %s with scope keys %s", collection.name, sorted(self._scope))

    def scoped_filter(self, filter_dict: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Return `filter_dict` combined with the scope; scope values win on conflict."""
        query = dict(filter_dict or {})
        query.update(self._scope)
        return query

    async def find_one(self, filter: Optional[Mapping[str, Any]] = None, *args, **kwargs) -> Optional[Dict[str, Any]]:
        query = self.scoped_filter(filter)
        result = await self._collection.find_one(query, *args, **kwargs)
        logger.debug("find_one on %s: %s", self.name, "found" if result else "not found")
        return result

    def find(self, filter: Optional[Mapping[str, Any]] = None, *args, **kwargs) -> AsyncIOMotorCursor:
        query = self.scoped_filter(filter)
        logger.debug("find on %s with filter keys %s", self.name, sorted(query))
        return self._collection.find(query, *args, **kwargs)

    async def find_many(self, filter: Optional[Mapping[str, Any]] = None, *args, **kwargs) -> List[Dict[str, Any]]:
        """Run `find` and drain the cursor."""
        documents = await self.find(filter, *args, **kwargs).to_list(length=None)
        logger.debug("find_many on %s: %d document(s)", self.name, len(documents))
        return documents

    async def bulk_write(self, requests: Sequence[Any], *args, **kwargs):
        """
        Pass-through bulk write.

        Build each request's filter with `scoped_filter()`; request objects are opaque here.
        """
        result = await self._collection.bulk_write(list(requests), *args, **kwargs)
        logger.debug("bulk_write on %s: matched=%d, modified=%d", self.name, result.matched_count, result.modified_count)
        return result

    async def update_one(self, filter: Mapping[str, Any], update: Mapping[str, Any], *args, **kwargs):
        query = self.scoped_filter(filter)
        result = await self._collection.update_one(query, update, *args, **kwargs)
        logger.debug(
            "update_one on %s: matched=%d, modified=%d", self.name, result.matched_count, result.modified_count
        )
        return result

    async def find_one_and_update(
        self, filter: Mapping[str, Any], update: Mapping[str, Any], *args, **kwargs
    ) -> Optional[Dict[str, Any]]:
        query = self.scoped_filter(filter)
        result = await self._collection.find_one_and_update(query, update, *args, **kwargs)
        logger.debug("find_one_and_update on %s: %s", self.name, "returned document" if result else "no document")
        return result

    async def upsert(self, filter: Mapping[str, Any], update: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Atomic create-or-update returning the post-image."""
        return await self.find_one_and_update(filter, update, upsert=True, return_document=ReturnDocument.AFTER)

    async def delete_one(self, filter: Mapping[str, Any], *args, **kwargs):
        query = self.scoped_filter(filter)
        result = await self._collection.delete_one(query, *args, **kwargs)
        logger.debug("delete_one on %s: deleted=%d", self.name, result.deleted_count)
        return result

    def watch(self, pipeline: Optional[List[Dict[str, Any]]] = None, **kwargs):
        """Change stream over the whole collection; narrow it with `pipeline`."""
        return self._collection.watch(pipeline or [], **kwargs)

    @property
    def name(self) -> str:
        return self._collection.name

    @property
    def scope(self) -> Dict[str, Any]:
        return dict(self._scope)


class DocumentModel(ScopedCollection):
    """
    A scoped collection bound to a Pydantic schema.

    Updates are validated field by field against the schema before they are sent, for
    every `$set` key that is not system-owned (ownership and bookkeeping fields, `_id`).
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        schema: Type[BaseModel],
        scope: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(collection, scope)
        self.schema = schema

    def validate_update(self, update: Mapping[str, Any]) -> None:
        """
        Raises:
            ValidationError: If a domain field in `$set` does not satisfy the schema.
        """
        set_fields = update.get("$set") or {}
        domain_fields = {key: value for key, value in set_fields.items() if key not in SYSTEM_FIELDS}
        validate_fields(self.schema, domain_fields)

    async def find_one_and_update(
        self, filter: Mapping[str, Any], update: Mapping[str, Any], *args, **kwargs
    ) -> Optional[Dict[str, Any]]:
        self.validate_update(update)
        return await super().find_one_and_update(filter, update, *args, **kwargs)

    async def update_one(self, filter: Mapping[str, Any], update: Mapping[str, Any], *args, **kwargs):
        self.validate_update(update)
        return await super().update_one(filter, update, *args, **kwargs)
