import asyncio
import copy
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import ServerSelectionTimeoutError

from generic_mongo.config import Settings
from generic_mongo.database.manager import DatabaseManager

_CLOSED = object()


class FakeChangeStream:
    """In-memory stand-in for a Motor change stream."""

    def __init__(self, pipeline: List[Dict[str, Any]], **kwargs):
        self.pipeline = pipeline
        self.kwargs = kwargs
        self.opened = False
        self.closed = False
        self.delivered: List[Any] = []
        self._queue: Optional[asyncio.Queue] = None

    async def __aenter__(self):
        self._queue = asyncio.Queue()
        self.opened = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    def push(self, event: Any) -> None:
        if self.opened and not self.closed:
            self.delivered.append(event)
            self._queue.put_nowait(event)

    async def close(self):
        if not self.closed:
            self.closed = True
            if self._queue is not None:
                self._queue.put_nowait(_CLOSED)


def _matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, expected in query.items():
        if isinstance(expected, dict) and "$in" in expected:
            if document.get(key) not in expected["$in"]:
                return False
        elif document.get(key) != expected:
            return False
    return True


def _apply(document: Dict[str, Any], update: Dict[str, Any], inserting: bool = False) -> None:
    for key, value in update.get("$set", {}).items():
        document[key] = value
    for key, value in update.get("$inc", {}).items():
        document[key] = document.get(key, 0) + value
    if inserting:
        for key, value in update.get("$setOnInsert", {}).items():
            document[key] = value


class FakeCursor:
    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = documents

    async def to_list(self, length=None):
        return [copy.deepcopy(document) for document in self._documents]


class FakeCollection:
    """Enough of `AsyncIOMotorCollection` for the read, write and delete paths."""

    def __init__(self, name: str):
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self.streams: List[FakeChangeStream] = []
        self.calls: List[str] = []

    def _emit(self, operation_type: str, document: Dict[str, Any]) -> None:
        event = {
            "operationType": operation_type,
            "documentKey": {"_id": document["_id"]},
            "fullDocument": copy.deepcopy(document),
        }
        for stream in self.streams:
            stream.push(event)

    def _matching(self, query: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [document for document in self.documents if _matches(document, query or {})]

    async def find_one(self, query=None, *args, sort=None, **kwargs):
        self.calls.append("find_one")
        found = self._matching(query)
        for field, direction in reversed(sort or []):
            found.sort(key=lambda d: (d.get(field) is not None, d.get(field)), reverse=direction < 0)
        return copy.deepcopy(found[0]) if found else None

    def find(self, query=None, *args, **kwargs):
        self.calls.append("find")
        return FakeCursor(self._matching(query))

    async def insert_one(self, document):
        self.calls.append("insert_one")
        document = copy.deepcopy(document)
        document.setdefault("_id", ObjectId())
        self.documents.append(document)
        self._emit("insert", document)
        return SimpleNamespace(inserted_id=document["_id"])

    async def update_one(self, query, update, upsert=False, **kwargs):
        self.calls.append("update_one")
        found = self._matching(query)
        if not found:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        _apply(found[0], update)
        self._emit("update", found[0])
        return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)

    async def bulk_write(self, requests, **kwargs):
        self.calls.append("bulk_write")
        matched = 0
        for request in requests:
            for document in self._matching(request._filter)[:1]:
                _apply(document, request._doc)
                matched += 1
        return SimpleNamespace(matched_count=matched, modified_count=matched)

    async def find_one_and_update(self, query, update, upsert=False, return_document=ReturnDocument.BEFORE, **kwargs):
        self.calls.append("find_one_and_update")
        found = self._matching(query)
        if found:
            document = found[0]
            before = copy.deepcopy(document)
            _apply(document, update)
            self._emit("update", document)
            return copy.deepcopy(document) if return_document == ReturnDocument.AFTER else before
        if not upsert:
            return None
        document = {key: value for key, value in query.items() if not isinstance(value, dict)}
        document.setdefault("_id", ObjectId())
        _apply(document, update, inserting=True)
        self.documents.append(document)
        self._emit("insert", document)
        return copy.deepcopy(document) if return_document == ReturnDocument.AFTER else None

    async def delete_one(self, query, **kwargs):
        self.calls.append("delete_one")
        found = self._matching(query)
        if not found:
            return SimpleNamespace(deleted_count=0)
        self.documents.remove(found[0])
        self._emit("delete", found[0])
        return SimpleNamespace(deleted_count=1)

    def watch(self, pipeline=None, **kwargs):
        stream = FakeChangeStream(pipeline or [], **kwargs)
        self.streams.append(stream)
        return stream

    @property
    def writes(self) -> List[str]:
        return [call for call in self.calls if call not in ("find", "find_one")]


class FakeDatabase:
    def __init__(self, name: str):
        self.name = name
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]


class FakeAdmin:
    def __init__(self, fail: bool = False):
        self.fail = fail

    async def command(self, name: str):
        if self.fail:
            raise ServerSelectionTimeoutError("No servers found yet")
        return {"ok": 1.0}


class FakeClient:
    def __init__(self, uri: str, database: FakeDatabase, fail_ping: bool = False, **options):
        self.uri = uri
        self.options = options
        self.admin = FakeAdmin(fail_ping)
        self.closed = False
        self._database = database

    def __getitem__(self, name: str) -> FakeDatabase:
        return self._database

    def get_default_database(self) -> FakeDatabase:
        return self._database

    def close(self) -> None:
        self.closed = True


class FakeClientFactory:
    """Builds `FakeClient`s that all share one in-memory database."""

    def __init__(self):
        self.database = FakeDatabase("testdb")
        self.clients: List[FakeClient] = []
        self.fail_ping = False

    def __call__(self, uri: str, **options) -> FakeClient:
        client = FakeClient(uri, self.database, fail_ping=self.fail_ping, **options)
        self.clients.append(client)
        return client


class DictStore:
    """Dict-backed key-value side store."""

    def __init__(self):
        self.data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


@pytest.fixture
def test_settings():
    return Settings(
        MONGODB_URI="mongodb://localhost:27017/testdb",
        MONGODB_DATABASE="testdb",
        MONGODB_CLOSE_ON_IDLE=True,
    )


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def manager(test_settings, client_factory):
    return DatabaseManager(settings=test_settings, client_factory=client_factory)


@pytest.fixture
def database(client_factory):
    return client_factory.database


@pytest.fixture
def side_store():
    return DictStore()


@pytest.fixture
def company_id():
    return str(ObjectId())


@pytest.fixture
def user_id():
    return str(ObjectId())


@pytest.fixture
def collection():
    return FakeCollection("orders")
