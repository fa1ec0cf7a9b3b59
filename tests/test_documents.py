from datetime import datetime, timezone

import pytest
from bson import ObjectId
from pydantic import ConfigDict

from generic_mongo.exceptions import ValidationError
from generic_mongo.models.documents import (
    BookkeepingDocument,
    GenericDocument,
    create_generic_schema,
    deserialize_document,
    parse_timestamp,
    serialize_document,
    supports_bookkeeping,
    validate_fields,
)

Invoice = create_generic_schema("Invoice", number=(str, ...), total=(float, 0.0))


class StrictInvoice(BookkeepingDocument):
    model_config = ConfigDict(extra="forbid")

    number: str


class PlainNote(GenericDocument):
    text: str = ""


def _stored_document():
    return {
        "_id": ObjectId(),
        "company": ObjectId(),
        "user": ObjectId(),
        "number": "INV-1",
        "lines": [{"sku": "A", "addedAt": datetime(2024, 1, 2, tzinfo=timezone.utc)}],
        "updatedAt": datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
        "lastAccessed": datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc),
        "getHitCount": 3,
        "setHitCount": 1,
    }


def test_serialize_document_stringifies_references_and_timestamps():
    document = _stored_document()

    serialized = serialize_document(document)

    assert serialized["_id"] == str(document["_id"])
    assert serialized["company"] == str(document["company"])
    assert serialized["updatedAt"] == "2024-01-01T10:00:00+00:00"
    assert serialized["lines"][0]["addedAt"] == "2024-01-02T00:00:00+00:00"
    assert serialized["getHitCount"] == 3


def test_serialization_round_trip_is_stable():
    serialized = serialize_document(_stored_document())

    assert serialize_document(deserialize_document(serialized)) == serialized


def test_round_trip_keeps_naive_timestamps_naive():
    serialized = serialize_document({"_id": ObjectId(), "updatedAt": datetime(2024, 5, 1, 8, 30)})

    assert serialize_document(deserialize_document(serialized)) == serialized


def test_deserialize_restores_known_fields():
    document = _stored_document()

    restored = deserialize_document(serialize_document(document))

    assert restored["_id"] == document["_id"]
    assert restored["user"] == document["user"]
    assert restored["updatedAt"] == document["updatedAt"]


def test_deserialize_leaves_unparseable_values():
    restored = deserialize_document({"_id": "abc", "updatedAt": "yesterday"})

    assert restored == {"_id": "abc", "updatedAt": "yesterday"}


def test_supports_bookkeeping():
    assert supports_bookkeeping(Invoice)
    assert supports_bookkeeping(StrictInvoice)
    assert not supports_bookkeeping(PlainNote)
    assert not supports_bookkeeping(None)


def test_create_generic_schema_allows_field_called_name():
    """A domain field may share its name with the schema-name argument."""
    Item = create_generic_schema("Item", name=(str, ...), colour=(str, "red"))

    assert Item.__name__ == "Item"
    assert {"name", "colour"} <= set(Item.model_fields)
    assert Item(name="A").name == "A"
    with pytest.raises(ValidationError):
        validate_fields(Item, {"name": 3})


def test_validate_fields_accepts_partial_payload():
    """Only the fields present are validated; missing required fields are fine."""
    validate_fields(Invoice, {"total": 12.5})


def test_validate_fields_reports_type_errors():
    with pytest.raises(ValidationError) as exc_info:
        validate_fields(Invoice, {"number": "INV-2", "total": "lots"})

    assert [error["loc"] for error in exc_info.value.errors] == [("total",)]


def test_validate_fields_rejects_extra_keys_when_forbidden():
    with pytest.raises(ValidationError) as exc_info:
        validate_fields(StrictInvoice, {"number": "INV-3", "colour": "red"})

    assert exc_info.value.errors[0]["type"] == "extra_forbidden"


def test_validate_fields_accepts_aliases():
    with pytest.raises(ValidationError):
        validate_fields(Invoice, {"getHitCount": -1})


def test_parse_timestamp_accepts_zulu_strings():
    assert parse_timestamp("2024-01-01T10:00:00Z") == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def test_serialize_model_instance_uses_aliases():
    record_id = ObjectId()
    invoice = Invoice(_id=record_id, number="INV-4")

    serialized = serialize_document(invoice)

    assert serialized["_id"] == str(record_id)
    assert serialized["getHitCount"] == 0
    assert serialized["number"] == "INV-4"
