"""
# Generic Document Models

Schemas, serialization and the bookkeeping capability shared by every collection the
data-access layer touches.

## Document Shape

Every stored record is a domain payload merged with system-owned fields:

- **Ownership**: `company`, `user` (and `customer` when scoped by customer), stored as `ObjectId`
- **Bookkeeping**: `updatedAt`, `lastAccessed`, `getHitCount`, `setHitCount`

Bookkeeping fields are never accepted from callers; only the core advances them.

## Bookkeeping Capability

A schema opts into bookkeeping by subclassing `BookkeepingDocument`. The read and watch
paths check `supports_bookkeeping(schema)` instead of probing for individual fields.

## Serializable Projection

At the system boundary references and timestamps travel as strings:

```python
serialize_document({"_id": ObjectId("65a..."), "updatedAt": datetime(...)})
# {"_id": "65a...", "updatedAt": "2024-01-01T10:00:00+00:00"}
```

`deserialize_document()` reverses the conversion for the known reference and timestamp
fields, so `serialize(deserialize(serialize(doc))) == serialize(doc)`.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, create_model
from pydantic import ValidationError as PydanticValidationError

from generic_mongo.exceptions import ValidationError

REFERENCE_FIELDS = ("_id", "company", "customer", "user")
TIMESTAMP_FIELDS = ("updatedAt", "lastAccessed", "createdAt")
OWNERSHIP_FIELDS = ("company", "customer", "user", "additionalIdentifier")
BOOKKEEPING_FIELDS = ("updatedAt", "lastAccessed", "getHitCount", "setHitCount")


class GenericDocument(BaseModel):
    """
    Base schema for records stored through the data-access layer.

    Extra fields are allowed so that domain payloads can be stored without a schema
    per collection; subclasses declare the fields they want validated.
    """

    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True, populate_by_name=True)

    id: Optional[ObjectId] = Field(default=None, alias="_id")
    company: Optional[ObjectId] = None
    user: Optional[ObjectId] = None


class BookkeepingDocument(GenericDocument):
    """Schema capability: records of this type carry hit counters and access timestamps."""

    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    last_accessed: Optional[datetime] = Field(default=None, alias="lastAccessed")
    get_hit_count: int = Field(default=0, ge=0, alias="getHitCount")
    set_hit_count: int = Field(default=0, ge=0, alias="setHitCount")


def supports_bookkeeping(schema: Optional[Type[BaseModel]]) -> bool:
    return isinstance(schema, type) and issubclass(schema, BookkeepingDocument)


def create_generic_schema(model_name: str, /, **fields: Any) -> Type[BookkeepingDocument]:
    """
    Build a `BookkeepingDocument` subclass with the given domain fields.

    Args:
        model_name: Class name of the generated schema. Positional-only, so a field may be called `name`.
        **fields: `pydantic.create_model` field definitions, e.g. `title=(str, ...)`.

    Example:
        ```python
        Invoice = create_generic_schema("Invoice", number=(str, ...), total=(float, 0.0))
        ```
    """
    return create_model(model_name, __base__=BookkeepingDocument, **fields)


def _field_name_for(schema: Type[BaseModel], key: str) -> Optional[str]:
    for name, field in schema.model_fields.items():
        if key == name or key == field.alias:
            return name
    return None


def validate_fields(schema: Type[BaseModel], fields: Mapping[str, Any]) -> None:
    """
    Validate a partial payload field by field against `schema`.

    Only the fields present are checked, the way an update validates the paths it sets.
    Unknown keys are rejected when the schema forbids extra fields.

    Raises:
        ValidationError: With the collected per-field errors.
    """
    instance = schema.model_construct()
    forbid_extra = schema.model_config.get("extra") == "forbid"
    errors: List[Dict[str, Any]] = []

    for key, value in fields.items():
        name = _field_name_for(schema, key)
        if name is None:
            if forbid_extra:
                errors.append({"loc": (key,), "msg": "Extra inputs are not permitted", "type": "extra_forbidden"})
            continue
        try:
            schema.__pydantic_validator__.validate_assignment(instance, name, value)
        except PydanticValidationError as e:
            errors.extend(e.errors(include_url=False, include_context=False))

    if errors:
        raise ValidationError(f"{schema.__name__} validation failed for {len(errors)} field(s)", errors=errors)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by a non tz-aware client) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _from_isoformat(text: str) -> datetime:
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def parse_timestamp(value: Union[datetime, str]) -> datetime:
    """Parse a `datetime` or ISO-8601 string into an aware datetime."""
    if isinstance(value, datetime):
        return ensure_aware(value)
    return ensure_aware(_from_isoformat(value))


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return serialize_document(value)
    if isinstance(value, Mapping):
        return {key: _serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize_value(item) for item in value]
    return value


def serialize_document(document: Union[Mapping[str, Any], BaseModel]) -> Dict[str, Any]:
    """Render a stored document as its serializable projection."""
    if isinstance(document, BaseModel):
        document = document.model_dump(by_alias=True)
    return {key: _serialize_value(value) for key, value in document.items()}


def deserialize_document(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Restore reference and timestamp fields of a serialized document.

    Values that do not parse are left untouched.
    """
    document = dict(data)
    for key in REFERENCE_FIELDS:
        value = document.get(key)
        if isinstance(value, str) and ObjectId.is_valid(value):
            document[key] = ObjectId(value)
    for key in TIMESTAMP_FIELDS:
        value = document.get(key)
        if isinstance(value, str):
            try:
                document[key] = _from_isoformat(value)
            except ValueError:
                pass
    return document
