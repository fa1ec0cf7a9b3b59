"""
# Identifier Variants

An identifier selects the documents an operation targets. Exactly one variant is
active per call and the fields it carries determine how specific the filter is:

| Variant | Fields |
|---------|--------|
| `IdIdentifier` | `id` |
| `CompanyIdentifier` | `company_id` |
| `CompanyCustomerIdentifier` | `company_id`, `customer_id` |
| `CompanyIdIdentifier` | `company_id`, `id` |
| `CompanyCustomerIdIdentifier` | `company_id`, `customer_id`, `id` |
| `CompanyIdAdditionalIdentifier` | `company_id`, `id`, `additional_identifier` |
| `CompanyCustomerIdAdditionalIdentifier` | `company_id`, `customer_id`, `id`, `additional_identifier` |

Every variant answers the same three questions, so callers never probe for fields:

- `scope_filter()`: the scoping predicate (everything except the record id)
- `record_id`: the target `ObjectId`, or `None` when the variant has no id
- `to_filter()`: scope and record id combined

Stored field names: `company`, `customer`, `additionalIdentifier`, `_id`.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from bson import ObjectId

from generic_mongo.exceptions import ValidationError


def to_object_id(value: Any, field_name: str) -> ObjectId:
    """
    Convert a string (or `ObjectId`) into an `ObjectId`.

    Raises:
        ValidationError: If the value is not a valid 24-character hex id.
    """
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise ValidationError(
            f"{field_name} must be a valid ObjectId", errors=[{"field": field_name, "value": repr(value)}]
        )
    return ObjectId(value)


class Identifier:
    """Base class for identifier variants."""

    def scope_filter(self) -> Dict[str, Any]:
        raise NotImplementedError("Subclasses must implement scope_filter")

    @property
    def record_id(self) -> Optional[ObjectId]:
        return None

    def to_filter(self) -> Dict[str, Any]:
        query = self.scope_filter()
        if self.record_id is not None:
            query["_id"] = self.record_id
        return query

    def describe(self) -> Dict[str, str]:
        """Plain-string view used in log records."""
        return {key: str(value) for key, value in self.to_filter().items()}


@dataclass(frozen=True)
class IdIdentifier(Identifier):
    id: str

    def scope_filter(self) -> Dict[str, Any]:
        return {}

    @property
    def record_id(self) -> Optional[ObjectId]:
        return to_object_id(self.id, "id")


@dataclass(frozen=True)
class CompanyIdentifier(Identifier):
    company_id: str

    def scope_filter(self) -> Dict[str, Any]:
        return {"company": to_object_id(self.company_id, "company_id")}


@dataclass(frozen=True)
class CompanyCustomerIdentifier(Identifier):
    company_id: str
    customer_id: str

    def scope_filter(self) -> Dict[str, Any]:
        return {
            "company": to_object_id(self.company_id, "company_id"),
            "customer": to_object_id(self.customer_id, "customer_id"),
        }


@dataclass(frozen=True)
class CompanyIdIdentifier(Identifier):
    company_id: str
    id: str

    def scope_filter(self) -> Dict[str, Any]:
        return {"company": to_object_id(self.company_id, "company_id")}

    @property
    def record_id(self) -> Optional[ObjectId]:
        return to_object_id(self.id, "id")


@dataclass(frozen=True)
class CompanyCustomerIdIdentifier(Identifier):
    company_id: str
    customer_id: str
    id: str

    def scope_filter(self) -> Dict[str, Any]:
        return {
            "company": to_object_id(self.company_id, "company_id"),
            "customer": to_object_id(self.customer_id, "customer_id"),
        }

    @property
    def record_id(self) -> Optional[ObjectId]:
        return to_object_id(self.id, "id")


@dataclass(frozen=True)
class CompanyIdAdditionalIdentifier(Identifier):
    company_id: str
    id: str
    additional_identifier: str

    def scope_filter(self) -> Dict[str, Any]:
        return {
            "company": to_object_id(self.company_id, "company_id"),
            "additionalIdentifier": self.additional_identifier,
        }

    @property
    def record_id(self) -> Optional[ObjectId]:
        return to_object_id(self.id, "id")


@dataclass(frozen=True)
class CompanyCustomerIdAdditionalIdentifier(Identifier):
    company_id: str
    customer_id: str
    id: str
    additional_identifier: str

    def scope_filter(self) -> Dict[str, Any]:
        return {
            "company": to_object_id(self.company_id, "company_id"),
            "customer": to_object_id(self.customer_id, "customer_id"),
            "additionalIdentifier": self.additional_identifier,
        }

    @property
    def record_id(self) -> Optional[ObjectId]:
        return to_object_id(self.id, "id")


# Keyed by the set of camelCase fields present, as callers send them over the wire
_VARIANTS = {
    frozenset({"id"}): IdIdentifier,
    frozenset({"companyId"}): CompanyIdentifier,
    frozenset({"companyId", "customerId"}): CompanyCustomerIdentifier,
    frozenset({"companyId", "id"}): CompanyIdIdentifier,
    frozenset({"companyId", "customerId", "id"}): CompanyCustomerIdIdentifier,
    frozenset({"companyId", "id", "additionalIdentifier"}): CompanyIdAdditionalIdentifier,
    frozenset({"companyId", "customerId", "id", "additionalIdentifier"}): CompanyCustomerIdAdditionalIdentifier,
}

_FIELD_NAMES = {
    "id": "id",
    "companyId": "company_id",
    "customerId": "customer_id",
    "additionalIdentifier": "additional_identifier",
}


def identifier_from_dict(data: Mapping[str, Any]) -> Identifier:
    """
    Build the identifier variant matching the keys present in `data`.

    Keys with `None` or empty values count as absent.

    Raises:
        ValidationError: If the combination of keys matches no variant.
    """
    present = {key: value for key, value in data.items() if value not in (None, "")}
    variant = _VARIANTS.get(frozenset(present))
    if variant is None:
        raise ValidationError(f"Unsupported identifier shape: {sorted(present)}")
    return variant(**{_FIELD_NAMES[key]: value for key, value in present.items()})
