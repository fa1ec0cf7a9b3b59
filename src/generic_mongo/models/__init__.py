"""Identifier variants, document schemas and the serializable projection."""

from generic_mongo.models.documents import (
    BookkeepingDocument,
    GenericDocument,
    create_generic_schema,
    deserialize_document,
    serialize_document,
    supports_bookkeeping,
    validate_fields,
)
from generic_mongo.models.identifiers import (
    CompanyCustomerIdAdditionalIdentifier,
    CompanyCustomerIdentifier,
    CompanyCustomerIdIdentifier,
    CompanyIdAdditionalIdentifier,
    CompanyIdentifier,
    CompanyIdIdentifier,
    Identifier,
    IdIdentifier,
    identifier_from_dict,
)

__all__ = [
    "BookkeepingDocument",
    "CompanyCustomerIdAdditionalIdentifier",
    "CompanyCustomerIdentifier",
    "CompanyCustomerIdIdentifier",
    "CompanyIdAdditionalIdentifier",
    "CompanyIdentifier",
    "CompanyIdIdentifier",
    "GenericDocument",
    "IdIdentifier",
    "Identifier",
    "create_generic_schema",
    "deserialize_document",
    "identifier_from_dict",
    "serialize_document",
    "supports_bookkeeping",
    "validate_fields",
]
