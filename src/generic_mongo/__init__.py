"""
# generic_mongo

Generic MongoDB data-access layer: staleness-aware reads, validated upserts and scoped
deletes over any collection, with per-record bookkeeping (hit counters, access
timestamps) and change subscriptions.

```python
from generic_mongo import CompanyIdIdentifier, get_from_mongo

result = await get_from_mongo(CompanyIdIdentifier(company_id, invoice_id), "invoices")
if result.is_stale:
    cache.store(result.data)
```
"""

from generic_mongo.database import ChangeSubscription, ConnectionKind, DatabaseManager, db_manager
from generic_mongo.exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    GenericMongoError,
    NotFoundError,
    UpsertFailedError,
    ValidationError,
)
from generic_mongo.models import (
    BookkeepingDocument,
    CompanyCustomerIdAdditionalIdentifier,
    CompanyCustomerIdentifier,
    CompanyCustomerIdIdentifier,
    CompanyIdAdditionalIdentifier,
    CompanyIdentifier,
    CompanyIdIdentifier,
    GenericDocument,
    IdIdentifier,
    Identifier,
    create_generic_schema,
    deserialize_document,
    identifier_from_dict,
    serialize_document,
)
from generic_mongo.services import (
    ReadResult,
    WatchResult,
    get_from_mongo,
    remove_from_mongo,
    update_item_in_mongo,
    watch_from_mongo,
)

__version__ = "1.0.0"

__all__ = [
    "BookkeepingDocument",
    "ChangeSubscription",
    "CompanyCustomerIdAdditionalIdentifier",
    "CompanyCustomerIdentifier",
    "CompanyCustomerIdIdentifier",
    "CompanyIdAdditionalIdentifier",
    "CompanyIdentifier",
    "CompanyIdIdentifier",
    "ConfigurationError",
    "ConnectionKind",
    "DatabaseConnectionError",
    "DatabaseManager",
    "GenericDocument",
    "GenericMongoError",
    "IdIdentifier",
    "Identifier",
    "NotFoundError",
    "ReadResult",
    "UpsertFailedError",
    "ValidationError",
    "WatchResult",
    "create_generic_schema",
    "db_manager",
    "deserialize_document",
    "get_from_mongo",
    "identifier_from_dict",
    "remove_from_mongo",
    "serialize_document",
    "update_item_in_mongo",
    "watch_from_mongo",
]
