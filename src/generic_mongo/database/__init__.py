"""
# Database Package

Persistence layer of the data-access core, built on **Motor**.

## Components

- **`manager`**: `DatabaseManager`, the lock-guarded owner of the driver and model
  connections, and the module-level `db_manager` default.
- **`scoped_collection`**: `ScopedCollection` and the schema-bound `DocumentModel`.
- **`change_stream`**: `ChangeSubscription`, a closable feed of collection changes.

## Usage

```python
from generic_mongo.database import ConnectionKind, ScopedCollection, db_manager

async with db_manager.lease(ConnectionKind.DRIVER):
    invoices = ScopedCollection(db_manager.get_collection("invoices"), {"company": company_oid})
    latest = await invoices.find_one({}, sort=[("updatedAt", -1)])
```

Attributes:
    db_manager (DatabaseManager): The default process-wide manager.
"""

from generic_mongo.database.change_stream import ChangeSubscription, open_subscription
from generic_mongo.database.manager import ConnectionKind, DatabaseManager, ModelConnection, db_manager
from generic_mongo.database.scoped_collection import DocumentModel, ScopedCollection

__all__ = [
    "ChangeSubscription",
    "ConnectionKind",
    "DatabaseManager",
    "DocumentModel",
    "ModelConnection",
    "ScopedCollection",
    "db_manager",
    "open_subscription",
]
