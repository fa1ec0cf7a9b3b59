import pytest

from generic_mongo.models.documents import create_generic_schema
from generic_mongo.models.identifiers import CompanyIdentifier, CompanyIdIdentifier
from generic_mongo.services import get_from_mongo, remove_from_mongo, update_item_in_mongo

Item = create_generic_schema("Item", name=(str, ...))


def validate_item(data):
    return None


@pytest.mark.asyncio
async def test_create_read_update_delete(manager, database, company_id):
    """A record walks through create, read-back, update and two deletes."""
    created = await update_item_in_mongo(
        CompanyIdentifier(company_id), "items", Item, {"name": "A"}, validate_item, manager=manager
    )

    assert created["name"] == "A"
    assert created["setHitCount"] == 1
    assert created["getHitCount"] == 0

    identifier = CompanyIdIdentifier(company_id, created["_id"])
    read_back = await get_from_mongo(identifier, "items", schema=Item, manager=manager)

    assert read_back.is_stale is True
    assert read_back.data["_id"] == created["_id"]
    assert read_back.data["getHitCount"] == 1

    updated = await update_item_in_mongo(identifier, "items", Item, {"name": "B"}, validate_item, manager=manager)

    assert updated["_id"] == created["_id"]
    assert updated["name"] == "B"
    assert updated["setHitCount"] == 2
    assert updated["getHitCount"] == 1

    assert await remove_from_mongo(identifier, "items", manager=manager) is True
    assert await remove_from_mongo(identifier, "items", manager=manager) is False
    assert database["items"].documents == []
    assert manager.active_leases == 0
