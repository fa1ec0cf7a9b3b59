from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

from generic_mongo.exceptions import ValidationError
from generic_mongo.models.identifiers import CompanyIdIdentifier
from generic_mongo.services.remove_service import remove_from_mongo


@pytest.fixture
def invoices(database):
    return database["invoices"]


def _seed(collection, company_id, user_id, **fields):
    document = {"_id": ObjectId(), "company": ObjectId(company_id), "user": ObjectId(user_id), **fields}
    collection.documents.append(document)
    return document


@pytest.mark.asyncio
async def test_remove_existing_document(manager, invoices, company_id, user_id):
    document = _seed(invoices, company_id, user_id)

    removed = await remove_from_mongo(
        CompanyIdIdentifier(company_id, str(document["_id"])), "invoices", user_id=user_id, manager=manager
    )

    assert removed is True
    assert invoices.documents == []


@pytest.mark.asyncio
async def test_remove_missing_document_returns_false(manager, invoices, company_id, user_id):
    """Nothing to delete is a normal outcome, not an error."""
    removed = await remove_from_mongo(
        CompanyIdIdentifier(company_id, str(ObjectId())), "invoices", user_id=user_id, manager=manager
    )

    assert removed is False


@pytest.mark.asyncio
async def test_remove_respects_scope(manager, invoices, company_id, user_id):
    document = _seed(invoices, company_id, user_id)

    removed = await remove_from_mongo(
        CompanyIdIdentifier(str(ObjectId()), str(document["_id"])), "invoices", user_id=user_id, manager=manager
    )

    assert removed is False
    assert len(invoices.documents) == 1


@pytest.mark.asyncio
async def test_remove_applies_extra_filter(manager, invoices, company_id, user_id):
    document = _seed(invoices, company_id, user_id, status="paid")
    identifier = CompanyIdIdentifier(company_id, str(document["_id"]))

    wrong_status = await remove_from_mongo(identifier, "invoices", user_id=user_id, filter={"status": "open"}, manager=manager)
    right_status = await remove_from_mongo(identifier, "invoices", user_id=user_id, filter={"status": "paid"}, manager=manager)

    assert wrong_status is False
    assert right_status is True


@pytest.mark.asyncio
async def test_remove_closes_subscription_and_connection(manager, invoices, company_id, user_id):
    document = _seed(invoices, company_id, user_id)

    await remove_from_mongo(
        CompanyIdIdentifier(company_id, str(document["_id"])), "invoices", user_id=user_id,
        on_change=lambda change: None, manager=manager,
    )

    stream = invoices.streams[0]
    assert stream.closed
    assert stream.delivered[0]["operationType"] == "delete"
    assert manager.active_leases == 0
    assert manager.model_connection is None


@pytest.mark.asyncio
async def test_remove_errors_propagate(manager, invoices, company_id):
    invoices.delete_one = AsyncMock(side_effect=OperationFailure("not authorized"))

    with pytest.raises(OperationFailure):
        await remove_from_mongo(CompanyIdIdentifier(company_id, str(ObjectId())), "invoices", manager=manager)

    assert manager.active_leases == 0


@pytest.mark.asyncio
async def test_malformed_record_id_is_logged_and_raised(manager, invoices, company_id):
    """Nothing is deleted and the failure is reported like any other remove error."""
    with patch("generic_mongo.services.remove_service.logger") as mock_logger:
        with pytest.raises(ValidationError):
            await remove_from_mongo(CompanyIdIdentifier(company_id, "not-an-id"), "invoices", manager=manager)

    assert "Error in remove_from_mongo" in mock_logger.error.call_args[0][0]
    assert invoices.calls == []


@pytest.mark.asyncio
async def test_remove_logs_query_start(manager, invoices, company_id):
    with patch.object(manager, "log_query_start", wraps=manager.log_query_start) as log_start:
        await remove_from_mongo(
            CompanyIdIdentifier(company_id, str(ObjectId())), "invoices", filter={"status": "void"}, manager=manager
        )

    log_start.assert_called_once_with("invoices", "remove", {"status": "void"})
