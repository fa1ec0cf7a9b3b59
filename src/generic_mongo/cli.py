"""
Command-line interface for the generic data-access operations.

This CLI tool runs single get, update and remove operations against a collection and
prints the result as JSON. The connection URI comes from the usual configuration
(`MONGODB_URI`).
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from generic_mongo.database.manager import DatabaseManager, db_manager
from generic_mongo.exceptions import GenericMongoError
from generic_mongo.managers.logging_manager import get_logger
from generic_mongo.models.identifiers import Identifier, identifier_from_dict
from generic_mongo.services import get_from_mongo, remove_from_mongo, update_item_in_mongo

logger = get_logger(prefix="[GenericMongoCLI]")


class GenericMongoCLI:
    """CLI tool for generic collection operations."""

    def __init__(self, manager: Optional[DatabaseManager] = None):
        self.manager = manager or db_manager

    def _emit(self, payload: Any) -> None:
        print(json.dumps(payload, indent=2, default=str))

    async def get(self, identifier: Identifier, collection: str, user_id: Optional[str], filter: Dict) -> bool:
        """
        Fetch matching documents.

        Returns:
            True if the read succeeded, False otherwise
        """
        try:
            result = await get_from_mongo(
                identifier, collection, user_id=user_id, filter=filter, manager=self.manager
            )
        except Exception as e:
            logger.error(f"Get failed: {e}", exc_info=True)
            return False
        self._emit(result.data)
        return True

    async def update(self, identifier: Identifier, collection: str, user_id: Optional[str], data: Dict) -> bool:
        """
        Create or update one document from a JSON payload.

        Returns:
            True if the document was written and verified, False otherwise
        """
        try:
            document = await update_item_in_mongo(
                identifier, collection, None, data, None, user_id=user_id, manager=self.manager
            )
        except Exception as e:
            logger.error(f"Update failed: {e}", exc_info=True)
            return False
        self._emit(document)
        return True

    async def remove(self, identifier: Identifier, collection: str, user_id: Optional[str], filter: Dict) -> bool:
        """
        Delete one document.

        Returns:
            True if a document was removed, False otherwise
        """
        try:
            removed = await remove_from_mongo(
                identifier, collection, user_id=user_id, filter=filter, manager=self.manager
            )
        except Exception as e:
            logger.error(f"Remove failed: {e}", exc_info=True)
            return False
        self._emit({"removed": removed})
        return removed


def _json_object(value: str) -> Dict:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise argparse.ArgumentTypeError("expected a JSON object")
    return parsed


def _add_scope_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--collection", required=True, help="Target collection name")
    parser.add_argument("--company-id", help="Owning company ObjectId")
    parser.add_argument("--customer-id", help="Customer ObjectId")
    parser.add_argument("--id", dest="record_id", help="Record ObjectId")
    parser.add_argument("--additional-identifier", help="Additional scoping identifier")
    parser.add_argument("--user-id", help="Acting user ObjectId")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generic MongoDB collection operations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Read every invoice of a company
  generic-mongo get --collection invoices --company-id 65a1f0c2e4b0a1b2c3d4e5f6

  # Create an invoice
  generic-mongo update --collection invoices --company-id 65a1... --data '{"number": "INV-7"}'

  # Delete one invoice
  generic-mongo remove --collection invoices --company-id 65a1... --id 65a2...
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Get command
    get_parser = subparsers.add_parser("get", help="Read documents")
    _add_scope_arguments(get_parser)
    get_parser.add_argument("--filter", type=_json_object, default={}, help="Extra filter as a JSON object")

    # Update command
    update_parser = subparsers.add_parser("update", help="Create or update a document")
    _add_scope_arguments(update_parser)
    update_parser.add_argument("--data", type=_json_object, required=True, help="Fields to set as a JSON object")

    # Remove command
    remove_parser = subparsers.add_parser("remove", help="Delete a document")
    _add_scope_arguments(remove_parser)
    remove_parser.add_argument("--filter", type=_json_object, default={}, help="Extra filter as a JSON object")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        identifier = identifier_from_dict(
            {
                "id": args.record_id,
                "companyId": args.company_id,
                "customerId": args.customer_id,
                "additionalIdentifier": args.additional_identifier,
            }
        )
    except GenericMongoError as e:
        parser.error(str(e))

    cli = GenericMongoCLI()

    # Execute command
    if args.command == "get":
        success = asyncio.run(cli.get(identifier, args.collection, args.user_id, args.filter))
    elif args.command == "update":
        success = asyncio.run(cli.update(identifier, args.collection, args.user_id, args.data))
    elif args.command == "remove":
        success = asyncio.run(cli.remove(identifier, args.collection, args.user_id, args.filter))
    else:
        parser.print_help()
        sys.exit(1)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
