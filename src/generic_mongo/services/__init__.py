from generic_mongo.services.get_service import ReadResult, WatchResult, get_from_mongo, watch_from_mongo
from generic_mongo.services.remove_service import remove_from_mongo
from generic_mongo.services.update_service import update_item_in_mongo

__all__ = [
    "ReadResult",
    "WatchResult",
    "get_from_mongo",
    "remove_from_mongo",
    "update_item_in_mongo",
    "watch_from_mongo",
]
