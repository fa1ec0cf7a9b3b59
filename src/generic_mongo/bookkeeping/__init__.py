"""Hit counters and access timestamps kept in a side key-value store."""

from generic_mongo.bookkeeping.trackers import (
    EPOCH,
    HitCountTracker,
    KeyValueStore,
    TimestampTracker,
    get_hit_count,
    last_accessed,
    last_updated,
    make_key,
    parse_count,
    parse_date,
    record_read,
    record_write,
    set_hit_count,
)

__all__ = [
    "EPOCH",
    "HitCountTracker",
    "KeyValueStore",
    "TimestampTracker",
    "get_hit_count",
    "last_accessed",
    "last_updated",
    "make_key",
    "parse_count",
    "parse_date",
    "record_read",
    "record_write",
    "set_hit_count",
]
