"""
# Bookkeeping Trackers

Counter and timestamp arithmetic over an injected key-value store. Nothing here talks to
MongoDB; the store only needs `get(key)` and `set(key, value)` coroutines, so counters can
live in a side cache such as Redis.

## Key Format

`{record_id}:{store_name}:{kind}`, for example `65a1...:invoices:getHitCount`.

## Instances

| Path | Counter | Timestamp |
|------|---------|-----------|
| Read | `get_hit_count` (`getHitCount`) | `last_accessed` (`lastAccessed`) |
| Write | `set_hit_count` (`setHitCount`) | `last_updated` (`lastUpdated`) |

## Known Limitation

`increment()` is a read-modify-write over two separate calls. It is **not atomic**: two
concurrent increments of the same key may both read `n` and both write `n + 1`. Callers
that need exact counts under contention must serialize increments per key. Counts in the
side store are therefore eventually *under*-counted under contention, never over-counted.
"""

import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Protocol

from generic_mongo.managers.logging_manager import get_logger

logger = get_logger(prefix="[Bookkeeping]")
perf_logger = get_logger(prefix="[BOOKKEEPING_PERFORMANCE]")

GetFn = Callable[[str], Awaitable[Optional[str]]]
SetFn = Callable[[str, str], Awaitable[None]]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class KeyValueStore(Protocol):
    """Side store consumed by the trackers."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...


def make_key(record_id: str, store_name: str, kind: str) -> str:
    return f"{record_id}:{store_name}:{kind}"


def parse_count(raw: Optional[str]) -> int:
    """Parse a stored counter; absent or unparseable values count as 0."""
    if raw is None:
        return 0
    try:
        return int(str(raw).strip())
    except ValueError:
        logger.warning("Unparseable hit count %r, treating as 0", raw)
        return 0


def parse_date(raw: Optional[str]) -> datetime:
    """Parse a stored ISO-8601 timestamp; absent or unparseable values map to the Unix epoch."""
    if not raw:
        return EPOCH
    try:
        value = datetime.fromisoformat(raw)
    except ValueError:
        logger.warning("Unparseable timestamp %r, treating as epoch", raw)
        return EPOCH
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class HitCountTracker:
    """Hit counter of one kind (`getHitCount` or `setHitCount`)."""

    def __init__(self, kind: str):
        self.kind = kind

    def key(self, record_id: str, store_name: str) -> str:
        return make_key(record_id, store_name, self.kind)

    async def get_count(self, get: GetFn, record_id: str, store_name: str) -> int:
        start_time = time.time()
        key = self.key(record_id, store_name)
        try:
            count = parse_count(await get(key))
        except Exception as e:
            logger.error("Error fetching %s for %s in %s: %s", self.kind, record_id, store_name, e)
            raise
        logger.debug("Retrieved %s=%d for %s in %s", self.kind, count, record_id, store_name)
        perf_logger.debug("get %s completed in %.3fs", self.kind, time.time() - start_time)
        return count

    async def increment(self, get: GetFn, set: SetFn, record_id: str, store_name: str) -> int:
        """Add one to the counter and return the new value."""
        start_time = time.time()
        key = self.key(record_id, store_name)
        try:
            current = parse_count(await get(key))
            new_count = current + 1
            await set(key, str(new_count))
        except Exception as e:
            logger.error("Error incrementing %s for %s in %s: %s", self.kind, record_id, store_name, e)
            raise
        logger.debug("Incremented %s for %s in %s: %d -> %d", self.kind, record_id, store_name, current, new_count)
        perf_logger.debug("increment %s completed in %.3fs", self.kind, time.time() - start_time)
        return new_count


class TimestampTracker:
    """Timestamp of one kind (`lastAccessed` or `lastUpdated`)."""

    def __init__(self, kind: str):
        self.kind = kind

    def key(self, record_id: str, store_name: str) -> str:
        return make_key(record_id, store_name, self.kind)

    async def get_date(self, get: GetFn, record_id: str, store_name: str) -> datetime:
        start_time = time.time()
        key = self.key(record_id, store_name)
        try:
            value = parse_date(await get(key))
        except Exception as e:
            logger.error("Error fetching %s for %s in %s: %s", self.kind, record_id, store_name, e)
            raise
        logger.debug("Retrieved %s=%s for %s in %s", self.kind, value.isoformat(), record_id, store_name)
        perf_logger.debug("get %s completed in %.3fs", self.kind, time.time() - start_time)
        return value

    async def update_date(
        self, set: SetFn, record_id: str, store_name: str, date: Optional[datetime] = None
    ) -> datetime:
        """Stamp the timestamp (now by default) and return the value written."""
        start_time = time.time()
        date = date or datetime.now(timezone.utc)
        key = self.key(record_id, store_name)
        try:
            await set(key, date.isoformat())
        except Exception as e:
            logger.error("Error updating %s for %s in %s: %s", self.kind, record_id, store_name, e)
            raise
        logger.debug("Set %s=%s for %s in %s", self.kind, date.isoformat(), record_id, store_name)
        perf_logger.debug("update %s completed in %.3fs", self.kind, time.time() - start_time)
        return date


# Read path
get_hit_count = HitCountTracker("getHitCount")
last_accessed = TimestampTracker("lastAccessed")

# Write path
set_hit_count = HitCountTracker("setHitCount")
last_updated = TimestampTracker("lastUpdated")


async def record_read(
    store: KeyValueStore, record_id: str, store_name: str, date: Optional[datetime] = None
) -> int:
    """Mirror a read into the side store; returns the new get-hit count."""
    count = await get_hit_count.increment(store.get, store.set, record_id, store_name)
    await last_accessed.update_date(store.set, record_id, store_name, date)
    return count


async def record_write(
    store: KeyValueStore, record_id: str, store_name: str, date: Optional[datetime] = None
) -> int:
    """Mirror a write into the side store; returns the new set-hit count."""
    count = await set_hit_count.increment(store.get, store.set, record_id, store_name)
    await last_updated.update_date(store.set, record_id, store_name, date)
    return count
