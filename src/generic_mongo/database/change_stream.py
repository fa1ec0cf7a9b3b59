"""
# Change Subscriptions

`ChangeSubscription` owns one MongoDB change stream over a collection.

**Lifecycle:**
1. **Open**: `await subscription.open()` establishes the server-side cursor immediately,
   so a write issued afterwards cannot be missed.
2. **Consume**: either register observers and `start()` a background dispatch task, or
   iterate `subscription.events()` directly. The sequence is infinite and not restartable.
3. **Close**: `await subscription.close()` releases the cursor. Closing is idempotent and
   must happen on every exit path of whoever owns the subscription.

Observer failures are logged and swallowed: a broken callback never fails the operation
that opened the subscription, and never stops the stream.

```python
async with ChangeSubscription(collection).on_change(print) as subscription:
    subscription.start()
    await collection.update_one(...)
```
"""

import asyncio
import inspect
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from generic_mongo.managers.logging_manager import get_logger

logger = get_logger(prefix="[Change Stream]")

ChangeCallback = Callable[[Dict[str, Any]], Any]
ErrorCallback = Callable[[BaseException], Any]


class ChangeSubscription:
    """
    A live feed of insert/update/delete events for one collection.

    Args:
        source: Anything with a Motor-style `watch(pipeline, **kwargs)` method.
        pipeline: Aggregation stages narrowing the events; empty means every event.
        full_document: Passed to `watch`; `"updateLookup"` returns the post-image on updates.
    """

    def __init__(
        self,
        source: Any,
        pipeline: Optional[List[Dict[str, Any]]] = None,
        full_document: str = "updateLookup",
    ):
        self._source = source
        self._pipeline = list(pipeline or [])
        self._full_document = full_document
        self._exit_stack: Optional[AsyncExitStack] = None
        self._stream: Any = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self._change_observers: List[ChangeCallback] = []
        self._error_observers: List[ErrorCallback] = []
        self._close_callbacks: List[Callable[[], Awaitable[Any]]] = []

    @property
    def name(self) -> str:
        return getattr(self._source, "name", "<collection>")

    @property
    def is_open(self) -> bool:
        return self._stream is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def on_change(self, callback: ChangeCallback) -> "ChangeSubscription":
        self._change_observers.append(callback)
        return self

    def on_error(self, callback: ErrorCallback) -> "ChangeSubscription":
        self._error_observers.append(callback)
        return self

    def on_close(self, callback: Callable[[], Awaitable[Any]]) -> "ChangeSubscription":
        """Run `callback` once the stream is closed, e.g. to release a connection lease."""
        self._close_callbacks.append(callback)
        return self

    async def open(self) -> "ChangeSubscription":
        if self._closed:
            raise RuntimeError("Change subscription already closed")
        if self._stream is None:
            logger.debug("Opening change stream on %s", self.name)
            stack = AsyncExitStack()
            stream = self._source.watch(self._pipeline, full_document=self._full_document)
            # Entering the stream opens the server-side cursor now rather than on first read
            self._stream = await stack.enter_async_context(stream)
            self._exit_stack = stack
            logger.debug("Change stream opened on %s", self.name)
        return self

    def start(self) -> "ChangeSubscription":
        """Dispatch events to the registered observers in a background task."""
        if not self.is_open:
            raise RuntimeError("Change subscription is not open")
        if self._task is None:
            self._task = asyncio.create_task(self._dispatch_loop())
        return self

    async def events(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield change events until the subscription is closed."""
        if not self.is_open:
            raise RuntimeError("Change subscription is not open")
        if self._task is not None:
            raise RuntimeError("Events are already being dispatched to observers")
        async for change in self._stream:
            yield change

    async def _dispatch_loop(self) -> None:
        try:
            async for change in self._stream:
                logger.debug("Change detected on %s: %s", self.name, change.get("operationType"))
                for callback in self._change_observers:
                    await self._invoke(callback, change)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._closed:
                return
            logger.error("Change stream error on %s: %s", self.name, e)
            for callback in self._error_observers:
                await self._invoke(callback, e)

    async def _invoke(self, callback: Callable[[Any], Any], argument: Any) -> None:
        try:
            result = callback(argument)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Change observer %r failed on %s: %s", callback, self.name, e)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("Closing change stream on %s", self.name)
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        try:
            if self._exit_stack is not None:
                await self._exit_stack.aclose()
                self._exit_stack = None
        finally:
            self._stream = None
            callbacks, self._close_callbacks = self._close_callbacks, []
            for callback in reversed(callbacks):
                await callback()
        logger.debug("Change stream closed on %s", self.name)

    async def __aenter__(self) -> "ChangeSubscription":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


async def open_subscription(
    source: Any,
    on_change: Optional[ChangeCallback] = None,
    pipeline: Optional[List[Dict[str, Any]]] = None,
) -> ChangeSubscription:
    """
    Open a subscription, attach `on_change`, and start dispatching.

    Without `on_change` events are only logged. The returned subscription is owned by the
    caller, who must close it.
    """
    subscription = ChangeSubscription(source, pipeline)
    if on_change is not None:
        subscription.on_change(on_change)
    await subscription.open()
    return subscription.start()
