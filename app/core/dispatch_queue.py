from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Optional

from app.core.errors import QueueClosedError, QueueFullError
from app.core.logging import get_logger, get_request_id, log_context, set_log_context

Operation = Callable[[], Awaitable[Any]]

log = get_logger("translate.queue")


@dataclass
class WorkItem:
    operation: Operation
    future: asyncio.Future
    request_id: str = "-"
    enqueued_at: float = 0.0


@dataclass
class QueueStatus:
    queue_length: int
    recent_requests: int
    max_per_minute: int
    processing: bool


class DispatchQueue:
    """FIFO queue that serializes calls to a rate-limited upstream.

    A single dispatch loop (an asyncio task started lazily by ``enqueue``)
    pops items in submission order. Before each dispatch it prunes the log
    of recent dispatch starts; when ``max_per_window`` starts already fall
    inside the trailing ``window_s`` it sleeps until the oldest one leaves
    the window plus ``safety_margin_s``. After every dispatch it pauses for
    ``dispatch_delay_s``.

    Items are never dropped, reordered or retried: each future receives
    exactly one outcome, the operation's result or its exception.
    """

    def __init__(
        self,
        *,
        max_per_window: int = 4,
        window_s: float = 60.0,
        safety_margin_s: float = 1.0,
        dispatch_delay_s: float = 2.0,
        max_pending: int = 0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_per_window <= 0:
            raise ValueError("max_per_window must be > 0")
        if window_s <= 0:
            raise ValueError("window_s must be > 0")
        self.max_per_window = int(max_per_window)
        self.window_s = float(window_s)
        self.safety_margin_s = max(0.0, float(safety_margin_s))
        self.dispatch_delay_s = max(0.0, float(dispatch_delay_s))
        self.max_pending = max(0, int(max_pending))

        self._clock = clock
        self._sleep = sleep
        self._pending: Deque[WorkItem] = deque()
        self._timestamps: Deque[float] = deque()
        self._dispatching = False
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    def enqueue(self, operation: Operation) -> asyncio.Future:
        """Append ``operation`` and return a future for its outcome.

        Must be called from a running event loop.
        """
        if self._closed:
            raise QueueClosedError(detail="Dispatch queue is closed")
        if self.max_pending and len(self._pending) >= self.max_pending:
            raise QueueFullError(detail=f"Dispatch queue is full (max_pending={self.max_pending})")

        loop = asyncio.get_running_loop()
        item = WorkItem(
            operation=operation,
            future=loop.create_future(),
            request_id=get_request_id(),
            enqueued_at=self._clock(),
        )
        self._pending.append(item)
        log.debug("enqueued | queue_length=%s", len(self._pending))
        self._ensure_dispatching(loop)
        return item.future

    async def submit(self, operation: Operation) -> Any:
        return await self.enqueue(operation)

    def status(self) -> QueueStatus:
        cutoff = self._clock() - self.window_s
        recent = sum(1 for ts in self._timestamps if ts > cutoff)
        return QueueStatus(
            queue_length=len(self._pending),
            recent_requests=recent,
            max_per_minute=self.max_per_window,
            processing=self._dispatching,
        )

    async def join(self) -> None:
        """Wait until the dispatch loop has drained the queue and gone idle."""
        while self._task is not None:
            await asyncio.shield(self._task)

    async def close(self) -> None:
        """Stop dispatching and fail every item that has not run yet."""
        self._closed = True
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        dropped = 0
        while self._pending:
            item = self._pending.popleft()
            if not item.future.done():
                item.future.set_exception(QueueClosedError(detail="Dispatch queue closed before dispatch"))
                dropped += 1
        if dropped:
            log.warning("queue closed with %s undispatched item(s)", dropped)

    def _ensure_dispatching(self, loop: asyncio.AbstractEventLoop) -> None:
        # Check-then-set with no await in between: only one loop per queue.
        if self._dispatching:
            return
        self._dispatching = True
        self._task = loop.create_task(self._run())

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_s
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def _admission_wait(self, now: float) -> float:
        self._prune(now)
        if len(self._timestamps) < self.max_per_window:
            return 0.0
        oldest = self._timestamps[0]
        return self.window_s - (now - oldest) + self.safety_margin_s

    async def _run(self) -> None:
        set_log_context(request_id="dispatch")
        try:
            while self._pending:
                wait_s = self._admission_wait(self._clock())
                if wait_s > 0:
                    log.info(
                        "rate window full (%s/%s), waiting %.2fs | queue_length=%s",
                        len(self._timestamps),
                        self.max_per_window,
                        wait_s,
                        len(self._pending),
                    )
                    await self._sleep(wait_s)
                    continue

                item = self._pending.popleft()
                self._timestamps.append(self._clock())
                await self._dispatch(item)

                if self.dispatch_delay_s > 0:
                    await self._sleep(self.dispatch_delay_s)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("dispatch loop stopped unexpectedly; it restarts on the next submit")
        finally:
            self._dispatching = False
            self._task = None

    async def _dispatch(self, item: WorkItem) -> None:
        with log_context(request_id=item.request_id):
            waited_ms = int((self._clock() - item.enqueued_at) * 1000)
            log.debug(
                "dispatching | waited_ms=%s remaining=%s recent=%s",
                waited_ms,
                len(self._pending),
                len(self._timestamps),
            )
            try:
                result = await item.operation()
            except asyncio.CancelledError:
                if self._closed:
                    if not item.future.done():
                        item.future.set_exception(QueueClosedError(detail="Dispatch queue closed during dispatch"))
                    raise
                # Raised by the operation itself, not by close(): fail this item only.
                log.warning("operation was cancelled")
                item.future.cancel()
            except Exception as e:
                log.warning("operation failed: %s", e)
                if not item.future.done():
                    item.future.set_exception(e)
            else:
                if not item.future.done():
                    item.future.set_result(result)
