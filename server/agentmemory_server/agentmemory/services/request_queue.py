"""Serialised access to one rate-limited external endpoint.

Every integration talks to its upstream through a ``RequestQueue``:

- one request in flight at a time, started in FIFO order;
- a request that raises ``TransientExternalError`` goes back to the head of
  the queue and is retried after ``base * 2**consecutive_failures`` seconds
  (capped), until its own attempt budget runs out;
- a random jitter delay separates consecutive requests, including ones
  added only after the previous one finished;
- every caller is resolved exactly once, with a result or an exception.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple, TypeVar

from agentmemory import config as cfg
from agentmemory.errors import QueueClosed, TransientExternalError
from agentmemory.observability.tracing import record_metric

logger = logging.getLogger(__name__)

T = TypeVar("T")

Request = Callable[[], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class QueuedRequest:
    request: Request
    future: "asyncio.Future[Any]"
    max_attempts: int
    attempts: int = 0
    last_error: Optional[BaseException] = field(default=None, repr=False)


def _resolve(future: "asyncio.Future[Any]", result: Any = None, error: BaseException | None = None) -> None:
    # The caller may have been cancelled while waiting.
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


class RequestQueue:
    """FIFO request queue with exponential backoff and jitter."""

    def __init__(
        self,
        name: str = "default",
        *,
        backoff_base: float | None = None,
        backoff_cap: float | None = None,
        jitter: Tuple[float, float] | None = None,
        max_attempts: int | None = None,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.name = name
        self.backoff_base = cfg.REQUEST_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
        self.backoff_cap = cfg.REQUEST_BACKOFF_CAP_SECONDS if backoff_cap is None else backoff_cap
        self.jitter = jitter or (cfg.REQUEST_JITTER_MIN_SECONDS, cfg.REQUEST_JITTER_MAX_SECONDS)
        self.max_attempts = max_attempts or cfg.REQUEST_MAX_ATTEMPTS
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._queue: Deque[QueuedRequest] = deque()
        self._worker: Optional[asyncio.Task] = None
        self._consecutive_failures = 0
        self._closed = False
        self.in_flight = 0
        self._next_start: Optional[float] = None

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def closed(self) -> bool:
        return self._closed

    async def add(self, request: Callable[[], Awaitable[T]], *, max_attempts: int | None = None) -> T:
        """Enqueue *request* and wait for its result."""
        if self._closed:
            raise QueueClosed(f"request queue {self.name} is closed")
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._queue.append(
            QueuedRequest(request=request, future=future, max_attempts=max_attempts or self.max_attempts)
        )
        record_metric("queue_request_count")
        self._ensure_worker()
        return await future

    def backoff_delay(self, consecutive_failures: int) -> float:
        return min(self.backoff_base * (2 ** consecutive_failures), self.backoff_cap)

    def _jitter_delay(self) -> float:
        low, high = self.jitter
        return self._rng.uniform(low, high)

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._process_queue())

    async def _process_queue(self) -> None:
        while self._queue:
            await self._wait_for_spacing()
            if self._closed:
                self._reject_pending()
                return

            item = self._queue.popleft()
            if item.future.done():
                continue

            item.attempts += 1
            self.in_flight += 1
            try:
                result = await item.request()
            except TransientExternalError as exc:
                item.last_error = exc
                if item.attempts >= item.max_attempts:
                    logger.error(
                        "queue=%s request gave up after %d attempts: %s",
                        self.name, item.attempts, exc,
                    )
                    record_metric("queue_failure_count")
                    self._consecutive_failures = 0
                    _resolve(item.future, error=exc)
                else:
                    self._consecutive_failures += 1
                    delay = self.backoff_delay(self._consecutive_failures)
                    logger.warning(
                        "queue=%s attempt %d failed; retrying in %.1fs: %s",
                        self.name, item.attempts, delay, exc,
                    )
                    record_metric("queue_retry_count")
                    self._queue.appendleft(item)
                    await self._sleep(delay)
                    continue
            except Exception as exc:
                logger.warning("queue=%s request failed without retry: %s", self.name, exc)
                record_metric("queue_failure_count")
                self._consecutive_failures = 0
                _resolve(item.future, error=exc)
            except BaseException as exc:
                # The worker is going down; its caller still gets an answer.
                if isinstance(exc, asyncio.CancelledError):
                    item.future.cancel()
                else:
                    _resolve(item.future, error=exc)
                raise
            else:
                self._consecutive_failures = 0
                _resolve(item.future, result=result)
            finally:
                self.in_flight -= 1

            self._next_start = asyncio.get_running_loop().time() + self._jitter_delay()

    async def _wait_for_spacing(self) -> None:
        """Hold the next task until the jitter drawn after the previous one has elapsed.

        The deadline survives the worker exiting on an empty queue, so callers
        that await one request before adding the next are spaced out too.
        """
        if self._next_start is None:
            return
        delay = self._next_start - asyncio.get_running_loop().time()
        self._next_start = None
        if delay > 0:
            await self._sleep(delay)

    def _reject_pending(self) -> None:
        while self._queue:
            item = self._queue.popleft()
            _resolve(
                item.future,
                error=item.last_error or QueueClosed(f"request queue {self.name} was closed"),
            )

    async def close(self) -> None:
        """Reject pending requests; a request already running is allowed to finish."""
        self._closed = True
        if self._worker is None or self._worker.done():
            self._reject_pending()

    def open(self) -> None:
        self._closed = False

    async def join(self) -> None:
        """Wait until the worker has drained the queue."""
        if self._worker is not None:
            await asyncio.shield(self._worker)


async def call_with_timeout(awaitable: Awaitable[T], timeout: float | None, default: T) -> T:
    """Race *awaitable* against *timeout*; a timeout resolves to *default*."""
    timeout = cfg.EXTERNAL_CALL_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("external call timed out after %.1fs; using default result", timeout)
        return default
