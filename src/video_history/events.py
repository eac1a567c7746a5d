"""In-process publish/subscribe channels: history refresh and reprocess requests."""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

import structlog

from video_history.models.history import ReprocessRequest

logger = structlog.get_logger()

T = TypeVar("T")

Unsubscribe = Callable[[], None]
_NO_PAYLOAD = object()


class _Subscription:
    __slots__ = ("handler", "active")

    def __init__(self, handler: Callable[..., Any]):
        self.handler = handler
        self.active = True


class _Channel(Generic[T]):
    """Synchronous fan-out with re-entrancy protection.

    A publish issued from inside a handler is queued and delivered after the
    current fan-out completes, so every subscriber sees every delivery in
    order. Handlers may be plain callables or coroutine functions; coroutines
    are scheduled on the running loop and not awaited.
    """

    def __init__(self, name: str):
        self.name = name
        self._subscriptions: list[_Subscription] = []
        self._queue: deque[Any] = deque()
        self._delivering = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, handler: Callable[..., Any]) -> Unsubscribe:
        """Register ``handler`` and return an idempotent unsubscribe callable."""
        subscription = _Subscription(handler)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            self._subscriptions.remove(subscription)

        return unsubscribe

    def _dispatch(self, payload: Any) -> None:
        self._queue.append(payload)
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._queue:
                item = self._queue.popleft()
                for subscription in list(self._subscriptions):
                    if subscription.active:
                        self._deliver(subscription.handler, item)
        finally:
            self._delivering = False

    def _deliver(self, handler: Callable[..., Any], item: Any) -> None:
        try:
            result = handler() if item is _NO_PAYLOAD else handler(item)
            if inspect.isawaitable(result):
                self._spawn(result)
        except Exception:
            logger.exception("events.handler_failed", channel=self.name)

    def _spawn(self, awaitable: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("events.handler_dropped", channel=self.name, reason="no running event loop")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = loop.create_task(self._guard(awaitable))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, awaitable: Awaitable[Any]) -> None:
        try:
            await awaitable
        except Exception:
            logger.exception("events.async_handler_failed", channel=self.name)


class RefreshBus(_Channel[None]):
    """Process-wide "history changed" signal. Carries no payload."""

    def __init__(self, name: str = "history-refresh"):
        super().__init__(name)

    def publish(self) -> None:
        # Signals queued during a fan-out collapse into one
        if self._delivering and self._queue:
            return
        logger.debug("refresh_bus.publish", subscribers=self.subscriber_count)
        self._dispatch(_NO_PAYLOAD)


class ReprocessSignal(_Channel[ReprocessRequest]):
    """Fire-and-forget ``reprocess-requested`` events for the ingestion trigger."""

    def __init__(self, name: str = "reprocess-requested"):
        super().__init__(name)

    def emit(self, request: Union[ReprocessRequest, dict]) -> None:
        if not isinstance(request, ReprocessRequest):
            request = ReprocessRequest.model_validate(request)
        logger.info(
            "reprocess_signal.emit",
            source_url=request.source_url,
            language=request.language,
            listeners=self.subscriber_count,
        )
        self._dispatch(request)
