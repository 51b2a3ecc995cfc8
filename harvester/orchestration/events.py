"""
Harvester - Progress Events

Typed payloads for the fixed event vocabulary and the bus that delivers them.
Delivery is in generation order to every subscriber; a subscriber that raises
is logged and skipped so it can neither starve other subscribers nor abort
the job.
"""

import inspect
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, ClassVar, Union

from harvester.shared.constants import EVENT_HISTORY_SIZE, PAUSE_REASON_USER, EventName
from harvester.shared.logging import LoggerMixin

ALL_EVENTS = "*"


@dataclass(frozen=True)
class ProgressEvent:
    """Base payload; every event carries its emission time."""

    name: ClassVar[EventName]
    timestamp: float = field(default_factory=time.time, kw_only=True)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["event"] = str(self.name)
        return data


@dataclass(frozen=True)
class ExtractionStarted(ProgressEvent):
    name: ClassVar[EventName] = EventName.EXTRACTION_STARTED

    job_id: str
    estimated_total: int


@dataclass(frozen=True)
class ExtractionProgress(ProgressEvent):
    name: ClassVar[EventName] = EventName.EXTRACTION_PROGRESS

    current: int
    total: int
    percentage: int
    current_item: str | None = None


@dataclass(frozen=True)
class ExtractionPaused(ProgressEvent):
    name: ClassVar[EventName] = EventName.EXTRACTION_PAUSED

    current: int
    total: int
    percentage: int
    reason: str = PAUSE_REASON_USER


@dataclass(frozen=True)
class ExtractionResumed(ProgressEvent):
    name: ClassVar[EventName] = EventName.EXTRACTION_RESUMED

    current: int
    total: int
    percentage: int


@dataclass(frozen=True)
class ExtractionCompleted(ProgressEvent):
    name: ClassVar[EventName] = EventName.EXTRACTION_COMPLETED

    job_id: str
    items: tuple[str, ...]  # ids of successfully extracted items
    total: int
    succeeded: int
    failed: int
    reason: str
    completion_time_ms: int


@dataclass(frozen=True)
class ExtractionError(ProgressEvent):
    name: ClassVar[EventName] = EventName.EXTRACTION_ERROR

    code: str
    message: str
    context: str
    recoverable: bool
    partial: int | None = None  # successful items so far


@dataclass(frozen=True)
class BatchStarted(ProgressEvent):
    name: ClassVar[EventName] = EventName.BATCH_STARTED

    batch_index: int
    total_batches: int
    batch_size: int


@dataclass(frozen=True)
class BatchCompleted(ProgressEvent):
    name: ClassVar[EventName] = EventName.BATCH_COMPLETED

    batch_index: int
    total_batches: int
    processed: int
    succeeded: int
    failed: int


@dataclass(frozen=True)
class AttachmentDownloaded(ProgressEvent):
    name: ClassVar[EventName] = EventName.ATTACHMENT_DOWNLOADED

    item_id: str
    path: str | None
    size_bytes: int


Handler = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class ProgressEventBus(LoggerMixin):
    """
    Publish/subscribe channel for progress events.

    Usage:
        bus = ProgressEventBus()
        unsubscribe = bus.subscribe("extraction-progress", print)
        await bus.publish(ExtractionProgress(current=1, total=7, percentage=14))
        unsubscribe()

    Handlers may be plain callables or coroutine functions. "*" subscribes to
    every event. The bus also keeps a bounded, sequence-numbered history for
    pollers that cannot hold a subscription open.
    """

    def __init__(self, history_size: int = EVENT_HISTORY_SIZE) -> None:
        self._subscriptions: list[tuple[str, Handler]] = []
        self._history: deque[tuple[int, ProgressEvent]] = deque(maxlen=history_size)
        self._sequence = 0
        self._pending: deque[ProgressEvent] = deque()
        self._dispatching = False

    def subscribe(self, event_name: EventName | str, handler: Handler) -> Callable[[], None]:
        """
        Register a handler for an event name.

        Returns:
            A callable that removes the subscription (idempotent)
        """
        key = str(event_name)
        if key != ALL_EVENTS:
            EventName(key)  # Reject names outside the vocabulary
        subscription = (key, handler)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            for index, existing in enumerate(self._subscriptions):
                if existing is subscription:
                    del self._subscriptions[index]
                    return

        return unsubscribe

    async def publish(self, event: ProgressEvent) -> None:
        """
        Deliver an event to matching subscribers in subscription order.

        An event published while another delivery is in flight, from a
        concurrent task or from inside a handler, is queued and delivered by
        the task already dispatching. Every subscriber therefore sees events
        in generation order.
        """
        self._sequence += 1
        self._history.append((self._sequence, event))
        self._pending.append(event)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                await self._deliver(self._pending.popleft())
        finally:
            self._dispatching = False

    async def _deliver(self, event: ProgressEvent) -> None:
        name = str(event.name)
        handlers = [h for key, h in self._subscriptions if key == name or key == ALL_EVENTS]

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self.logger.exception(
                    "Event subscriber failed",
                    event_name=str(event.name),
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )

    def recent(self, since: int = 0) -> list[tuple[int, ProgressEvent]]:
        """Events with a sequence number greater than since, oldest first."""
        return [(seq, event) for seq, event in self._history if seq > since]

    @property
    def last_sequence(self) -> int:
        return self._sequence

    def subscriber_count(self, event_name: EventName | str | None = None) -> int:
        if event_name is None:
            return len(self._subscriptions)
        return sum(1 for key, _ in self._subscriptions if key == str(event_name))
