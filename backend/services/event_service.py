"""
Issue event emission.

Events are fire-and-forget: a failing subscriber is logged and skipped, and
nothing here can roll back the mutation that produced the event. Events go
to in-process subscribers (a realtime gateway, tests) and, for the types
routed to staff, to ntfy.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from core.correlation import get_correlation_id
from models.notification_types import IssueEventType

from .notification_service import NotificationService


@dataclass(frozen=True)
class IssueEvent:
    """A single emitted event. user_id None means broadcast."""

    event_type: IssueEventType
    payload: Dict[str, Any]
    user_id: Optional[int] = None
    correlation_id: str = ""
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        return self.event_type.event_name

    @property
    def is_broadcast(self) -> bool:
        return self.user_id is None


EventSubscriber = Callable[[IssueEvent], None]


class EventService:
    """Registry of event subscribers plus the emit entry point."""

    _subscribers: List[EventSubscriber] = []

    @classmethod
    def subscribe(cls, subscriber: EventSubscriber) -> None:
        if subscriber not in cls._subscribers:
            cls._subscribers.append(subscriber)

    @classmethod
    def unsubscribe(cls, subscriber: EventSubscriber) -> None:
        if subscriber in cls._subscribers:
            cls._subscribers.remove(subscriber)

    @classmethod
    def clear_subscribers(cls) -> None:
        cls._subscribers = []

    @classmethod
    def emit(
        cls,
        event_type: IssueEventType,
        payload: Dict[str, Any],
        user_id: Optional[int] = None,
    ) -> IssueEvent:
        """
        Emit an event to all subscribers and forward staff alerts.

        Args:
            event_type: Kind of event
            payload: JSON-serializable event body
            user_id: Target user, or None to broadcast

        Returns:
            The emitted event
        """
        event = IssueEvent(
            event_type=event_type,
            payload=payload,
            user_id=user_id,
            correlation_id=get_correlation_id(),
        )
        target = "broadcast" if event.is_broadcast else f"user {user_id}"
        logger.info(f"Event {event.name} -> {target}")

        try:
            NotificationService.forward_event(event_type, payload)
        except Exception as e:
            logger.warning(f"Staff alert for {event.name} failed: {e}")

        for subscriber in list(cls._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(
                    f"Event subscriber {getattr(subscriber, '__name__', subscriber)} "
                    f"failed on {event.name}: {e}"
                )
        return event
