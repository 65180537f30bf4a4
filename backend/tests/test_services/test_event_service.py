"""Tests for EventService."""

from unittest.mock import patch

from core.correlation import set_correlation_id
from models.notification_types import IssueEventType
from services.event_service import EventService


class TestEmit:
    """Tests for EventService.emit."""

    def test_delivers_to_subscribers(self, events) -> None:
        set_correlation_id("evt12345")
        event = EventService.emit(
            IssueEventType.CONSENT_REQUEST, {"issue_id": 4}, user_id=9
        )

        assert events == [event]
        assert event.name == "issueConsentRequest"
        assert event.user_id == 9
        assert event.is_broadcast is False
        assert event.correlation_id == "evt12345"

    def test_broadcast_without_user(self, events) -> None:
        event = EventService.emit(IssueEventType.ISSUE_MERGED, {"canonical_id": 1})
        assert event.is_broadcast is True

    def test_failing_subscriber_does_not_block_others(self, events) -> None:
        def broken(event) -> None:
            raise RuntimeError("socket closed")

        EventService.subscribe(broken)
        EventService.emit(IssueEventType.CHAT_MESSAGE, {"issue_id": 1})
        assert len(events) == 1

    def test_staff_alert_failure_is_swallowed(self, events) -> None:
        with patch(
            "services.event_service.NotificationService.forward_event",
            side_effect=RuntimeError("ntfy down"),
        ):
            EventService.emit(IssueEventType.NEW_ISSUE, {"issue_id": 1})
        assert len(events) == 1

    def test_forwards_to_staff_alerts(self) -> None:
        with patch(
            "services.event_service.NotificationService.forward_event"
        ) as mock_forward:
            EventService.emit(IssueEventType.ISSUE_ASSIGNED, {"issue_id": 2})
        mock_forward.assert_called_once_with(
            IssueEventType.ISSUE_ASSIGNED, {"issue_id": 2}
        )


class TestSubscriptions:
    """Tests for subscribe and unsubscribe."""

    def test_subscribe_is_idempotent(self) -> None:
        received = []
        EventService.subscribe(received.append)
        EventService.subscribe(received.append)
        EventService.emit(IssueEventType.STATUS_UPDATED, {"issue_id": 1})
        assert len(received) == 1

    def test_unsubscribe(self) -> None:
        received = []
        EventService.subscribe(received.append)
        EventService.unsubscribe(received.append)
        EventService.emit(IssueEventType.STATUS_UPDATED, {"issue_id": 1})
        assert received == []
