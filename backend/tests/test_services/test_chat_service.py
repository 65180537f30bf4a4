"""Tests for ChatService."""

import pytest

from models.exceptions import ChatPermissionDeniedException, ValidationException
from models.notification_types import IssueEventType
from services.chat_service import MAX_MESSAGE_LENGTH, ChatService
from services.consent_service import ConsentService
from services.merge_service import MergeService


@pytest.fixture
def merged_pair(db_session, citizen, other_citizen, make_issue):
    canonical = make_issue(citizen, created_minutes_ago=10)
    duplicate = make_issue(other_citizen)
    MergeService.merge(db_session, duplicate.id, canonical.id)
    return canonical, duplicate


class TestPostMessage:
    """Tests for post_message."""

    def test_original_reporter_posts(
        self, db_session, citizen, merged_pair, events
    ) -> None:
        canonical, _ = merged_pair
        events.clear()

        message = ChatService.post_message(
            db_session, canonical.id, citizen, "  Still leaking this morning  "
        )

        assert message.issue_id == canonical.id
        assert message.author_id == citizen.id
        assert message.message == "Still leaking this morning"
        assert [e.event_type for e in events] == [IssueEventType.CHAT_MESSAGE]
        assert events[0].payload["author_name"] == "Asha"

    def test_posting_via_duplicate_lands_on_canonical(
        self, db_session, other_citizen, merged_pair
    ) -> None:
        canonical, duplicate = merged_pair
        ConsentService.record_consent(db_session, canonical.id, other_citizen.id, True)

        message = ChatService.post_message(
            db_session, duplicate.id, other_citizen, "Same here"
        )
        assert message.issue_id == canonical.id

    def test_undecided_reporter_denied(
        self, db_session, other_citizen, merged_pair, events
    ) -> None:
        canonical, _ = merged_pair
        events.clear()
        with pytest.raises(ChatPermissionDeniedException):
            ChatService.post_message(db_session, canonical.id, other_citizen, "Hello")
        assert events == []

    def test_government_posts(self, db_session, government_user, merged_pair) -> None:
        canonical, _ = merged_pair
        message = ChatService.post_message(
            db_session, canonical.id, government_user, "Crew dispatched"
        )
        assert message.author_id == government_user.id

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_message_rejected(
        self, db_session, citizen, merged_pair, text
    ) -> None:
        canonical, _ = merged_pair
        with pytest.raises(ValidationException):
            ChatService.post_message(db_session, canonical.id, citizen, text)

    def test_too_long_message_rejected(
        self, db_session, citizen, merged_pair
    ) -> None:
        canonical, _ = merged_pair
        with pytest.raises(ValidationException):
            ChatService.post_message(
                db_session, canonical.id, citizen, "x" * (MAX_MESSAGE_LENGTH + 1)
            )


class TestListMessages:
    """Tests for list_messages paging."""

    def test_pages_newest_first_each_oldest_to_newest(
        self, db_session, citizen, merged_pair
    ) -> None:
        canonical, _ = merged_pair
        for i in range(5):
            ChatService.post_message(db_session, canonical.id, citizen, f"msg {i}")

        first = ChatService.list_messages(db_session, canonical.id, skip=0, limit=2)
        assert [m.message for m in first.messages] == ["msg 3", "msg 4"]
        assert first.total == 5

        second = ChatService.list_messages(db_session, canonical.id, skip=2, limit=2)
        assert [m.message for m in second.messages] == ["msg 1", "msg 2"]

    def test_duplicate_id_reads_canonical_thread(
        self, db_session, citizen, merged_pair
    ) -> None:
        canonical, duplicate = merged_pair
        ChatService.post_message(db_session, canonical.id, citizen, "hello")
        page = ChatService.list_messages(db_session, duplicate.id)
        assert page.issue_id == canonical.id
        assert [m.message for m in page.messages] == ["hello"]
