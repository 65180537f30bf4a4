"""Tests for ConsentService."""

import pytest

import repositories.db_models as db_models
from models.exceptions import NotAReporterException
from models.notification_types import IssueEventType
from services.consent_service import ConsentService
from services.merge_service import MergeService


@pytest.fixture
def merged_pair(db_session, citizen, other_citizen, make_issue):
    """A canonical issue with a second reporter awaiting a consent decision."""
    canonical = make_issue(citizen, created_minutes_ago=10)
    duplicate = make_issue(other_citizen)
    MergeService.merge(db_session, duplicate.id, canonical.id)
    return canonical, duplicate


class TestRecordConsent:
    """Tests for record_consent."""

    def test_accept(self, db_session, other_citizen, merged_pair, events) -> None:
        canonical, _ = merged_pair
        events.clear()

        result = ConsentService.record_consent(
            db_session, canonical.id, other_citizen.id, True
        )

        assert result.consent is True
        assert result.previous is None
        db_session.refresh(canonical)
        assert canonical.find_reporter(other_citizen.id).consent is True
        assert [e.event_type for e in events] == [IssueEventType.CONSENT_UPDATED]
        assert events[0].user_id == other_citizen.id
        assert events[0].payload == {"issue_id": canonical.id, "consent": True}

    def test_decline_then_change_mind(
        self, db_session, other_citizen, merged_pair
    ) -> None:
        canonical, _ = merged_pair
        ConsentService.record_consent(db_session, canonical.id, other_citizen.id, False)
        result = ConsentService.record_consent(
            db_session, canonical.id, other_citizen.id, True
        )
        assert result.previous is False
        assert result.consent is True

    def test_via_duplicate_id(self, db_session, other_citizen, merged_pair) -> None:
        canonical, duplicate = merged_pair
        result = ConsentService.record_consent(
            db_session, duplicate.id, other_citizen.id, True
        )
        assert result.issue_id == canonical.id

    def test_non_reporter_rejected(
        self, db_session, third_citizen, merged_pair, events
    ) -> None:
        canonical, _ = merged_pair
        events.clear()
        with pytest.raises(NotAReporterException):
            ConsentService.record_consent(
                db_session, canonical.id, third_citizen.id, True
            )
        db_session.refresh(canonical)
        assert canonical.find_reporter(third_citizen.id) is None
        assert events == []


class TestCanParticipateInChat:
    """Tests for can_participate_in_chat."""

    def test_original_reporter_allowed(self, citizen, merged_pair) -> None:
        canonical, _ = merged_pair
        assert ConsentService.can_participate_in_chat(
            canonical, citizen.id, db_models.UserRole.CITIZEN
        )

    def test_government_allowed(self, government_user, merged_pair) -> None:
        canonical, _ = merged_pair
        assert ConsentService.can_participate_in_chat(
            canonical, government_user.id, db_models.UserRole.GOVERNMENT
        )

    def test_undecided_reporter_denied(self, other_citizen, merged_pair) -> None:
        canonical, _ = merged_pair
        assert not ConsentService.can_participate_in_chat(
            canonical, other_citizen.id, db_models.UserRole.CITIZEN
        )

    def test_declined_reporter_denied(
        self, db_session, other_citizen, merged_pair
    ) -> None:
        canonical, _ = merged_pair
        ConsentService.record_consent(db_session, canonical.id, other_citizen.id, False)
        db_session.refresh(canonical)
        assert not ConsentService.can_participate_in_chat(
            canonical, other_citizen.id, db_models.UserRole.CITIZEN
        )

    def test_accepted_reporter_allowed(
        self, db_session, other_citizen, merged_pair
    ) -> None:
        canonical, _ = merged_pair
        ConsentService.record_consent(db_session, canonical.id, other_citizen.id, True)
        db_session.refresh(canonical)
        assert ConsentService.can_participate_in_chat(
            canonical, other_citizen.id, db_models.UserRole.CITIZEN
        )

    def test_stranger_denied(self, third_citizen, merged_pair) -> None:
        canonical, _ = merged_pair
        assert not ConsentService.can_participate_in_chat(
            canonical, third_citizen.id, db_models.UserRole.CITIZEN
        )
