"""Tests for IssueService intake, views, votes and assignment."""

from unittest.mock import patch

import pytest

import models.schemas as schemas
import repositories.db_models as db_models
from models.exceptions import (
    CanonicalNotFoundException,
    InvalidLocationException,
    IssueNotFoundException,
)
from models.notification_types import IssueEventType
from services.issue_service import (
    REPORTED_COMMENT,
    REPORTED_MESSAGE,
    IssueFactory,
    IssueService,
    estimate_resolution_hours,
)
from services.merge_service import MergeService

from conftest import BASE_LAT, BASE_LON

Category = db_models.IssueCategory
Priority = db_models.IssuePriority


def _create_data(coordinates, **overrides) -> schemas.IssueCreate:
    values = {
        "title": "Streetlight out",
        "description": "Dark corner after 7pm",
        "category": Category.STREET_LIGHTING,
        "location": schemas.LocationIn(coordinates=coordinates, address="Block C"),
    }
    values.update(overrides)
    return schemas.IssueCreate(**values)


class TestEstimateResolutionHours:
    """Tests for estimate_resolution_hours."""

    @pytest.mark.parametrize(
        "category,priority,hours",
        [
            (Category.WATER_SUPPLY, Priority.MEDIUM, 48),
            (Category.WATER_SUPPLY, Priority.LOW, 72),
            (Category.WATER_SUPPLY, Priority.URGENT, 12),
            (Category.PUBLIC_SAFETY, Priority.HIGH, 6),
            (Category.ROADS_INFRASTRUCTURE, Priority.LOW, 108),
        ],
    )
    def test_category_times_multiplier(self, category, priority, hours) -> None:
        assert estimate_resolution_hours(category, priority) == hours


class TestIssueFactory:
    """Tests for IssueFactory.new_issue."""

    def test_creation_invariants(self, citizen) -> None:
        issue = IssueFactory.new_issue(
            title="Leak",
            description="Leak",
            category=Category.WATER_SUPPLY,
            longitude=BASE_LON,
            latitude=BASE_LAT,
            address="Sector 7",
            reported_by_id=citizen.id,
        )
        assert issue.votes == 1
        assert issue.status == db_models.IssueStatus.PENDING
        assert [(r.user_id, r.consent) for r in issue.reporters] == [(citizen.id, True)]
        assert [h.comment for h in issue.status_history] == [REPORTED_COMMENT]
        assert [n.message for n in issue.notifications] == [REPORTED_MESSAGE]
        assert issue.estimated_resolution_hours == 72


class TestCreateIssue:
    """Tests for create_issue."""

    def test_new_canonical_issue(self, db_session, citizen, events) -> None:
        data = _create_data(
            [BASE_LON, BASE_LAT],
            images=["https://img.example.com/dark.jpg", "ftp://bad/x.jpg"],
        )

        result = IssueService.create_issue(db_session, data, citizen.id)

        issue = result.issue
        assert result.merged is False
        assert result.canonical is issue
        assert issue.id is not None
        assert issue.images == ["https://img.example.com/dark.jpg"]
        assert issue.thumbnail_image == "https://img.example.com/dark.jpg"
        assert issue.priority == Priority.LOW
        assert issue.priority_reasons == []
        assert issue.reporters[0].user_id == citizen.id
        assert [e.event_type for e in events] == [IssueEventType.NEW_ISSUE]
        assert events[0].payload["issue_id"] == issue.id

    def test_unmerged_issue_in_cluster_gets_bumped(
        self, db_session, citizen, other_citizen, make_issue
    ) -> None:
        make_issue(citizen, category=Category.STREET_LIGHTING, lon=BASE_LON + 0.0008)
        make_issue(citizen, category=Category.STREET_LIGHTING, lon=BASE_LON - 0.0008)
        data = _create_data([BASE_LON, BASE_LAT])

        with patch(
            "services.issue_service.MergeService.merge",
            side_effect=RuntimeError("deadlock"),
        ):
            result = IssueService.create_issue(db_session, data, other_citizen.id)

        assert result.merged is False
        assert result.issue.priority == Priority.MEDIUM
        assert result.issue.priority_reasons == [
            "cluster(3 issues within 100m)",
            "cluster-bump",
        ]

    @pytest.mark.parametrize(
        "coordinates",
        [[200.0, BASE_LAT], [BASE_LON], [BASE_LON, BASE_LAT, 3.0], [BASE_LON, 95.0]],
    )
    def test_invalid_location(self, db_session, citizen, coordinates) -> None:
        with pytest.raises(InvalidLocationException):
            IssueService.create_issue(db_session, _create_data(coordinates), citizen.id)
        assert db_session.query(db_models.Issue).count() == 0


class TestResolveCanonical:
    """Tests for resolve_canonical."""

    def test_canonical_resolves_to_itself(self, db_session, citizen, make_issue) -> None:
        issue = make_issue(citizen)
        requested, canonical = IssueService.resolve_canonical(db_session, issue.id)
        assert requested is canonical

    def test_duplicate_resolves_one_hop(
        self, db_session, citizen, other_citizen, make_issue
    ) -> None:
        canonical = make_issue(citizen, created_minutes_ago=10)
        duplicate = make_issue(other_citizen)
        duplicate.canonical = canonical
        db_session.commit()

        requested, resolved = IssueService.resolve_canonical(db_session, duplicate.id)
        assert requested.id == duplicate.id
        assert resolved.id == canonical.id

    def test_missing_issue(self, db_session) -> None:
        with pytest.raises(IssueNotFoundException):
            IssueService.resolve_canonical(db_session, 4242)

    def test_dangling_pointer(self, db_session, citizen, make_issue) -> None:
        issue = make_issue(citizen)
        issue.merged_into_id = 4242
        db_session.commit()
        with pytest.raises(CanonicalNotFoundException):
            IssueService.resolve_canonical(db_session, issue.id)


class TestGetIssueView:
    """Tests for get_issue_view."""

    def test_duplicate_view_shows_canonical(
        self, db_session, citizen, other_citizen, make_issue
    ) -> None:
        canonical = make_issue(
            citizen, images=["https://img.example.com/a.jpg"], created_minutes_ago=10
        )
        duplicate = make_issue(other_citizen)
        MergeService.merge(db_session, duplicate.id, canonical.id)

        view = IssueService.get_issue_view(db_session, duplicate.id)

        assert view.issue.id == canonical.id
        assert view.is_duplicate is True
        assert view.original_requested_id == duplicate.id
        assert view.reporters_count == 2
        assert view.consenting_reporters_count == 1
        assert view.duplicates_count == 1
        assert view.thumbnail_image == "https://img.example.com/a.jpg"

    def test_reporter_view_marks_own_notifications_read(
        self, db_session, citizen, other_citizen, make_issue
    ) -> None:
        canonical = make_issue(citizen, created_minutes_ago=10)
        duplicate = make_issue(other_citizen)
        MergeService.merge(db_session, duplicate.id, canonical.id)

        view = IssueService.get_issue_view(db_session, canonical.id, viewer_id=citizen.id)

        by_user = {n.user_id: n.read for n in view.issue.notifications}
        assert by_user[citizen.id] is True
        # The consent request belongs to the second reporter
        assert by_user[other_citizen.id] is False

    def test_other_viewer_marks_nothing(
        self, db_session, citizen, other_citizen, make_issue
    ) -> None:
        issue = make_issue(citizen)
        view = IssueService.get_issue_view(db_session, issue.id, viewer_id=other_citizen.id)
        assert all(not n.read for n in view.issue.notifications)


class TestListUserIssues:
    """Tests for list_user_issues."""

    def test_duplicate_listed_as_canonical(
        self, db_session, citizen, other_citizen, make_issue
    ) -> None:
        canonical = make_issue(citizen, created_minutes_ago=10, title="Leak")
        duplicate = make_issue(other_citizen, title="Water everywhere")
        MergeService.merge(db_session, duplicate.id, canonical.id)

        page = IssueService.list_user_issues(db_session, other_citizen.id)

        assert page.total == 1
        entry = page.items[0]
        assert entry.issue.id == canonical.id
        assert entry.issue.title == "Leak"
        assert entry.original_requested_id == duplicate.id
        assert entry.is_duplicate is True

    def test_newest_first_with_paging(self, db_session, citizen, make_issue) -> None:
        oldest = make_issue(citizen, created_minutes_ago=30)
        middle = make_issue(citizen, created_minutes_ago=20)
        newest = make_issue(citizen, created_minutes_ago=10)

        first = IssueService.list_user_issues(db_session, citizen.id, limit=2)
        second = IssueService.list_user_issues(db_session, citizen.id, skip=2, limit=2)

        assert [e.issue.id for e in first.items] == [newest.id, middle.id]
        assert [e.issue.id for e in second.items] == [oldest.id]
        assert first.total == second.total == 3
        assert all(e.is_duplicate is False for e in first.items)

    def test_missing_canonical_lists_report_itself(
        self, db_session, citizen, make_issue
    ) -> None:
        issue = make_issue(citizen)
        issue.merged_into_id = 4242
        db_session.commit()

        page = IssueService.list_user_issues(db_session, citizen.id)

        assert page.items[0].issue.id == issue.id
        assert page.items[0].is_duplicate is False

    def test_other_users_reports_excluded(
        self, db_session, citizen, other_citizen, make_issue
    ) -> None:
        make_issue(citizen)
        assert IssueService.list_user_issues(db_session, other_citizen.id).total == 0


class TestListCanonicalIssues:
    """Tests for list_canonical_issues."""

    def test_counts_after_merge(
        self, db_session, citizen, other_citizen, make_issue
    ) -> None:
        canonical = make_issue(
            citizen, images=["https://img.example.com/a.jpg"], created_minutes_ago=10
        )
        duplicate = make_issue(other_citizen)
        MergeService.merge(db_session, duplicate.id, canonical.id)

        summaries = IssueService.list_canonical_issues(db_session)

        assert [s.issue.id for s in summaries] == [canonical.id]
        summary = summaries[0]
        assert summary.reporters_count == 2
        assert summary.consenting_reporters_count == 1
        assert summary.duplicates_count == 1
        assert summary.thumbnail_image == "https://img.example.com/a.jpg"

    def test_unmerged_issue_has_no_duplicates(
        self, db_session, citizen, make_issue
    ) -> None:
        make_issue(citizen)

        summary = IssueService.list_canonical_issues(db_session)[0]

        assert summary.reporters_count == 1
        assert summary.consenting_reporters_count == 1
        assert summary.duplicates_count == 0
        assert summary.thumbnail_image is None


class TestVoteOnIssue:
    """Tests for vote_on_issue."""

    def test_vote_toggles(self, db_session, citizen, other_citizen, make_issue, events) -> None:
        issue = make_issue(citizen)

        first = IssueService.vote_on_issue(db_session, issue.id, other_citizen.id)
        assert first.has_voted is True
        assert first.votes == 2
        assert first.priority == Priority.MEDIUM
        assert first.priority_changed is True
        assert [e.event_type for e in events] == [IssueEventType.PRIORITY_UPDATED]

        second = IssueService.vote_on_issue(db_session, issue.id, other_citizen.id)
        assert second.has_voted is False
        assert second.votes == 1
        assert second.priority == Priority.LOW

    def test_vote_via_duplicate_counts_on_canonical(
        self, db_session, citizen, other_citizen, third_citizen, make_issue
    ) -> None:
        canonical = make_issue(citizen, created_minutes_ago=10)
        duplicate = make_issue(other_citizen)
        MergeService.merge(db_session, duplicate.id, canonical.id)

        outcome = IssueService.vote_on_issue(db_session, duplicate.id, third_citizen.id)
        assert outcome.issue_id == canonical.id
        assert outcome.votes == 3

    def test_frozen_priority_ignores_votes(
        self, db_session, citizen, other_citizen, make_issue
    ) -> None:
        issue = make_issue(citizen, priority_auto=False)
        outcome = IssueService.vote_on_issue(db_session, issue.id, other_citizen.id)
        assert outcome.votes == 2
        assert outcome.priority == Priority.LOW
        assert outcome.priority_changed is False


class TestAssignIssue:
    """Tests for assign_issue."""

    def test_assign_propagates_status(
        self, db_session, citizen, other_citizen, government_user, make_issue, events
    ) -> None:
        canonical = make_issue(citizen, created_minutes_ago=10)
        duplicate = make_issue(other_citizen)
        duplicate.canonical = canonical
        db_session.commit()

        issue = IssueService.assign_issue(
            db_session, duplicate.id, "Water Works", government_user.id
        )

        assert issue.id == canonical.id
        assert issue.status == db_models.IssueStatus.ASSIGNED
        assert issue.assigned_department == "Water Works"
        assert issue.status_history[-1].comment == (
            "Issue assigned to Water Works department"
        )
        assert issue.notifications[-1].type == db_models.IssueNotificationType.ASSIGNMENT

        db_session.expire_all()
        child = db_session.get(db_models.Issue, duplicate.id)
        assert child.status == db_models.IssueStatus.ASSIGNED
        assert child.status_history[-1].synced_from_id == canonical.id

        assigned = [e for e in events if e.event_type == IssueEventType.ISSUE_ASSIGNED]
        assert len(assigned) == 1
        assert assigned[0].payload["department"] == "Water Works"

    def test_assign_specific_official(
        self, db_session, citizen, government_user, make_issue
    ) -> None:
        issue = make_issue(citizen)
        updated = IssueService.assign_issue(
            db_session, issue.id, "Roads", government_user.id, official_id=government_user.id
        )
        assert updated.assigned_official_id == government_user.id
        assert updated.status_history[-1].comment == (
            "Issue assigned to Roads department and specific official"
        )
