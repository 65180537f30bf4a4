"""Issue event type definitions for real-time subscribers and staff alerts."""

from enum import Enum
from typing import NamedTuple, Optional


class IssueEventConfig(NamedTuple):
    """Configuration for an issue event type."""

    event_name: str  # wire name seen by subscribers (e.g. "issueMerged")
    topic_suffix: Optional[str]  # ntfy topic for staff alerts; None = not pushed
    default_priority: str  # min, low, default, high, max
    tags: str  # comma-separated emoji shortcodes


class IssueEventType(Enum):
    """
    Issue event types with their wire name and staff alert routing.

    Every event goes to in-process subscribers. Events with a topic suffix
    are also pushed to the matching ntfy topic so government staff can
    subscribe per concern.
    """

    NEW_ISSUE = IssueEventConfig("newIssue", "issues", "default", "clipboard,new")
    ISSUE_MERGED = IssueEventConfig("issueMerged", "merges", "low", "link")
    CONSENT_REQUEST = IssueEventConfig(
        "issueConsentRequest", None, "default", "raising_hand"
    )
    CONSENT_UPDATED = IssueEventConfig(
        "issueConsentUpdated", None, "low", "white_check_mark"
    )
    PRIORITY_UPDATED = IssueEventConfig(
        "issuePriorityUpdated", "priority", "high", "rotating_light"
    )
    STATUS_UPDATED = IssueEventConfig(
        "issueStatusUpdated", None, "default", "arrows_counterclockwise"
    )
    ISSUE_ASSIGNED = IssueEventConfig(
        "issueAssigned", "assignments", "default", "office"
    )
    CHAT_MESSAGE = IssueEventConfig("issueChatMessage", None, "min", "speech_balloon")

    @property
    def event_name(self) -> str:
        """Get the subscriber-facing event name."""
        return self.value.event_name

    @property
    def topic_suffix(self) -> Optional[str]:
        """Get the ntfy topic suffix, if this event is pushed to staff."""
        return self.value.topic_suffix

    @property
    def default_priority(self) -> str:
        """Get the default ntfy priority for this event type."""
        return self.value.default_priority

    @property
    def tags(self) -> str:
        """Get the tags for this event type."""
        return self.value.tags
