"""
Staff alert service using self-hosted ntfy.

Pushes issue events (new reports, merges, priority escalations, assignments)
to government staff devices. Uses fire-and-forget pattern - failures are
logged but never block or roll back the triage path.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import httpx
from loguru import logger

from models.config import settings
from models.notification_types import IssueEventType

# Sync callers (services run inside FastAPI's threadpool or CLI tasks) hand
# deliveries to this pool instead of waiting on the HTTP round trip.
_delivery_pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="ntfy")


class NotificationService:
    """
    Staff notification service using self-hosted ntfy.

    All methods are fire-and-forget: they log failures but never raise
    exceptions or block the calling code.
    """

    @classmethod
    def _get_topic(cls, event_type: IssueEventType) -> str:
        """Build full topic name from type."""
        prefix = settings.NTFY_TOPIC_PREFIX or "civicpulse-gov"
        return f"{prefix}-{event_type.topic_suffix}"

    @classmethod
    async def _send_async(
        cls,
        event_type: IssueEventType,
        title: str,
        message: str,
        click_url: str | None = None,
        priority_override: str | None = None,
    ) -> bool:
        """
        Internal async send method.

        Args:
            event_type: Determines topic and default priority
            title: Notification title (shown prominently)
            message: Notification body
            click_url: URL to open when notification is tapped
            priority_override: Override default priority (min/low/default/high/max)

        Returns:
            True if sent successfully, False otherwise
        """
        ntfy_url = settings.NTFY_URL
        if not ntfy_url or not settings.NTFY_ENABLED:
            logger.debug("Ntfy not configured or disabled, skipping notification")
            return False

        if event_type.topic_suffix is None:
            logger.debug(f"{event_type.event_name} is not routed to staff alerts")
            return False

        topic = cls._get_topic(event_type)
        priority = priority_override or event_type.default_priority

        headers: dict[str, str] = {
            "Title": title,
            "Priority": priority,
            "Tags": event_type.tags,
        }

        if settings.NTFY_AUTH_TOKEN:
            headers["Authorization"] = f"Bearer {settings.NTFY_AUTH_TOKEN}"

        if click_url:
            headers["Click"] = click_url
            headers["Actions"] = f"view, Open, {click_url}"

        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.post(
                    f"{ntfy_url}/{topic}",
                    headers=headers,
                    content=message,
                )
                response.raise_for_status()
                logger.info(f"Notification sent to {topic}: {title}")
                return True
        except httpx.TimeoutException:
            logger.warning(f"Ntfy timeout sending to {topic}: {title}")
            return False
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"Ntfy HTTP error {e.response.status_code} for {topic}: {title}"
            )
            return False
        except Exception as e:
            logger.warning(f"Ntfy error sending to {topic}: {e}")
            return False

    @classmethod
    def send_fire_and_forget(
        cls,
        event_type: IssueEventType,
        title: str,
        message: str,
        click_url: str | None = None,
        priority_override: str | None = None,
    ) -> None:
        """
        Send notification without blocking (fire-and-forget).

        Inside an event loop a task is scheduled; from sync code the delivery
        runs on a small worker pool.

        Args:
            event_type: Determines topic and default priority
            title: Notification title
            message: Notification body
            click_url: URL to open when tapped
            priority_override: Override default priority
        """
        if not settings.NTFY_URL or not settings.NTFY_ENABLED:
            return

        try:
            loop = asyncio.get_running_loop()
            loop.create_task(
                cls._send_async(
                    event_type, title, message, click_url, priority_override
                )
            )
        except RuntimeError:
            _delivery_pool.submit(
                asyncio.run,
                cls._send_async(
                    event_type, title, message, click_url, priority_override
                ),
            )

    # =========================================================================
    # Convenience Methods
    # =========================================================================

    @classmethod
    def notify_new_issue(
        cls, issue_id: int, title: str, category: str, address: str
    ) -> None:
        """
        Notify staff of a new canonical issue.

        Args:
            issue_id: Database ID of the issue
            title: Issue title
            category: Category display name
            address: Free-text address
        """
        cls.send_fire_and_forget(
            IssueEventType.NEW_ISSUE,
            "New Issue Reported",
            f"{title}\n\nCategory: {category}\nAddress: {address}\nID: {issue_id}",
            f"{settings.APP_URL}/dashboard/issues/{issue_id}",
        )

    @classmethod
    def notify_merge(
        cls, canonical_id: int, duplicate_id: int, reporters_count: int
    ) -> None:
        """
        Notify staff that a report was folded into an existing issue.

        Args:
            canonical_id: Issue that absorbed the report
            duplicate_id: Report that was merged
            reporters_count: Reporters now attached to the canonical issue
        """
        cls.send_fire_and_forget(
            IssueEventType.ISSUE_MERGED,
            "Duplicate Report Merged",
            f"Report {duplicate_id} merged into issue {canonical_id}\n"
            f"Reporters: {reporters_count}",
            f"{settings.APP_URL}/dashboard/issues/{canonical_id}",
        )

    @classmethod
    def notify_priority_change(
        cls,
        issue_id: int,
        old_priority: str,
        new_priority: str,
        reasons: list[str],
    ) -> None:
        """
        Notify staff of an automatic priority change.

        Escalations to urgent go out at max priority.

        Args:
            issue_id: Database ID of the issue
            old_priority: Previous level
            new_priority: New level
            reasons: Reason tags from the priority engine
        """
        cls.send_fire_and_forget(
            IssueEventType.PRIORITY_UPDATED,
            f"Priority {old_priority} -> {new_priority}",
            f"Issue {issue_id}\nReasons: {', '.join(reasons) or 'none'}",
            f"{settings.APP_URL}/dashboard/issues/{issue_id}",
            priority_override="max" if new_priority == "urgent" else None,
        )

    @classmethod
    def notify_assignment(cls, issue_id: int, department: str) -> None:
        """
        Notify staff that an issue was assigned to a department.

        Args:
            issue_id: Database ID of the issue
            department: Department name
        """
        cls.send_fire_and_forget(
            IssueEventType.ISSUE_ASSIGNED,
            "Issue Assigned",
            f"Issue {issue_id} assigned to {department}",
            f"{settings.APP_URL}/dashboard/issues/{issue_id}",
        )

    @classmethod
    def forward_event(cls, event_type: IssueEventType, payload: dict) -> None:
        """
        Route an emitted issue event to the matching staff alert.

        Event types without a staff topic are ignored.

        Args:
            event_type: Kind of event
            payload: Event body as emitted by the services
        """
        if event_type.topic_suffix is None:
            return

        if event_type == IssueEventType.NEW_ISSUE:
            cls.notify_new_issue(
                payload["issue_id"],
                payload.get("title", ""),
                payload.get("category", ""),
                payload.get("address", ""),
            )
        elif event_type == IssueEventType.ISSUE_MERGED:
            cls.notify_merge(
                payload["canonical_id"],
                payload["duplicate_id"],
                len(payload.get("reporters", [])),
            )
        elif event_type == IssueEventType.PRIORITY_UPDATED:
            cls.notify_priority_change(
                payload["issue_id"],
                payload.get("old_priority", ""),
                payload["priority"],
                payload.get("reasons", []),
            )
        elif event_type == IssueEventType.ISSUE_ASSIGNED:
            cls.notify_assignment(payload["issue_id"], payload.get("department", ""))
