"""Tests for Sentry SDK configuration and PII scrubbing."""

from typing import Any
from unittest.mock import patch

from core.sentry_config import (
    _before_send,
    _before_send_transaction,
    _traces_sampler,
    init_sentry,
)


class TestBeforeSendPIIScrubbing:
    """Tests for PII scrubbing in _before_send."""

    def test_scrubs_email_and_username(self) -> None:
        event: dict[str, Any] = {
            "user": {"id": "123", "email": "asha@example.com", "username": "asha"}
        }
        result = _before_send(event, {})  # type: ignore[arg-type]
        assert result is not None
        assert result["user"] == {"id": "123"}

    def test_anonymizes_ip_address(self) -> None:
        event: dict[str, Any] = {"user": {"id": "1", "ip_address": "10.0.0.7"}}
        result = _before_send(event, {})  # type: ignore[arg-type]
        assert result["user"]["ip_address"] == "{{auto}}"

    def test_filters_report_location_and_contact(self) -> None:
        """Addresses and coordinates in a report body identify the reporter."""
        event: dict[str, Any] = {
            "request": {
                "cookies": {"session": "x"},
                "headers": {"Authorization": "Bearer abc"},
                "data": {
                    "title": "Pothole",
                    "address": "12 MG Road",
                    "coordinates": [77.1, 28.7],
                    "pincode": "110085",
                },
            }
        }
        result = _before_send(event, {})  # type: ignore[arg-type]
        request = result["request"]
        assert "cookies" not in request
        assert request["headers"]["Authorization"] == "[Filtered]"
        assert request["data"]["title"] == "Pothole"
        assert request["data"]["address"] == "[Filtered]"
        assert request["data"]["coordinates"] == "[Filtered]"
        assert request["data"]["pincode"] == "[Filtered]"

    def test_event_without_user_or_request_passes_through(self) -> None:
        event: dict[str, Any] = {"message": "hello"}
        assert _before_send(event, {}) == {"message": "hello"}  # type: ignore[arg-type]


class TestBeforeSendTransaction:
    """Tests for health-check transaction filtering."""

    def test_drops_health_checks(self) -> None:
        assert _before_send_transaction({"transaction": "/api/health"}, {}) is None  # type: ignore[arg-type]
        assert (
            _before_send_transaction({"transaction": "GET /api/health"}, {})  # type: ignore[arg-type]
            is None
        )

    def test_keeps_other_transactions(self) -> None:
        event: dict[str, Any] = {"transaction": "/api/issues"}
        assert _before_send_transaction(event, {}) is event  # type: ignore[arg-type]


class TestTracesSampler:
    """Tests for path-based trace sampling."""

    @staticmethod
    def _context(path: str, method: str = "GET") -> dict[str, Any]:
        return {"asgi_scope": {"path": path, "method": method}}

    def test_health_never_sampled(self) -> None:
        assert _traces_sampler(self._context("/api/health")) == 0.0

    def test_retro_cluster_always_sampled(self) -> None:
        assert (
            _traces_sampler(self._context("/api/issues/cluster/retroactive", "POST"))
            == 1.0
        )

    def test_issue_creation_sampled_more(self) -> None:
        assert _traces_sampler(self._context("/api/issues", "POST")) == 0.5

    def test_default_rate(self) -> None:
        assert _traces_sampler(self._context("/api/issues/5")) == 0.2

    def test_parent_decision_respected(self) -> None:
        assert _traces_sampler({"parent_sampled": True}) == 1.0


class TestInitSentry:
    """Tests for init_sentry."""

    def test_noop_without_dsn(self, monkeypatch) -> None:
        monkeypatch.delenv("SENTRY_DSN", raising=False)
        with patch("core.sentry_config.sentry_sdk.init") as mock_init:
            init_sentry()
        mock_init.assert_not_called()

    def test_initializes_with_scrubbing(self, monkeypatch) -> None:
        monkeypatch.setenv("SENTRY_DSN", "https://key@sentry.example.com/1")
        with patch("core.sentry_config.sentry_sdk.init") as mock_init:
            init_sentry()
        kwargs = mock_init.call_args.kwargs
        assert kwargs["send_default_pii"] is False
        assert kwargs["before_send"] is _before_send
        assert kwargs["traces_sampler"] is _traces_sampler
