"""Tests for correlation ID generation and context management."""

import re

import pytest

from core.correlation import (
    correlation_id_var,
    correlation_scope,
    generate_correlation_id,
    get_correlation_id,
    is_valid_correlation_id,
    set_correlation_id,
)


class TestGenerateCorrelationId:
    """Tests for generate_correlation_id function."""

    def test_returns_8_hex_characters(self) -> None:
        assert re.match(r"^[0-9a-f]{8}$", generate_correlation_id())

    def test_generates_unique_ids(self) -> None:
        ids = {generate_correlation_id() for _ in range(1000)}
        assert len(ids) == 1000


class TestIsValidCorrelationId:
    """Client-supplied header values must be short, header-safe tokens."""

    @pytest.mark.parametrize("value", ["abc12345", "retro-1a2b3c4d", "A_b-9"])
    def test_accepts_plain_tokens(self, value: str) -> None:
        assert is_valid_correlation_id(value)

    @pytest.mark.parametrize(
        "value", [None, "", "has space", "x" * 65, "new\nline", "{braces}"]
    )
    def test_rejects_unsafe_values(self, value) -> None:
        assert not is_valid_correlation_id(value)


class TestCorrelationIdContext:
    """Tests for correlation ID context management."""

    def test_set_and_get_correlation_id(self) -> None:
        set_correlation_id("abc12345")
        assert get_correlation_id() == "abc12345"

    def test_get_returns_empty_string_when_not_set(self) -> None:
        correlation_id_var.set("")
        assert get_correlation_id() == ""


class TestCorrelationScope:
    """Tests for correlation_scope used by jobs and CLI tasks."""

    def test_binds_prefixed_id(self) -> None:
        with correlation_scope("retro") as correlation_id:
            assert correlation_id.startswith("retro-")
            assert get_correlation_id() == correlation_id

    def test_restores_previous_value(self) -> None:
        set_correlation_id("outer123")
        with correlation_scope():
            assert get_correlation_id() != "outer123"
        assert get_correlation_id() == "outer123"

    def test_restores_on_exception(self) -> None:
        set_correlation_id("outer123")
        with pytest.raises(RuntimeError):
            with correlation_scope("job"):
                raise RuntimeError("boom")
        assert get_correlation_id() == "outer123"
