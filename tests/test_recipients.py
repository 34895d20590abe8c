"""Tests for recipient parsing and de-duplication."""

import pytest

from email_suite.core import recipients
from email_suite.schemas.message import Recipient


class TestParse:
    """Tests for recipients.parse."""

    def test_quoted_display_name(self) -> None:
        result = recipients.parse('"Jane Doe" <jane@example.com>')
        assert result == Recipient(email="jane@example.com", name="Jane Doe")

    def test_unquoted_display_name(self) -> None:
        result = recipients.parse("John <john@example.com>")
        assert result.email == "john@example.com"
        assert result.name == "John"

    def test_bare_address(self) -> None:
        result = recipients.parse("  a@b.com ")
        assert result.email == "a@b.com"
        assert result.name is None

    def test_angle_brackets_without_name(self) -> None:
        result = recipients.parse("<a@b.com>")
        assert result.email == "a@b.com"
        assert result.name is None

    @pytest.mark.parametrize("text", ["", "   ", "hello world", "John <john.example.com>"])
    def test_rejects_text_without_at_sign(self, text: str) -> None:
        assert recipients.parse(text) is None


class TestUniqueness:
    """Tests for case-sensitive address de-duplication."""

    def test_add_existing_address_is_noop(self) -> None:
        current = [Recipient(email="a@b.com")]
        assert recipients.add_unique(current, Recipient(email="a@b.com", name="A")) is False
        assert len(current) == 1

    def test_address_comparison_is_case_sensitive(self) -> None:
        current = [Recipient(email="a@b.com")]
        assert recipients.add_unique(current, Recipient(email="A@b.com")) is True
        assert [r.email for r in current] == ["a@b.com", "A@b.com"]

    def test_merge_keeps_first_occurrence(self) -> None:
        merged = recipients.merge_unique(
            [Recipient(email="a@b.com", name="First")],
            [Recipient(email="a@b.com", name="Second"), Recipient(email="c@d.com")],
        )
        assert [(r.email, r.name) for r in merged] == [("a@b.com", "First"), ("c@d.com", None)]
