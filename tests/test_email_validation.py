"""Tests for recipient and billing email validation."""

from __future__ import annotations

import pytest

from src.services.mailer import validate_email


class TestValidateEmail:
    """Unit tests for the validate_email helper."""

    @pytest.mark.parametrize(
        "email",
        [
            "alice@example.com",
            "bob.jones@store.co.uk",
            "jane+tag@gmail.com",
            "user@sub.domain.org",
            "UPPER@CASE.COM",
            "digits123@test456.io",
        ],
    )
    def test_accepts_valid_emails(self, email: str):
        assert validate_email(email) is None

    @pytest.mark.parametrize(
        "email",
        [
            "",
            "   ",
            "not-an-email",
            "missing@",
            "@no-local.com",
            "spaces in@email.com",
            "double@@at.com",
            "no-tld@localhost",
            "user@.leading-dot.com",
        ],
    )
    def test_rejects_invalid_emails(self, email: str):
        result = validate_email(email)
        assert result is not None
        assert "does not look like a valid email" in result or "No email" in result

    def test_surrounding_whitespace_is_ignored(self):
        assert validate_email("  alice@example.com\n") is None

    def test_error_message_quotes_the_address(self):
        assert '"nope"' in validate_email("nope")
