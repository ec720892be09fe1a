"""Tests for request field validation helpers."""

import pytest

from auth_service.services.outcomes import Err, ErrorKind
from auth_service.services.ports import Role
from auth_service.services.validation import (
    check_registration_data,
    is_blank,
    is_valid_email,
    mask_email,
    require_fields,
)


class TestIsBlank:
    """Tests for is_blank()."""

    @pytest.mark.parametrize("value", [None, "", "   ", "\t\n"])
    def test_blank_values(self, value):
        assert is_blank(value) is True

    @pytest.mark.parametrize("value", ["a", " a ", 0, False])
    def test_present_values(self, value):
        assert is_blank(value) is False


class TestRequireFields:
    """Tests for require_fields()."""

    def test_all_present(self):
        """No failure when every value is present."""
        assert require_fields("Email is required!", "a@b.com") is None

    def test_any_missing(self):
        """One blank value fails with the given message."""
        result = require_fields("Email and OTP are required!", "a@b.com", " ")

        assert isinstance(result, Err)
        assert result.failure.kind is ErrorKind.VALIDATION
        assert result.failure.message == "Email and OTP are required!"


class TestCheckRegistrationData:
    """Tests for check_registration_data()."""

    def test_valid_user(self):
        """Name, email and password are enough for a buyer."""
        data = {"name": "Alice", "email": "alice@example.com", "password": "x"}

        assert check_registration_data(data, Role.USER) is None

    def test_seller_requires_contact_fields(self):
        """Sellers also need phone_number and country."""
        data = {"name": "Shop", "email": "shop@example.com", "password": "x"}

        result = check_registration_data(data, Role.SELLER)

        assert isinstance(result, Err)
        assert result.failure.details == {"missing": ["phone_number", "country"]}

    def test_missing_checked_before_format(self):
        """Missing fields are reported before a malformed email."""
        result = check_registration_data({"email": "nope"}, Role.USER)

        assert isinstance(result, Err)
        assert result.failure.message == "All fields are required"

    def test_invalid_email(self):
        """A malformed email is rejected."""
        data = {"name": "Alice", "email": "alice.example.com", "password": "x"}

        result = check_registration_data(data, Role.USER)

        assert isinstance(result, Err)
        assert result.failure.message == "Invalid email format!"


class TestEmailHelpers:
    """Tests for is_valid_email() and mask_email()."""

    @pytest.mark.parametrize(
        "email", ["a@b.com", "first.last+tag@shop.example.co.uk", "A@B.IO"]
    )
    def test_valid_emails(self, email: str):
        assert is_valid_email(email) is True

    @pytest.mark.parametrize(
        "email", ["", "plain", "a@b", "@b.com", "a@.com ", "a b@c.com", "a@@b.com"]
    )
    def test_invalid_emails(self, email: str):
        assert is_valid_email(email) is False

    def test_mask_email(self):
        """Only the first character of the local part is kept."""
        assert mask_email("alice@example.com") == "a***@example.com"

    def test_mask_non_email(self):
        """Values without @ are fully masked."""
        assert mask_email("alice") == "***"
