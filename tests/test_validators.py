from decimal import Decimal

import pytest

from libronova.validators import (
    ContactValidator,
    CredentialValidator,
    ISBNValidator,
    TextValidator,
    parse_non_negative_decimal,
)


@pytest.mark.parametrize("raw, expected", [
    ("978-0-14-044913-6", True),
    ("0-306-40615-2", True),
    ("080442957x", True),
    ("12345", False),
    ("97801404491ab", False),
    (None, False),
])
def test_isbn_shape(raw, expected):
    assert ISBNValidator.is_valid_isbn(raw) is expected


def test_normalize_isbn():
    assert ISBNValidator.normalize_isbn(" 0-8044-2957-x ") == "080442957X"


def test_sanitize_text():
    assert TextValidator.sanitize_text("  <b>Don</b>   Quijote ") == "Don Quijote"
    assert TextValidator.is_blank("   ")


def test_contacts():
    assert ContactValidator.is_valid_email("ana@example.com")
    assert not ContactValidator.is_valid_email("ana@example")
    assert ContactValidator.is_valid_phone("+57 (300) 555-0101")
    assert not ContactValidator.is_valid_phone("call me")


def test_credentials():
    assert CredentialValidator.is_valid_username("clerk_1")
    assert not CredentialValidator.is_valid_username("x")
    assert not CredentialValidator.is_valid_password("abc")


def test_parse_non_negative_decimal():
    assert parse_non_negative_decimal("12.50") == Decimal("12.50")
    assert parse_non_negative_decimal("-1") is None
    assert parse_non_negative_decimal("NaN") is None
    assert parse_non_negative_decimal("abc") is None
