import re
from decimal import Decimal, InvalidOperation
from typing import Optional

EMAIL_RE = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
PHONE_RE = re.compile(r"^[0-9\s()+-]{7,20}$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]{3,20}$")
MIN_PASSWORD_LENGTH = 4


class ISBNValidator:
    """ISBN-10 / ISBN-13 shape checks.

    Only the shape is checked (10 or 13 digits, ISBN-10 may end in X); the
    catalog holds plenty of older stock whose printed checksums are wrong.
    """

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        s = re.sub(r"[^0-9Xx]", "", raw)
        return s.upper()

    @staticmethod
    def is_valid_isbn(isbn: Optional[str]) -> bool:
        s = ISBNValidator.normalize_isbn(isbn)
        if len(s) == 13:
            return s.isdigit()
        if len(s) == 10:
            return s[:-1].isdigit() and (s[-1].isdigit() or s[-1] == "X")
        return False


class TextValidator:
    """Basic text validations and sanitization."""

    @staticmethod
    def is_blank(text: Optional[str]) -> bool:
        return text is None or not text.strip()

    @staticmethod
    def sanitize_text(text: Optional[str]) -> str:
        if text is None:
            return ""
        # collapse runs of whitespace and drop HTML tags
        cleaned = re.sub(r"<[^>]*>", "", text)
        return re.sub(r"\s+", " ", cleaned).strip()


class ContactValidator:

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        return bool(email) and EMAIL_RE.match(email.strip()) is not None

    @staticmethod
    def is_valid_phone(phone: Optional[str]) -> bool:
        return bool(phone) and PHONE_RE.match(phone.strip()) is not None


class CredentialValidator:

    @staticmethod
    def is_valid_username(username: Optional[str]) -> bool:
        return bool(username) and USERNAME_RE.match(username.strip()) is not None

    @staticmethod
    def is_valid_password(password: Optional[str]) -> bool:
        return bool(password) and len(password) >= MIN_PASSWORD_LENGTH


def parse_non_negative_decimal(raw) -> Optional[Decimal]:
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, TypeError, ValueError):
        return None
    return value if value.is_finite() and value >= 0 else None
