import re
from typing import Optional

MAX_ID_LENGTH = 20
MAX_PHONE_LENGTH = 15

_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9 \-]*$")


class IdValidator:
    """Book and user ids: short, caller-supplied, no whitespace."""

    @staticmethod
    def normalize_id(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return raw.strip()

    @staticmethod
    def is_valid_id(raw: Optional[str]) -> bool:
        s = IdValidator.normalize_id(raw)
        return 0 < len(s) <= MAX_ID_LENGTH and bool(_ID_PATTERN.match(s))


class ContactValidator:
    """Email and phone checks for user registration. Both fields are optional."""

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if not email or not email.strip():
            return True
        return bool(_EMAIL_PATTERN.match(email.strip()))

    @staticmethod
    def is_valid_phone(phone: Optional[str]) -> bool:
        if not phone or not phone.strip():
            return True
        p = phone.strip()
        return len(p) <= MAX_PHONE_LENGTH and bool(_PHONE_PATTERN.match(p))


class TextValidator:
    """Very basic text validations and sanitization."""

    @staticmethod
    def validate_title(title: Optional[str]) -> bool:
        return title is not None and bool(title.strip())

    @staticmethod
    def validate_name(name: Optional[str]) -> bool:
        # must contain at least one letter
        if name is None:
            return False
        t = name.strip()
        return bool(t) and any(c.isalpha() for c in t)

    @staticmethod
    def sanitize_text(text: Optional[str]) -> str:
        if text is None:
            return ""
        # strip HTML tags and control characters
        cleaned = re.sub(r"<[^>]*>", "", text)
        cleaned = re.sub(r"[\x00-\x1f\x7f]", "", cleaned)
        return cleaned.strip()
