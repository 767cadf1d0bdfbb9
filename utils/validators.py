import re
from typing import Optional


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class MemberValidator:
    """Basic checks for member enrollment data."""

    @staticmethod
    def normalize_phone(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        s = raw.strip()
        prefix = "+" if s.startswith("+") else ""
        return prefix + re.sub(r"[^0-9]", "", s)

    @staticmethod
    def is_valid_phone(phone: Optional[str]) -> bool:
        digits = MemberValidator.normalize_phone(phone).lstrip("+")
        return 7 <= len(digits) <= 15

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if not email:
            return False
        return bool(_EMAIL_RE.match(email.strip()))


class TextValidator:
    """Very basic text validations for catalog entries."""

    @staticmethod
    def validate_title(title: Optional[str]) -> bool:
        if title is None:
            return False
        t = title.strip()
        # reject blank and purely numeric titles
        return bool(t) and any(c.isalpha() for c in t)

    @staticmethod
    def validate_author(author: Optional[str]) -> bool:
        # must not be digits only
        if author is None:
            return False
        t = author.strip()
        if not t:
            return False
        return not t.isdigit()


class CopyCountValidator:

    @staticmethod
    def is_valid(total_copies: int, available_copies: Optional[int] = None) -> bool:
        if isinstance(total_copies, bool) or not isinstance(total_copies, int) or total_copies < 0:
            return False
        if available_copies is None:
            return True
        return 0 <= available_copies <= total_copies
