"""
Recipient id validation and rejection reasons.
"""
import re
from enum import Enum
from typing import Any

# LINE user ids: "U" followed by 32 hex chars
LINE_USER_ID_PATTERN = re.compile(r"^U[0-9a-f]{32}$", re.IGNORECASE)

INVALID_ID_REASON = "invalid recipient id format"
CROSS_KEY_REASON = "excluded: already sent under another key"
EVER_SENT_REASON = "excluded: ever sent"


class FilterName(str, Enum):
    """Pipeline stages, in evaluation order."""

    FORMAT = "invalid_format"
    DOMAIN = "domain"
    CROSS_KEY = "cross_key"
    EVER_SENT = "ever_sent"
    COOLDOWN = "cooldown"


def is_valid_user_id(value: Any) -> bool:
    """True if value is a well-formed LINE user id (surrounding whitespace ignored)."""
    if not isinstance(value, str):
        return False
    return bool(LINE_USER_ID_PATTERN.match(value.strip()))


def domain_reason(name: str) -> str:
    return f"excluded: domain ({name})"
