"""Human-readable order numbers: ``HS-<epoch millis>-<9 random chars>``.

The millisecond prefix keeps numbers roughly sortable by creation time; the
random tail separates orders placed in the same millisecond. Uniqueness is
still enforced at insert time, where a collision is retried.
"""

import secrets
import string
from datetime import UTC, datetime

_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number(prefix: str = "HS", now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"{prefix}-{millis}-{suffix}"
