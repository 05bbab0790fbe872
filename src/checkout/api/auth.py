"""Staff-only endpoint guard.

Customer authentication belongs to the storefront's identity service. The
operations that move money after checkout (capture, cancel, refund) are
called by back-office tooling, which presents a shared key.
"""

import hmac

from fastapi import Header

from checkout.config import get_settings
from checkout.exceptions import UnauthorizedError


async def require_admin_key(x_admin_key: str = Header(default="")) -> None:
    expected = get_settings().admin_api_key
    if not expected:
        raise UnauthorizedError("Staff payment operations are disabled (ADMIN_API_KEY not set)")
    if not x_admin_key or not hmac.compare_digest(x_admin_key.encode(), expected.encode()):
        raise UnauthorizedError("A valid X-Admin-Key header is required")
