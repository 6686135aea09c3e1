"""
auth/tokens.py -- JWT encode/decode for portal sessions.

python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
portal, the optional team member id and the expiry. Verification returns
None on any failure -- the route layer turns that into a 401.

SECRET_KEY: sourced from core.config.get_settings(). The Settings class
validates the key at startup: dev mode (DEBUG=true) auto-generates a random
key with a warning; production mode refuses to start without one.

Layer rule: no imports from api/ or tracker/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.models import PORTALS, PortalSession
from core.config import get_settings

logger = logging.getLogger("appsec.auth")

_settings = get_settings()

_ALGORITHM = "HS256"


def create_session_token(session: PortalSession, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for a portal session.

    expire_seconds of 0 (default) uses Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": session.member_id or session.portal,
        "portal": session.portal,
        "member_id": session.member_id,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> PortalSession | None:
    """Decode and verify a JWT. Returns the session or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    portal = payload.get("portal")
    if portal not in PORTALS:
        logger.warning("Rejected token with unknown portal %r", portal)
        return None
    return PortalSession(portal=portal, member_id=payload.get("member_id"))
