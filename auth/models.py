"""
auth/models.py -- Session dataclass for the portal gate.

Layer rule: no imports from api/ or tracker/.
"""

from __future__ import annotations

from dataclasses import dataclass

PORTALS = ("vendor", "security", "manager")


@dataclass
class PortalSession:
    """Who is calling. Decoded from the bearer token on every request.

    member_id is the security team member picked at login; None for the
    vendor and manager portals.
    """

    portal: str  # "vendor", "security", "manager"
    member_id: str | None = None

    @property
    def can_write(self) -> bool:
        return self.portal != "manager"
