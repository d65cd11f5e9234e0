"""Explicit per-request context passed into every workflow operation."""
import uuid
from dataclasses import dataclass, field
from typing import Optional

from marketplace.core.exceptions import AuthRequired, PermissionDenied
from marketplace.integrations.identity import Session


@dataclass(frozen=True)
class RequestContext:
    """Who is calling, and which request this is."""

    session: Optional[Session] = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id if self.session else None

    def require_user(self) -> Session:
        """Return the session or raise AuthRequired."""
        if self.session is None:
            raise AuthRequired("Sign in required")
        return self.session

    def require_admin(self) -> Session:
        """Return an admin session or raise AuthRequired / PermissionDenied."""
        session = self.require_user()
        if not session.is_admin:
            raise PermissionDenied("Admin role required")
        return session
