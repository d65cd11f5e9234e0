"""
Identity provider adapter.

The identity provider issues signed session tokens; the marketplace only
verifies them and reads the user id and role. A missing, malformed or
expired token is "no session", never an error.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

import structlog
from jose import JWTError, jwt

from marketplace.config import get_settings

logger = structlog.get_logger(__name__)

ROLES = ("user", "admin")


@dataclass(frozen=True)
class Session:
    """Authenticated identity as seen by the marketplace."""

    user_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class SessionProvider:
    """Verifies session tokens carried by a request."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        cookie_name: Optional[str] = None,
    ) -> None:
        settings = get_settings() if None in (secret_key, algorithm, cookie_name) else None
        self.secret_key = secret_key or settings.auth_secret_key
        self.algorithm = algorithm or settings.auth_algorithm
        self.cookie_name = cookie_name or settings.session_cookie_name

    def _extract_token(
        self, headers: Mapping[str, str], cookies: Optional[Mapping[str, str]]
    ) -> Optional[str]:
        authorization = headers.get("authorization") or headers.get("Authorization")
        if authorization:
            scheme, _, token = authorization.partition(" ")
            if scheme.lower() == "bearer" and token:
                return token.strip()
        if cookies:
            return cookies.get(self.cookie_name)
        return None

    def get_session(
        self,
        headers: Mapping[str, str],
        cookies: Optional[Mapping[str, str]] = None,
    ) -> Optional[Session]:
        """
        Resolve the session for a request.

        Args:
            headers: Request headers
            cookies: Request cookies

        Returns:
            Optional[Session]: The caller's session, or None if unauthenticated
        """
        token = self._extract_token(headers, cookies)
        if not token:
            return None

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.info("session_token_rejected", error=str(e))
            return None

        user_id = payload.get("sub")
        role = payload.get("role", "user")
        if not user_id or role not in ROLES:
            logger.info("session_token_incomplete", has_subject=bool(user_id), role=role)
            return None

        return Session(user_id=str(user_id), role=role)


def create_session_token(
    user_id: str,
    role: str = "user",
    expires_delta: Optional[timedelta] = None,
    secret_key: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> str:
    """Issue a session token the way the identity provider does."""
    settings = get_settings() if secret_key is None or algorithm is None else None
    payload = {
        "sub": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + (expires_delta or timedelta(days=7)),
    }
    return jwt.encode(
        payload,
        secret_key or settings.auth_secret_key,
        algorithm=algorithm or settings.auth_algorithm,
    )
