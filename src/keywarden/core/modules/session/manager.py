"""Stateless signed session tokens."""

import hmac
import math
import re
import secrets
from datetime import UTC, datetime, timedelta

import bcrypt
import jwt

from keywarden.core.modules.session.models import AuthToken, SessionCheck, SessionClaims, SessionError

ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["sub", "sid", "iat", "exp"]
BCRYPT_HASH = re.compile(r"\$2[aby]\$\d\d\$[./A-Za-z0-9]{53}")


def is_bcrypt_hash(value: str) -> bool:
    return BCRYPT_HASH.fullmatch(value) is not None


class SessionManager:
    """Issues and verifies HS256 session tokens.

    Built once at startup with the shared admin password and the signing secret. Validity
    comes from the signature and the embedded expiry only, there is no session table.
    Callers pass `now`, so expiry is testable without touching the wall clock.
    """

    def __init__(self, password: str, secret: str, ttl: timedelta = timedelta(hours=24)) -> None:
        if not password:
            raise ValueError("Admin password must not be empty")
        if not secret:
            raise ValueError("Session secret must not be empty")
        self._hashed = is_bcrypt_hash(password)
        self._password = password.encode("utf-8")
        self._secret = secret
        self.ttl = ttl

    def check_password(self, password: str) -> bool:
        """Compare against the configured password, which may be stored as a bcrypt hash."""
        candidate = password.encode("utf-8")
        if self._hashed:
            try:
                return bcrypt.checkpw(candidate, self._password)
            except ValueError:
                return False
        return hmac.compare_digest(candidate, self._password)

    def issue(self, subject: str, now: datetime, session_id: str | None = None) -> AuthToken:
        """Sign a token valid for `ttl` from `now`."""
        issued_at = int(now.timestamp())
        claims = {
            "sub": subject,
            "sid": session_id or secrets.token_urlsafe(16),
            "iat": issued_at,
            # Round up, the lifetime is never shorter than ttl
            "exp": math.ceil((now + self.ttl).timestamp()),
        }
        return AuthToken(jwt.encode(claims, self._secret, algorithm=ALGORITHM))

    def validate(self, token: str, now: datetime) -> SessionCheck:
        """Verify signature, shape and expiry of a token."""
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                # Expiry is checked against the caller's `now` below
                options={"verify_exp": False, "verify_iat": False, "require": REQUIRED_CLAIMS},
            )
            claims = SessionClaims(
                subject=payload["sub"],
                session_id=payload["sid"],
                issued_at=datetime.fromtimestamp(payload["iat"], UTC),
                expires_at=datetime.fromtimestamp(payload["exp"], UTC),
            )
        except (jwt.InvalidTokenError, KeyError, TypeError, ValueError, OverflowError):
            return SessionCheck.fail(SessionError.INVALID)

        if now >= claims.expires_at:
            return SessionCheck.fail(SessionError.EXPIRED)
        return SessionCheck(token=AuthToken(token), claims=claims)

    def revalidate(self, token: str, now: datetime) -> SessionCheck:
        """Replace a still-valid token with one expiring `ttl` after `now`.

        The old token is left untouched and keeps its own expiry.
        """
        check = self.validate(token, now)
        if check.claims is None:
            return check
        renewed = self.issue(check.claims.subject, now, session_id=check.claims.session_id)
        return self.validate(renewed, now)
