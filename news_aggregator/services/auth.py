"""
Minimal bearer-token authentication.

Passwords are stored as salted PBKDF2 hashes. Tokens are random opaque
strings; only their SHA-256 digest is persisted.
"""
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from news_aggregator.core.exceptions import AuthenticationError, InvalidRequestError
from news_aggregator.models.database import DBAccessToken, DBUser

logger = structlog.get_logger(__name__)

PBKDF2_ITERATIONS = 240_000


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        _, iterations, salt, expected = encoded.split("$")
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class AuthService:
    """Register, log in, log out and refresh bearer tokens."""

    def __init__(self, session: AsyncSession, token_ttl_minutes: int = 60):
        self.session = session
        self.token_ttl = timedelta(minutes=token_ttl_minutes)

    async def register(self, name: str, email: str, password: str) -> tuple[DBUser, str]:
        existing = await self.session.execute(select(DBUser).where(DBUser.email == email))
        if existing.scalar_one_or_none() is not None:
            raise InvalidRequestError("The email has already been taken.", field="email")

        user = DBUser(name=name, email=email, password_hash=hash_password(password))
        self.session.add(user)
        await self.session.flush()

        token = await self._issue_token(user)
        await self.session.commit()

        logger.info("User registered", user_id=user.id)
        return user, token

    async def login(self, email: str, password: str) -> tuple[DBUser, str]:
        result = await self.session.execute(select(DBUser).where(DBUser.email == email))
        user = result.scalar_one_or_none()
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")

        user.last_login_at = datetime.utcnow()
        token = await self._issue_token(user)
        await self.session.commit()
        return user, token

    async def logout(self, token: str) -> None:
        access_token = await self._find_token(token)
        access_token.revoked = True
        await self.session.commit()

    async def refresh(self, token: str) -> str:
        """Revoke the presented token and issue a new one for the same user."""
        access_token = await self._find_token(token)
        access_token.revoked = True
        user = await self.session.get(DBUser, access_token.user_id)
        new_token = await self._issue_token(user)
        await self.session.commit()
        return new_token

    async def authenticate(self, token: str) -> DBUser:
        access_token = await self._find_token(token)
        user = await self.session.get(DBUser, access_token.user_id)
        if user is None:
            raise AuthenticationError("Unauthenticated")
        return user

    async def _issue_token(self, user: DBUser) -> str:
        token = secrets.token_urlsafe(32)
        self.session.add(
            DBAccessToken(
                user_id=user.id,
                token_hash=_token_digest(token),
                expires_at=datetime.utcnow() + self.token_ttl,
            )
        )
        return token

    async def _find_token(self, token: str) -> DBAccessToken:
        result = await self.session.execute(
            select(DBAccessToken).where(DBAccessToken.token_hash == _token_digest(token))
        )
        access_token = result.scalar_one_or_none()
        if (
            access_token is None
            or access_token.revoked
            or access_token.expires_at <= datetime.utcnow()
        ):
            raise AuthenticationError("Unauthenticated")
        return access_token
