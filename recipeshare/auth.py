"""Accounts, password hashing and bearer tokens.

Tokens are HS256 JWTs carrying the user id in ``sub``. The HTTP layer reads
them from the ``Authorization: Bearer <token>`` header and hands the
resulting caller id to :class:`recipeshare.service.RecipeService`.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Callable, Optional, Tuple, TypeVar, cast

import structlog
from flask import current_app, g, request
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import AuthError, ValidationError
from .models import User
from .storage import UserRepository


logger = structlog.get_logger(__name__)

ALGORITHM = "HS256"
MIN_PASSWORD_LENGTH = 6
EMAIL_PATTERN = re.compile(r"^[^@\s/]+@[^@\s/]+\.[^@\s/]+$")

F = TypeVar("F", bound=Callable[..., Any])


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


class TokenCodec:
    """Issue and verify signed access tokens."""

    def __init__(self, secret_key: str, *, ttl: timedelta = timedelta(days=7)) -> None:
        if not secret_key:
            raise ValueError("A secret key is required to sign tokens.")
        self._secret_key = secret_key
        self._ttl = ttl

    def issue(self, user_id: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {"sub": user_id, "iat": now, "exp": now + self._ttl}
        return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)

    def verify(self, token: str) -> str:
        """Return the user id carried by ``token``."""

        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[ALGORITHM])
        except ExpiredSignatureError as exc:
            raise AuthError("Token has expired") from exc
        except JWTError as exc:
            raise AuthError("Invalid token") from exc

        subject = payload.get("sub")
        if not subject:
            raise AuthError("Invalid token")
        return subject


class AuthService:
    def __init__(self, users: UserRepository, tokens: TokenCodec) -> None:
        self._users = users
        self._tokens = tokens

    @property
    def tokens(self) -> TokenCodec:
        return self._tokens

    def register(self, *, username: str, email: str, password: str) -> Tuple[User, str]:
        username = (username or "").strip()
        email = (email or "").strip()
        password = password or ""

        if not username:
            raise ValidationError("Username is required")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("A valid email address is required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )

        user = self._users.add_user(
            username=username,
            email=email,
            password_hash=hash_password(password),
        )
        logger.info("user_registered", user_id=user.id)
        return user, self._tokens.issue(user.id)

    def login(self, *, email: str, password: str) -> Tuple[User, str]:
        user = self._users.find_by_email((email or "").strip())

        if user is None or not verify_password(user.password_hash, password or ""):
            logger.info("login_failed")
            raise AuthError("Invalid email or password")

        logger.info("user_logged_in", user_id=user.id)
        return user, self._tokens.issue(user.id)


def bearer_token(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def current_user_id() -> str:
    """Return the authenticated caller id of the current request."""

    cached = g.get("user_id")
    if cached:
        return cached

    token = bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise AuthError("Not authorized, no token")

    auth: AuthService = current_app.config["AUTH_SERVICE"]
    user_id = auth.tokens.verify(token)
    g.user_id = user_id
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return user_id


def login_required(view: F) -> F:
    @wraps(view)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        current_user_id()
        return view(*args, **kwargs)

    return cast(F, wrapper)


__all__ = [
    "AuthService",
    "TokenCodec",
    "bearer_token",
    "current_user_id",
    "hash_password",
    "login_required",
    "verify_password",
]
