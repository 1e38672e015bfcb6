"""Resolve who is calling: an authenticated account or an anonymous session.

Every caller has a session token. A token that was bound to an account at
login resolves to ``Authenticated``; any other token resolves to
``Anonymous``. The identity is resolved once per request and handed to the
services explicitly.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import Depends, Request, Response
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.models.user import UserSession

SESSION_HEADER = "X-Session-Token"


@dataclass(frozen=True)
class Authenticated:
    user_id: str
    session_token: str


@dataclass(frozen=True)
class Anonymous:
    session_token: str


Identity = Authenticated | Anonymous


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def attach_session_token(response: Response, token: str) -> None:
    response.headers[SESSION_HEADER] = token
    if "set-cookie" in response.headers:
        # replaced on login/logout
        del response.headers["set-cookie"]
    response.set_cookie(
        settings.session_cookie_name,
        token,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


async def identity_for_token(db: AsyncSession, token: str) -> Identity:
    binding = await db.get(UserSession, token)
    if binding is None:
        return Anonymous(session_token=token)
    return Authenticated(user_id=binding.user_id, session_token=token)


async def resolve_identity(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> Identity:
    token = request.headers.get(SESSION_HEADER) or request.cookies.get(settings.session_cookie_name)
    if not token:
        token = new_session_token()
    attach_session_token(response, token)
    return await identity_for_token(db, token)


async def bind_user(db: AsyncSession, identity: Identity, user_id: str) -> str:
    """Log ``user_id`` in: drop the caller's old binding and issue a fresh token."""
    await db.execute(delete(UserSession).where(UserSession.token == identity.session_token))
    token = new_session_token()
    db.add(UserSession(
        token=token,
        user_id=user_id,
        created_at=datetime.now(timezone.utc).isoformat(),
    ))
    await db.commit()
    return token


async def unbind(db: AsyncSession, identity: Identity) -> str:
    await db.execute(delete(UserSession).where(UserSession.token == identity.session_token))
    await db.commit()
    return new_session_token()
