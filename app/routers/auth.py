import bcrypt
from fastapi import APIRouter, Depends, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.user import User
from app.schemas.auth import LoginRequest, LoginResponse
from app.services.identity import Identity, attach_session_token, bind_user, resolve_identity, unbind
from app.utils.exceptions import AppException
from app.utils.response import success_response

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
async def login(
    request: LoginRequest,
    response: Response,
    identity: Identity = Depends(resolve_identity),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).where(User.username == request.username))
    user = result.scalars().first()

    if user is None:
        raise AppException("Invalid credentials", status_code=400)

    if not bcrypt.checkpw(request.password.encode(), user.password_hash.encode()):
        raise AppException("Invalid credentials", status_code=400)

    token = await bind_user(db, identity, user.id)
    attach_session_token(response, token)

    return success_response(
        data=LoginResponse(user_id=user.id, username=user.username, session_token=token).model_dump()
    )


@router.post("/logout")
async def logout(
    response: Response,
    identity: Identity = Depends(resolve_identity),
    db: AsyncSession = Depends(get_db),
):
    token = await unbind(db, identity)
    attach_session_token(response, token)
    return success_response(data={"session_token": token})
