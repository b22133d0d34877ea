"""Instructor and admin sign-in. Tokens are stateless; nothing is stored per login."""
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from app.api.deps import (
    REFRESH,
    CurrentUser,
    create_access_token,
    create_refresh_token,
    decode_token,
    load_active_user,
    verify_password,
)
from app.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter()


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


def _tokens_for(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(str(user.id), user.role.value),
        refresh_token=create_refresh_token(str(user.id)),
    )


@router.post("/login", response_model=TokenResponse)
async def login(req: LoginRequest):
    user = await User.find_one(User.email == req.email.strip())
    if not user or not user.is_active or not verify_password(req.password, user.hashed_password):
        logger.info(f"Failed sign-in for {req.email}")
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _tokens_for(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(req: RefreshRequest):
    user = await load_active_user(decode_token(req.refresh_token, REFRESH))
    return _tokens_for(user)


@router.get("/me")
async def me(user: CurrentUser):
    return {
        "id": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "full_name": user.full_name,
        "subject_codes": user.subject_codes,
    }
