"""Staff accounts, managed by admins."""
import logging
from datetime import datetime

from beanie import PydanticObjectId
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from app.api.deps import AdminOnly, get_password_hash
from app.models.user import User, UserCreate, UserOut, UserRole, UserUpdate, normalize_subject_codes

logger = logging.getLogger(__name__)

router = APIRouter()


class PasswordUpdate(BaseModel):
    password: str = Field(min_length=8)


async def _get_or_404(user_id: str) -> User:
    user = await User.get(PydanticObjectId(user_id)) if PydanticObjectId.is_valid(user_id) else None
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/", response_model=list[UserOut])
async def list_users(admin: AdminOnly, role: UserRole | None = None):
    query = User.find(User.role == role) if role else User.find_all()
    return [UserOut.from_user(u) for u in await query.sort("+email").to_list()]


@router.post("/", status_code=201, response_model=UserOut)
async def create_user(data: UserCreate, admin: AdminOnly):
    if await User.find_one(User.email == data.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = User(
        email=data.email,
        hashed_password=get_password_hash(data.password),
        role=data.role,
        full_name=data.full_name,
        subject_codes=data.subject_codes,
    )
    await user.insert()
    logger.info(f"{admin.email} created {user.role.value} account {user.email}")
    return UserOut.from_user(user)


@router.patch("/{user_id}", response_model=UserOut)
async def update_user(user_id: str, data: UserUpdate, admin: AdminOnly):
    """Rename, (de)activate or reassign subjects. Admins cannot deactivate themselves."""
    user = await _get_or_404(user_id)
    if data.is_active is False and user.id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    if data.full_name is not None:
        user.full_name = data.full_name.strip() or user.full_name
    if data.is_active is not None:
        user.is_active = data.is_active
    if data.subject_codes is not None:
        user.subject_codes = normalize_subject_codes(data.subject_codes)
    user.updated_at = datetime.utcnow()
    await user.save()
    return UserOut.from_user(user)


@router.post("/{user_id}/set-password")
async def set_user_password(user_id: str, data: PasswordUpdate, admin: AdminOnly):
    user = await _get_or_404(user_id)
    user.hashed_password = get_password_hash(data.password)
    user.updated_at = datetime.utcnow()
    await user.save()
    logger.info(f"Password reset for {user.email} by {admin.email}")
    return {"id": str(user.id)}
