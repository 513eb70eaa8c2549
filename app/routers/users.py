from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import get_current_user
from app.exceptions import InvalidState
from app.models import User
from app.schemas import (
    ACCOUNT_DELETION_PHRASE,
    DeleteAccountRequest,
    UserCreate,
    UserDeletionTally,
    UserResponse,
)
from app.services import cascade_service, user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])

@router.get("", response_model=list[UserResponse])
async def list_users(db: AsyncSession = Depends(get_db)):
    return await user_service.get_users(db)

@router.get("/{user_id}")
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return await user_service.get_user(db, user_id)

@router.post("", status_code=201, response_model=UserResponse)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await user_service.create_user(db, data)
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail="A user with this username or email already exists",
        )

@router.delete("/me", response_model=UserDeletionTally)
async def delete_own_account(
    data: DeleteAccountRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if data is None or data.confirm_text != ACCOUNT_DELETION_PHRASE:
        raise InvalidState(f"Set confirm_text to {ACCOUNT_DELETION_PHRASE!r} to delete your account")
    return await cascade_service.delete_user(db, user.id)
