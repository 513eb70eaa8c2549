from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import get_current_user
from app.models import User
from app.schemas import LikeStatus, ToggleResult
from app.services import like_service
from app.services.content_registry import parse_content_type

router = APIRouter(prefix="/api/v1/likes", tags=["likes"])

@router.post("/{content_type}/{content_id}", response_model=ToggleResult)
async def toggle_like(
    content_type: str,
    content_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.toggle_like(db, user.id, parse_content_type(content_type), content_id)

@router.get("/{content_type}/{content_id}", response_model=LikeStatus)
async def get_like_status(
    content_type: str,
    content_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.get_like_status(db, user.id, parse_content_type(content_type), content_id)
