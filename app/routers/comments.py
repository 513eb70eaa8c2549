from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import get_current_user, get_optional_user
from app.models import ContentType, User
from app.schemas import CommentCreate, CommentDeletionResult, CommentResponse, PaginatedResponse, ToggleResult
from app.services import cascade_service, comment_service, like_service

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])

async def _list(
    content_type: ContentType,
    content_id: int,
    viewer: User | None,
    page: int,
    page_size: int,
    sort_by: str,
    db: AsyncSession,
) -> PaginatedResponse:
    return await comment_service.list_comments(
        db, content_type, content_id, viewer, page, page_size, sort_by
    )

@router.get("/article/{article_id}", response_model=PaginatedResponse)
async def list_article_comments(
    article_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(5, ge=1, le=100),
    sort_by: str = Query("recent", pattern="^(recent|likes)$"),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await _list(ContentType.ARTICLE, article_id, viewer, page, page_size, sort_by, db)

@router.get("/review/{review_id}", response_model=PaginatedResponse)
async def list_review_comments(
    review_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(5, ge=1, le=100),
    sort_by: str = Query("recent", pattern="^(recent|likes)$"),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await _list(ContentType.REVIEW, review_id, viewer, page, page_size, sort_by, db)

@router.post("", status_code=201, response_model=CommentResponse)
async def create_comment(
    data: CommentCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.create_comment(db, data, user.id)

@router.delete("/{comment_id}", response_model=CommentDeletionResult)
async def delete_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await cascade_service.delete_comment(db, comment_id, user)

@router.delete("/{comment_id}/force", response_model=CommentDeletionResult)
async def force_delete_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await cascade_service.force_delete_comment(db, comment_id, user)

@router.post("/{comment_id}/like", response_model=ToggleResult)
async def toggle_comment_like(
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.toggle_like(db, user.id, ContentType.COMMENT, comment_id)
