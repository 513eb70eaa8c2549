from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import PaginationParams, require_admin
from app.models import ContentType, User
from app.schemas import ReviewCreate, ReviewUpdate, ContentDeletionTally, PaginatedResponse
from app.services import cascade_service, publication_service

router = APIRouter(prefix="/api/v1/reviews", tags=["reviews"])

@router.get("", response_model=PaginatedResponse)
async def list_reviews(
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await publication_service.list_publications(
        db, ContentType.REVIEW,
        pagination.page, pagination.page_size, pagination.sort_by, pagination.sort_order,
    )

@router.get("/slug/{slug}")
async def get_review_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    return await publication_service.get_by_slug(db, ContentType.REVIEW, slug)

@router.get("/{review_id}")
async def get_review(review_id: int, db: AsyncSession = Depends(get_db)):
    return await publication_service.get_publication(db, ContentType.REVIEW, review_id)

@router.post("", status_code=201)
async def create_review(
    data: ReviewCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await publication_service.create_publication(db, ContentType.REVIEW, data, admin.id)

@router.put("/{review_id}")
async def update_review(
    review_id: int,
    data: ReviewUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await publication_service.update_publication(db, ContentType.REVIEW, review_id, data)

@router.delete("/{review_id}", response_model=ContentDeletionTally)
async def delete_review(
    review_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await cascade_service.delete_content(db, ContentType.REVIEW, review_id)
