from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import PaginationParams, require_admin
from app.models import ContentType, User
from app.schemas import ArticleCreate, ArticleUpdate, ContentDeletionTally, PaginatedResponse
from app.services import cascade_service, publication_service

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])

@router.get("", response_model=PaginatedResponse)
async def list_articles(
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await publication_service.list_publications(
        db, ContentType.ARTICLE,
        pagination.page, pagination.page_size, pagination.sort_by, pagination.sort_order,
    )

@router.get("/slug/{slug}")
async def get_article_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    return await publication_service.get_by_slug(db, ContentType.ARTICLE, slug)

@router.get("/{article_id}")
async def get_article(article_id: int, db: AsyncSession = Depends(get_db)):
    return await publication_service.get_publication(db, ContentType.ARTICLE, article_id)

@router.post("", status_code=201)
async def create_article(
    data: ArticleCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await publication_service.create_publication(db, ContentType.ARTICLE, data, admin.id)

@router.put("/{article_id}")
async def update_article(
    article_id: int,
    data: ArticleUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await publication_service.update_publication(db, ContentType.ARTICLE, article_id, data)

@router.delete("/{article_id}", response_model=ContentDeletionTally)
async def delete_article(
    article_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await cascade_service.delete_content(db, ContentType.ARTICLE, article_id)
