from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.models import Article, Comment, Like, Review, User
from app.schemas import MetricsResponse
from app.cache import cache

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])

@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):

    async def _count(model) -> int:
        return (await db.execute(select(func.count()).select_from(model))).scalar_one()

    return MetricsResponse(
        total_articles=await _count(Article),
        total_reviews=await _count(Review),
        total_comments=await _count(Comment),
        total_users=await _count(User),
        total_likes=await _count(Like),
        cache_info=cache.stats,
    )
