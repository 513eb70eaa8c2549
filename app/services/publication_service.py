"""
Publication service — CRUD for the two editorial content types, articles
and reviews.

Design notes
------------
- Both types share one code path, selected by ``ContentType``; reviews
  only add their extra columns.
- List/detail reads go through the cache-aside pattern (Redis -> fallback
  to DB).  Cache keys encode every dimension that affects the result.
  Likes change ``like_count``, so the like and cascade services invalidate
  these keys too.
- ``like_count`` is never written here: it belongs to the like services.
- Deletion is not here either; it cascades to comments and likes and is
  owned by ``cascade_service.delete_content``.
- Service functions flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency in the router layer.
"""
import math
import re
import time

from sqlalchemy import asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.config import settings
from app.exceptions import InvalidState, NotFound
from app.models import ContentType
from app.schemas import ArticleResponse, PaginatedResponse, ReviewResponse
from app.services import content_registry

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

# Columns that are safe to sort by; guards against arbitrary attribute access.
_SORTABLE_COLUMNS: frozenset[str] = frozenset({"created_at", "like_count", "title"})

_RESPONSES = {
    ContentType.ARTICLE: ArticleResponse,
    ContentType.REVIEW: ReviewResponse,
}


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def _publication_type(content_type) -> ContentType:
    content_type = ContentType(content_type)
    if content_type not in _RESPONSES:
        raise InvalidState(f"{content_type.value} is not a publication type")
    return content_type


def _serialize(content_type: ContentType, item, detail: bool = False) -> dict:
    data = _RESPONSES[content_type].model_validate(item).model_dump(mode="json")
    if not detail:
        data.pop("content", None)
    return data


def _cache_prefix(content_type: ContentType) -> str:
    return f"{content_type.value}s"


async def _unique_slug(db: AsyncSession, model, title: str, exclude_id: int | None = None) -> str:
    """Slug for *title*; a Unix-timestamp suffix resolves collisions."""
    slug = slugify(title)
    q = select(model.id).where(model.slug == slug)
    if exclude_id is not None:
        q = q.where(model.id != exclude_id)
    if (await db.execute(q)).scalar_one_or_none() is not None:
        slug = f"{slug}-{int(time.time())}"
    return slug


async def list_publications(
    db: AsyncSession,
    content_type: ContentType,
    page: int = 1,
    page_size: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> PaginatedResponse:
    """Return a page of articles or reviews, cached in Redis."""
    content_type = _publication_type(content_type)
    model = content_registry.model_for(content_type)
    cache_key = f"{_cache_prefix(content_type)}:list:{page}:{page_size}:{sort_by}:{sort_order}"
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)

    total: int = (await db.execute(select(func.count()).select_from(model))).scalar_one()

    sort_col = getattr(model, sort_by) if sort_by in _SORTABLE_COLUMNS else model.created_at
    order_expr = desc(sort_col) if sort_order == "desc" else asc(sort_col)
    result = await db.execute(
        select(model)
        .order_by(order_expr, model.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    response = PaginatedResponse(
        items=[_serialize(content_type, item) for item in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return response


async def get_publication(db: AsyncSession, content_type: ContentType, item_id: int) -> dict:
    """Return the detail dict for one article or review; ``NotFound`` when absent."""
    content_type = _publication_type(content_type)
    cache_key = f"{_cache_prefix(content_type)}:detail:{item_id}"
    cached = await cache.get(cache_key)
    if cached:
        return cached

    item = await content_registry.get_or_404(db, content_type, item_id)
    data = _serialize(content_type, item, detail=True)
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)
    return data


async def create_publication(db: AsyncSession, content_type: ContentType, data, author_id: int) -> dict:
    """Create an article or review authored by *author_id*."""
    content_type = _publication_type(content_type)
    model = content_registry.model_for(content_type)
    fields = data.model_dump()
    item = model(
        slug=await _unique_slug(db, model, data.title),
        author_id=author_id,
        like_count=0,
        **fields,
    )
    db.add(item)
    await db.flush()
    await db.refresh(item)

    await cache.invalidate_content(content_type)
    return _serialize(content_type, item, detail=True)


async def update_publication(db: AsyncSession, content_type: ContentType, item_id: int, data) -> dict:
    """
    Partially update an article or review.

    Only fields explicitly set in the payload are modified
    (``model_dump(exclude_unset=True)``); the slug follows the title.
    """
    content_type = _publication_type(content_type)
    model = content_registry.model_for(content_type)
    item = await content_registry.get_or_404(db, content_type, item_id)

    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(item, field, value)
    if "title" in update_data:
        item.slug = await _unique_slug(db, model, update_data["title"], exclude_id=item.id)

    await db.flush()
    await db.refresh(item)
    await cache.invalidate_content(content_type, item_id)
    return _serialize(content_type, item, detail=True)


async def get_by_slug(db: AsyncSession, content_type: ContentType, slug: str) -> dict:
    content_type = _publication_type(content_type)
    model = content_registry.model_for(content_type)
    item = (await db.execute(select(model).where(model.slug == slug))).scalar_one_or_none()
    if item is None:
        raise NotFound(f"{content_type.value} with slug {slug!r} not found")
    return _serialize(content_type, item, detail=True)

