"""
Like service — the toggle coordinator plus read-side like queries.

``toggle_like`` writes the ledger row and adjusts the stored counter inside
the caller's transaction (the ``get_db`` dependency commits once at the
end of the request), so a failure between the two writes rolls both back.
The counter adjustment is a relative UPDATE evaluated by the database;
nothing here reads a counter, changes it in Python and writes it back.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.models import Article, Comment, ContentType, Like, Review, User
from app.schemas import (
    ContentLikesResponse,
    LikeEntry,
    LikeStatsResponse,
    LikeStatus,
    RankedContent,
    ToggleResult,
    TopLiker,
    UserSummary,
)
from app.services import content_registry, like_ledger

logger = logging.getLogger(__name__)

_TOP_N = 5


async def toggle_like(
    db: AsyncSession, user_id: int, content_type: ContentType, content_id: int
) -> ToggleResult:
    """
    Flip the like state of *user_id* on an item.

    An existing like is removed and the counter decremented (never below
    zero); otherwise a like is recorded and the counter incremented.
    Raises ``NotFound`` for a missing target and ``DuplicateLike`` when a
    concurrent request recorded the same like first.
    """
    content_type = ContentType(content_type)
    await content_registry.get_or_404(db, content_type, content_id)

    existing = await like_ledger.find_like(db, user_id, content_id, content_type)
    if existing is not None:
        await like_ledger.remove_like(db, user_id, content_id, content_type)
        before = await content_registry.read_counter(db, content_type, content_id)
        if not before:
            logger.warning(
                "Counter drift on %s %s: like existed but stored counter was %r; "
                "clamped at 0, run a resync",
                content_type.value, content_id, before,
            )
        fresh = await content_registry.increment_counter(db, content_type, content_id, -1)
        liked = False
    else:
        await like_ledger.record_like(db, user_id, content_id, content_type)
        fresh = await content_registry.increment_counter(db, content_type, content_id, 1)
        liked = True

    logger.info(
        "User %s %s %s %s (count=%d)",
        user_id, "liked" if liked else "unliked", content_type.value, content_id, fresh,
    )
    await cache.invalidate_content(content_type, content_id)
    return ToggleResult(liked=liked, like_count=fresh)


async def get_like_status(
    db: AsyncSession, user_id: int | None, content_type: ContentType, content_id: int
) -> LikeStatus:
    """Return whether *user_id* likes the item and its ledger-derived count."""
    liked = await like_ledger.is_liked_by(db, user_id, content_id, content_type)
    count = await like_ledger.count_for(db, content_id, content_type)
    return LikeStatus(liked=liked, like_count=count)


async def list_content_likes(
    db: AsyncSession, content_type: ContentType, content_id: int
) -> ContentLikesResponse:
    """Admin view of who liked an item, newest first."""
    content_type = ContentType(content_type)
    likes = await like_ledger.list_for(db, content_id, content_type)
    return ContentLikesResponse(
        content_type=content_type.value,
        content_id=content_id,
        like_count=len(likes),
        likes=[
            LikeEntry(
                id=like.id,
                user=UserSummary.model_validate(like.user) if like.user else None,
                liked_at=like.created_at,
            )
            for like in likes
        ],
    )


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

async def _sum_counters(db: AsyncSession, model) -> int:
    result = await db.execute(select(func.coalesce(func.sum(model.like_count), 0)))
    return int(result.scalar_one())


async def _top_content(db: AsyncSession, model, *criteria) -> list[RankedContent]:
    result = await db.execute(
        select(model, User.username)
        .outerjoin(User, User.id == model.author_id)
        .where(*criteria)
        .order_by(model.like_count.desc(), model.id)
        .limit(_TOP_N)
    )
    ranked = []
    for item, username in result.all():
        title = item.content[:50] if model is Comment else item.title
        ranked.append(
            RankedContent(id=item.id, title=title, like_count=item.like_count, author=username)
        )
    return ranked


async def get_like_stats(db: AsyncSession) -> LikeStatsResponse:
    """
    Totals from the stored counters, the most liked content of each type
    and the users who like the most.
    """
    article_total = await _sum_counters(db, Article)
    review_total = await _sum_counters(db, Review)
    comment_total = await _sum_counters(db, Comment)

    likers = await db.execute(
        select(User.id, User.username, User.email, func.count(Like.id).label("likes_count"))
        .join(Like, Like.user_id == User.id)
        .group_by(User.id, User.username, User.email)
        .order_by(func.count(Like.id).desc(), User.id)
        .limit(_TOP_N)
    )

    return LikeStatsResponse(
        total_likes=article_total + review_total + comment_total,
        total_article_likes=article_total,
        total_review_likes=review_total,
        total_comment_likes=comment_total,
        top_articles=await _top_content(db, Article),
        top_reviews=await _top_content(db, Review),
        top_comments=await _top_content(db, Comment, Comment.is_deleted.is_(False)),
        top_likers=[
            TopLiker(user_id=row.id, username=row.username, email=row.email, likes_count=row.likes_count)
            for row in likers.all()
        ],
    )
