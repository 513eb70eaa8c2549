"""
Content registry — storage access for every likeable entity.

Articles, reviews and comments share a ``like_count`` column.  The
``ContentType`` tag selects the mapped class through ``_MODELS``; nothing
here switches on class names.

Counter writes are always relative ``UPDATE`` statements evaluated by the
database (``like_count = like_count + :delta``, clamped at zero), so two
concurrent toggles on the same item never lose an update.  The UPDATEs run
with ``synchronize_session=False``: ORM instances already loaded in the
session keep their old ``like_count``, and callers read the fresh value
from the returned integer instead.
"""
import logging

from sqlalchemy import case, func, select, update
from sqlalchemy import delete as sa_delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import InternalInconsistency, InvalidState, NotFound
from app.models import Article, Comment, ContentType, Review

logger = logging.getLogger(__name__)

_MODELS = {
    ContentType.ARTICLE: Article,
    ContentType.REVIEW: Review,
    ContentType.COMMENT: Comment,
}


def parse_content_type(value: str) -> ContentType:
    """Return the ``ContentType`` for *value* or raise ``InvalidState``."""
    try:
        return ContentType(value)
    except ValueError:
        raise InvalidState(f"Invalid content type: {value!r}") from None


def model_for(content_type: ContentType):
    return _MODELS[ContentType(content_type)]


async def get(db: AsyncSession, content_type: ContentType, content_id: int):
    """Return the content row, or None."""
    model = model_for(content_type)
    result = await db.execute(
        select(model).where(model.id == content_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_404(db: AsyncSession, content_type: ContentType, content_id: int):
    item = await get(db, content_type, content_id)
    if item is None:
        raise NotFound(f"{ContentType(content_type).value} {content_id} not found")
    return item


async def exists(db: AsyncSession, content_type: ContentType, content_id: int) -> bool:
    model = model_for(content_type)
    result = await db.execute(select(model.id).where(model.id == content_id))
    return result.scalar_one_or_none() is not None


async def read_counter(db: AsyncSession, content_type: ContentType, content_id: int) -> int | None:
    """Return the stored counter straight from the database (bypasses the identity map)."""
    model = model_for(content_type)
    result = await db.execute(select(model.like_count).where(model.id == content_id))
    return result.scalar_one_or_none()


async def increment_counter(
    db: AsyncSession, content_type: ContentType, content_id: int, delta: int
) -> int:
    """
    Atomically add *delta* to the stored counter, never going below zero.

    Returns the fresh counter value.  Raises ``NotFound`` when the row is
    gone and ``InternalInconsistency`` if the value read back is negative.
    """
    model = model_for(content_type)
    adjusted = model.like_count + delta
    stmt = (
        update(model)
        .where(model.id == content_id)
        .values(like_count=case((adjusted < 0, 0), else_=adjusted))
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        raise NotFound(f"{ContentType(content_type).value} {content_id} not found")

    fresh = await read_counter(db, content_type, content_id)
    if fresh is None or fresh < 0:
        logger.error(
            "Counter for %s %s read back as %r after clamped update",
            ContentType(content_type).value, content_id, fresh,
        )
        raise InternalInconsistency(
            "Like counter is negative after clamped update",
            content_type=ContentType(content_type).value,
            content_id=content_id,
        )
    return fresh


async def decrement_counters(db: AsyncSession, targets: dict[tuple[str, int], int]) -> None:
    """
    Apply clamped decrements for many items at once.

    *targets* maps ``(content_type, content_id)`` to the number of likes
    removed from that item.  Items that no longer exist are skipped; this
    is how cascades stay re-runnable.
    """
    for (content_type, content_id), removed in targets.items():
        model = model_for(content_type)
        adjusted = model.like_count - removed
        await db.execute(
            update(model)
            .where(model.id == content_id)
            .values(like_count=case((adjusted < 0, 0), else_=adjusted))
            .execution_options(synchronize_session=False)
        )


async def set_counter_if(
    db: AsyncSession, content_type: ContentType, content_id: int, expected: int, value: int
) -> bool:
    """
    Compare-and-swap the stored counter.

    Writes *value* only when the counter still equals *expected*; returns
    whether a row was changed.
    """
    model = model_for(content_type)
    result = await db.execute(
        update(model)
        .where(model.id == content_id, model.like_count == expected)
        .values(like_count=value)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def delete(db: AsyncSession, content_type: ContentType, content_id: int) -> bool:
    """Remove the row; returns False when it was already gone."""
    model = model_for(content_type)
    result = await db.execute(
        sa_delete(model).where(model.id == content_id).execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def find_by_author(db: AsyncSession, content_type: ContentType, author_id: int) -> list:
    """Return every item of *content_type* written by *author_id*, newest first."""
    model = model_for(content_type)
    result = await db.execute(
        select(model)
        .where(model.author_id == author_id)
        .order_by(model.created_at.desc(), model.id.desc())
    )
    return list(result.scalars().all())


async def count_replies(db: AsyncSession, comment_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Comment).where(Comment.parent_id == comment_id)
    )
    return result.scalar_one()


async def counter_snapshot(db: AsyncSession, content_type: ContentType) -> list[tuple[int, int]]:
    """Return ``(id, like_count)`` for every row of *content_type*, ordered by id."""
    model = model_for(content_type)
    result = await db.execute(select(model.id, model.like_count).order_by(model.id))
    return [(row.id, row.like_count) for row in result.all()]
