"""
Like ledger — the normalized table of who liked what.

The ledger is the only source of truth for like counts.  Uniqueness of
``(user_id, content_id, content_type)`` is enforced by the database; a
losing concurrent insert surfaces as ``DuplicateLike``.

Bulk removals used by the deletion cascades treat already-absent rows as a
no-op and report how many rows they actually removed, so re-running a
half-finished cascade is safe.
"""
from collections import Counter
from collections.abc import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.exceptions import DuplicateLike, NotFound
from app.models import Article, Comment, ContentType, Like, Review, User


async def record_like(
    db: AsyncSession, user_id: int, content_id: int, content_type: ContentType
) -> Like:
    """
    Insert a like row and return it.

    The insert runs inside a SAVEPOINT so a unique-constraint violation
    rolls back only this statement, leaving the caller's transaction usable.
    """
    like = Like(user_id=user_id, content_id=content_id, content_type=ContentType(content_type).value)
    try:
        async with db.begin_nested():
            db.add(like)
            await db.flush()
    except IntegrityError:
        raise DuplicateLike(
            "Content already liked by this user",
            content_type=ContentType(content_type).value,
            content_id=content_id,
        ) from None
    return like


async def remove_like(
    db: AsyncSession, user_id: int, content_id: int, content_type: ContentType
) -> Like:
    """Delete the like row for the triple and return it; ``NotFound`` when absent."""
    result = await db.execute(
        select(Like).where(
            Like.user_id == user_id,
            Like.content_id == content_id,
            Like.content_type == ContentType(content_type).value,
        )
    )
    like = result.scalar_one_or_none()
    if like is None:
        raise NotFound("Like not found")

    deleted = await db.execute(
        delete(Like).where(Like.id == like.id).execution_options(synchronize_session=False)
    )
    if deleted.rowcount == 0:
        # Removed by a concurrent unlike between the SELECT and the DELETE.
        raise NotFound("Like not found")
    db.expunge(like)
    return like


async def find_like(
    db: AsyncSession, user_id: int, content_id: int, content_type: ContentType
) -> Like | None:
    result = await db.execute(
        select(Like).where(
            Like.user_id == user_id,
            Like.content_id == content_id,
            Like.content_type == ContentType(content_type).value,
        )
    )
    return result.scalar_one_or_none()


async def count_for(db: AsyncSession, content_id: int, content_type: ContentType) -> int:
    """Exact number of likes on the item, counted from the ledger."""
    result = await db.execute(
        select(func.count())
        .select_from(Like)
        .where(Like.content_id == content_id, Like.content_type == ContentType(content_type).value)
    )
    return result.scalar_one()


async def is_liked_by(
    db: AsyncSession, user_id: int | None, content_id: int, content_type: ContentType
) -> bool:
    if user_id is None:
        return False
    return await find_like(db, user_id, content_id, content_type) is not None


async def list_for(db: AsyncSession, content_id: int, content_type: ContentType) -> list[Like]:
    """Return the likes on an item with their users loaded, newest first."""
    result = await db.execute(
        select(Like)
        .where(Like.content_id == content_id, Like.content_type == ContentType(content_type).value)
        .options(joinedload(Like.user))
        .order_by(Like.created_at.desc(), Like.id.desc())
    )
    return list(result.unique().scalars().all())


async def counts_by_content(db: AsyncSession, content_type: ContentType) -> dict[int, int]:
    """Map content id -> ledger count for every liked item of *content_type*."""
    result = await db.execute(
        select(Like.content_id, func.count())
        .where(Like.content_type == ContentType(content_type).value)
        .group_by(Like.content_id)
    )
    return {content_id: count for content_id, count in result.all()}


async def count_by_type(db: AsyncSession) -> dict[str, int]:
    """Ledger totals per content type (types with no likes report 0)."""
    result = await db.execute(select(Like.content_type, func.count()).group_by(Like.content_type))
    totals = {ct.value: 0 for ct in ContentType}
    totals.update({content_type: count for content_type, count in result.all()})
    return totals


# ---------------------------------------------------------------------------
# Bulk removals used by cascades
# ---------------------------------------------------------------------------

async def remove_all_for_content(db: AsyncSession, content_id: int, content_type: ContentType) -> int:
    return await remove_all_for_contents(db, [content_id], content_type)


async def remove_all_for_contents(
    db: AsyncSession, content_ids: Iterable[int], content_type: ContentType
) -> int:
    """Delete every like on the given items; returns the number of rows removed."""
    ids = list(content_ids)
    if not ids:
        return 0
    result = await db.execute(
        delete(Like)
        .where(Like.content_type == ContentType(content_type).value, Like.content_id.in_(ids))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def take_batch_by_user(db: AsyncSession, user_id: int, limit: int) -> list[tuple[int, str, int]]:
    """Return up to *limit* ``(like_id, content_type, content_id)`` rows authored by *user_id*."""
    result = await db.execute(
        select(Like.id, Like.content_type, Like.content_id)
        .where(Like.user_id == user_id)
        .order_by(Like.id)
        .limit(limit)
    )
    return [tuple(row) for row in result.all()]


async def delete_by_ids(db: AsyncSession, like_ids: list[int]) -> int:
    if not like_ids:
        return 0
    result = await db.execute(
        delete(Like).where(Like.id.in_(like_ids)).execution_options(synchronize_session=False)
    )
    return result.rowcount


def group_targets(rows: Iterable[tuple[int, str, int]]) -> dict[tuple[str, int], int]:
    """Collapse ``(like_id, content_type, content_id)`` rows into per-item removal counts."""
    return dict(Counter((content_type, content_id) for _, content_type, content_id in rows))


# ---------------------------------------------------------------------------
# Referential checks used by the auditor
# ---------------------------------------------------------------------------

async def find_orphaned(db: AsyncSession) -> list[Like]:
    """Likes whose ``user_id`` no longer resolves to a user row."""
    result = await db.execute(
        select(Like)
        .outerjoin(User, User.id == Like.user_id)
        .where(User.id.is_(None))
        .order_by(Like.id)
    )
    return list(result.scalars().all())


async def find_dangling(db: AsyncSession) -> list[Like]:
    """Likes whose target content row no longer exists."""
    dangling: list[Like] = []
    for content_type, model in (
        (ContentType.ARTICLE, Article),
        (ContentType.REVIEW, Review),
        (ContentType.COMMENT, Comment),
    ):
        result = await db.execute(
            select(Like)
            .outerjoin(model, model.id == Like.content_id)
            .where(Like.content_type == content_type.value, model.id.is_(None))
            .order_by(Like.id)
        )
        dangling.extend(result.scalars().all())
    return dangling
