"""
Cascade service — deleting users, content and comments without leaving
dangling likes, broken counters or broken reply chains.

User deletion is a declared sequence of steps executed in dependency order
(likes -> comments -> content -> user).  Each step commits on its own and
is idempotent: rows that are already gone are skipped, so when a step fails
``CascadeInterrupted`` reports where it stopped and re-issuing the same
deletion finishes the remaining steps.

Comment removal follows a two-state machine::

    active ──(no replies)──> hard-deleted
    active ──(replies)─────> soft-deleted ──(force / last reply gone)──> hard-deleted

The reply count is read once, inside ``apply_removal_protocol``; callers
never decide hard versus soft themselves.
"""
import enum
import logging
from typing import NamedTuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.config import settings
from app.exceptions import CascadeInterrupted, Forbidden, InvalidState, NotFound
from app.models import Comment, ContentType, User
from app.schemas import CommentDeletionResult, ContentDeletionTally, UserDeletionTally
from app.services import content_registry, like_ledger

logger = logging.getLogger(__name__)


class RemovalOutcome(str, enum.Enum):
    HARD_DELETED = "hard-deleted"
    SOFT_DELETED = "soft-deleted"


class _CommentState(NamedTuple):
    id: int
    author_id: int | None
    parent_id: int | None
    is_deleted: bool


def removal_transition(has_replies: bool) -> RemovalOutcome:
    """The only guard of the removal state machine: replies keep the row."""
    return RemovalOutcome.SOFT_DELETED if has_replies else RemovalOutcome.HARD_DELETED


def can_moderate(requester: User, author_id: int | None) -> bool:
    return requester.is_admin or requester.id == author_id


async def _comment_state(db: AsyncSession, comment_id: int) -> _CommentState | None:
    result = await db.execute(
        select(Comment.id, Comment.author_id, Comment.parent_id, Comment.is_deleted).where(
            Comment.id == comment_id
        )
    )
    row = result.one_or_none()
    return _CommentState(*row) if row is not None else None


async def _soft_delete(db: AsyncSession, comment_id: int) -> None:
    await db.execute(
        update(Comment)
        .where(Comment.id == comment_id)
        .values(content="", is_deleted=True, like_count=0)
        .execution_options(synchronize_session=False)
    )


async def _collapse_ancestors(db: AsyncSession, parent_id: int | None) -> list[int]:
    """
    Hard-delete soft-deleted ancestors that no longer have any reply.

    Walks up from *parent_id* and stops at the first active comment or the
    first ancestor that still has replies.
    """
    collapsed: list[int] = []
    while parent_id is not None:
        parent = await _comment_state(db, parent_id)
        if parent is None or not parent.is_deleted:
            break
        if await content_registry.count_replies(db, parent.id) > 0:
            break
        await like_ledger.remove_all_for_content(db, parent.id, ContentType.COMMENT)
        await content_registry.delete(db, ContentType.COMMENT, parent.id)
        collapsed.append(parent.id)
        parent_id = parent.parent_id
    if collapsed:
        logger.info("Collapsed soft-deleted ancestor comment(s) %s", collapsed)
    return collapsed


async def apply_removal_protocol(
    db: AsyncSession, comment_id: int
) -> tuple[RemovalOutcome, list[int]]:
    """
    Remove a comment whose likes the caller has already deleted.

    Returns the outcome and the ids of soft-deleted ancestors that were
    hard-deleted as a consequence.
    """
    state = await _comment_state(db, comment_id)
    if state is None:
        raise NotFound(f"comment {comment_id} not found")

    has_replies = await content_registry.count_replies(db, comment_id) > 0
    outcome = removal_transition(has_replies)
    if outcome is RemovalOutcome.SOFT_DELETED:
        await _soft_delete(db, comment_id)
        logger.info("Comment %s soft-deleted (replies kept)", comment_id)
        return outcome, []

    await content_registry.delete(db, ContentType.COMMENT, comment_id)
    logger.info("Comment %s hard-deleted", comment_id)
    return outcome, await _collapse_ancestors(db, state.parent_id)


# ---------------------------------------------------------------------------
# Comment entry points
# ---------------------------------------------------------------------------

async def delete_comment(db: AsyncSession, comment_id: int, requester: User) -> CommentDeletionResult:
    """
    Delete a comment on behalf of *requester* (its author or an admin).

    Authorization is checked before anything is written.
    """
    state = await _comment_state(db, comment_id)
    if state is None:
        raise NotFound(f"comment {comment_id} not found")
    if not can_moderate(requester, state.author_id):
        raise Forbidden("Not allowed to delete this comment")

    likes_removed = await like_ledger.remove_all_for_content(db, comment_id, ContentType.COMMENT)
    outcome, collapsed = await apply_removal_protocol(db, comment_id)
    return CommentDeletionResult(
        hard_deleted=outcome is RemovalOutcome.HARD_DELETED,
        likes_removed=likes_removed,
        collapsed_ids=collapsed,
    )


async def force_delete_comment(
    db: AsyncSession, comment_id: int, requester: User
) -> CommentDeletionResult:
    """
    Hard-delete a comment that is already soft-deleted.

    Replies that still point at it are re-attached to its own parent (or
    become top-level) in the same transaction, so no reply is left with a
    parent that does not exist.
    """
    state = await _comment_state(db, comment_id)
    if state is None:
        raise NotFound(f"comment {comment_id} not found")
    if not can_moderate(requester, state.author_id):
        raise Forbidden("Not allowed to delete this comment")
    if not state.is_deleted:
        raise InvalidState("Comment is not soft-deleted", comment_id=comment_id)

    likes_removed = await like_ledger.remove_all_for_content(db, comment_id, ContentType.COMMENT)

    reparented = await db.execute(
        update(Comment)
        .where(Comment.parent_id == comment_id)
        .values(parent_id=state.parent_id)
        .execution_options(synchronize_session=False)
    )
    if reparented.rowcount:
        logger.info(
            "Re-attached %d repl(ies) of comment %s to parent %s",
            reparented.rowcount, comment_id, state.parent_id,
        )

    await content_registry.delete(db, ContentType.COMMENT, comment_id)
    logger.info("Comment %s force-deleted by user %s", comment_id, requester.id)
    collapsed = await _collapse_ancestors(db, state.parent_id)
    return CommentDeletionResult(
        hard_deleted=True, likes_removed=likes_removed, collapsed_ids=collapsed
    )


# ---------------------------------------------------------------------------
# Article / review removal
# ---------------------------------------------------------------------------

async def _remove_content_graph(
    db: AsyncSession, content_type: ContentType, content_id: int
) -> tuple[bool, ContentDeletionTally]:
    """
    Remove an article or review with its comment thread and every like on
    either.  Returns whether the item row was still present.
    """
    tally = ContentDeletionTally()
    thread_column = Comment.article_id if content_type is ContentType.ARTICLE else Comment.review_id

    result = await db.execute(select(Comment.id).where(thread_column == content_id))
    comment_ids = list(result.scalars().all())

    batch = settings.CASCADE_BATCH_SIZE
    for start in range(0, len(comment_ids), batch):
        chunk = comment_ids[start:start + batch]
        tally.likes_removed += await like_ledger.remove_all_for_contents(
            db, chunk, ContentType.COMMENT
        )
    if comment_ids:
        removed = await db.execute(
            delete(Comment)
            .where(thread_column == content_id)
            .execution_options(synchronize_session=False)
        )
        tally.comments_removed = removed.rowcount

    tally.likes_removed += await like_ledger.remove_all_for_content(db, content_id, content_type)
    existed = await content_registry.delete(db, content_type, content_id)
    await cache.invalidate_content(content_type, content_id)
    return existed, tally


async def delete_content(
    db: AsyncSession, content_type: ContentType, content_id: int
) -> ContentDeletionTally:
    """Delete an article or review outright (there is no soft-delete for them)."""
    content_type = ContentType(content_type)
    if content_type is ContentType.COMMENT:
        raise InvalidState("Comments are removed through the comment removal protocol")
    if not await content_registry.exists(db, content_type, content_id):
        raise NotFound(f"{content_type.value} {content_id} not found")

    _, tally = await _remove_content_graph(db, content_type, content_id)
    logger.info(
        "Deleted %s %s with %d comment(s) and %d like(s)",
        content_type.value, content_id, tally.comments_removed, tally.likes_removed,
    )
    return tally


# ---------------------------------------------------------------------------
# User removal
# ---------------------------------------------------------------------------

async def _step_own_likes(db: AsyncSession, user: User, tally: UserDeletionTally) -> None:
    """Remove the user's likes batch by batch, decrementing each target once per like."""
    while True:
        rows = await like_ledger.take_batch_by_user(db, user.id, settings.CASCADE_BATCH_SIZE)
        if not rows:
            break
        removed = await like_ledger.delete_by_ids(db, [like_id for like_id, _, _ in rows])
        targets = like_ledger.group_targets(rows)
        await content_registry.decrement_counters(db, targets)
        await db.commit()
        tally.likes_removed += removed
        for content_type, content_id in targets:
            await cache.invalidate_content(content_type, content_id)


async def _remove_authored(
    db: AsyncSession, user: User, tally: UserDeletionTally, content_type: ContentType, field: str
) -> None:
    for item in await content_registry.find_by_author(db, content_type, user.id):
        existed, removed = await _remove_content_graph(db, content_type, item.id)
        await db.commit()
        if existed:
            setattr(tally, field, getattr(tally, field) + 1)
        tally.likes_removed += removed.likes_removed
        tally.thread_comments_removed += removed.comments_removed


async def _step_articles(db: AsyncSession, user: User, tally: UserDeletionTally) -> None:
    await _remove_authored(db, user, tally, ContentType.ARTICLE, "articles_removed")


async def _step_reviews(db: AsyncSession, user: User, tally: UserDeletionTally) -> None:
    await _remove_authored(db, user, tally, ContentType.REVIEW, "reviews_removed")


async def _step_comments(db: AsyncSession, user: User, tally: UserDeletionTally) -> None:
    """
    Apply the removal protocol to each of the user's comments, newest first,
    so replies are handled before the comments they answer.
    """
    result = await db.execute(
        select(Comment.id)
        .where(Comment.author_id == user.id)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
    )
    own_ids = result.scalars().all()
    own = set(own_ids)
    for comment_id in own_ids:
        if await _comment_state(db, comment_id) is None:
            # Collapsed together with an earlier reply.
            continue
        tally.likes_removed += await like_ledger.remove_all_for_content(
            db, comment_id, ContentType.COMMENT
        )
        outcome, collapsed = await apply_removal_protocol(db, comment_id)
        await db.commit()
        if outcome is RemovalOutcome.HARD_DELETED:
            others = sum(1 for cid in collapsed if cid not in own)
            tally.comments_hard_deleted += 1 + len(collapsed) - others
            tally.placeholders_collapsed += others
        else:
            tally.comments_soft_deleted += 1


async def _step_user_row(db: AsyncSession, user: User, tally: UserDeletionTally) -> None:
    # Soft-deleted placeholders outlive their author.
    detached = await db.execute(
        update(Comment)
        .where(Comment.author_id == user.id)
        .values(author_id=None)
        .execution_options(synchronize_session=False)
    )
    if detached.rowcount:
        logger.info(
            "Detached %d soft-deleted placeholder comment(s) from user %s",
            detached.rowcount, user.id,
        )
    await db.execute(
        delete(User).where(User.id == user.id).execution_options(synchronize_session=False)
    )
    await db.commit()


# Executed in order; each entry is (step name, coroutine).
USER_CASCADE = (
    ("likes", _step_own_likes),
    ("comments", _step_comments),
    ("articles", _step_articles),
    ("reviews", _step_reviews),
    ("user", _step_user_row),
)


async def delete_user(db: AsyncSession, user_id: int) -> UserDeletionTally:
    """
    Delete a user and everything that depends on it.

    Used both for admin-initiated deletion and for closing one's own
    account.  Returns a tally of what was removed.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound(f"user {user_id} not found")
    if user.is_admin:
        logger.warning("Deleting admin account %s (%s); its privileges are lost", user.id, user.email)

    tally = UserDeletionTally()
    logger.info("Starting deletion of user %s (%s)", user.id, user.email)
    for name, step in USER_CASCADE:
        try:
            await step(db, user, tally)
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("User %s deletion stopped at step %r", user_id, name)
            raise CascadeInterrupted(
                f"User deletion stopped at step {name!r}; retry to finish",
                step=name,
                tally=tally.model_dump(),
            ) from exc

    logger.info("Deleted user %s: %s", user_id, tally.model_dump())
    return tally
