"""
Comment service — creating comments and reading comment threads.

A comment hangs off exactly one article or review and may answer another
comment on the same item.  Removal lives in ``cascade_service`` because it
is a state machine with side effects on likes and ancestors.
"""
import math

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import InvalidState, NotFound
from app.models import Comment, ContentType, Like, User
from app.schemas import CommentCreate, CommentResponse, PaginatedResponse
from app.services import content_registry


def _comment_to_dict(comment: Comment, viewer: User | None, liked_ids: set[int]) -> dict:
    data = CommentResponse.model_validate(comment).model_dump(mode="json")
    data["is_liked"] = comment.id in liked_ids
    data["can_delete"] = viewer is not None and (
        viewer.is_admin or viewer.id == comment.author_id
    )
    return data


async def create_comment(db: AsyncSession, data: CommentCreate, author_id: int) -> dict:
    """
    Add a comment or a reply.

    Raises ``NotFound`` when the article/review or the parent comment is
    missing and ``InvalidState`` when the parent sits on a different item.
    """
    if data.article_id is not None:
        target_type, target_id, target_column = ContentType.ARTICLE, data.article_id, "article_id"
    else:
        target_type, target_id, target_column = ContentType.REVIEW, data.review_id, "review_id"
    if not await content_registry.exists(db, target_type, target_id):
        raise NotFound(f"{target_type.value} {target_id} not found")

    if data.parent_id is not None:
        parent = await content_registry.get(db, ContentType.COMMENT, data.parent_id)
        if parent is None:
            raise NotFound(f"parent comment {data.parent_id} not found")
        if getattr(parent, target_column) != target_id:
            raise InvalidState("Parent comment belongs to a different item")

    comment = Comment(
        content=data.content.strip(),
        author_id=author_id,
        article_id=data.article_id,
        review_id=data.review_id,
        parent_id=data.parent_id,
        like_count=0,
        is_deleted=False,
    )
    db.add(comment)
    await db.flush()
    await db.refresh(comment)

    data = CommentResponse.model_validate(comment).model_dump(mode="json")
    data["can_delete"] = True
    return data


async def list_comments(
    db: AsyncSession,
    content_type: ContentType,
    content_id: int,
    viewer: User | None = None,
    page: int = 1,
    page_size: int = 5,
    sort_by: str = "recent",
) -> PaginatedResponse:
    """
    Return one page of every comment (top-level and replies) on an item.

    ``sort_by="likes"`` orders by the stored counter, otherwise newest
    first.  Soft-deleted placeholders are included so clients can render
    the thread shape.
    """
    content_type = ContentType(content_type)
    if content_type is ContentType.COMMENT:
        raise InvalidState("Comments are listed per article or review")
    await content_registry.get_or_404(db, content_type, content_id)

    column = Comment.article_id if content_type is ContentType.ARTICLE else Comment.review_id
    total = (
        await db.execute(select(func.count()).select_from(Comment).where(column == content_id))
    ).scalar_one()

    if sort_by == "likes":
        ordering = (Comment.like_count.desc(), Comment.created_at.desc(), Comment.id.desc())
    else:
        ordering = (Comment.created_at.desc(), Comment.id.desc())
    result = await db.execute(
        select(Comment)
        .where(column == content_id)
        .order_by(*ordering)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    comments = result.scalars().all()

    liked_ids: set[int] = set()
    if viewer is not None and comments:
        liked = await db.execute(
            select(Like.content_id).where(
                Like.user_id == viewer.id,
                Like.content_type == ContentType.COMMENT.value,
                Like.content_id.in_([c.id for c in comments]),
            )
        )
        liked_ids = set(liked.scalars().all())

    return PaginatedResponse(
        items=[_comment_to_dict(c, viewer, liked_ids) for c in comments],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )
