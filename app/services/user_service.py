"""
User service — CRUD operations for the User aggregate.

Users are fetched without caching because the list is typically small
and the data changes infrequently.  Deleting a user is not here: it
cascades across every content type and lives in ``cascade_service``.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.exceptions import InvalidState, NotFound
from app.models import Role, User
from app.schemas import ArticleResponse, PromoteUserRequest, UserCreate, UserListResponse, UserResponse

logger = logging.getLogger(__name__)


def _user_to_dict(user: User) -> dict:
    """Serialise a User ORM instance to a plain dict (list view)."""
    return UserResponse.model_validate(user).model_dump(mode="json")


async def get_users(db: AsyncSession) -> list[dict]:
    """Return all users ordered by creation date (newest first)."""
    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    return [_user_to_dict(u) for u in result.scalars().all()]


async def get_users_overview(db: AsyncSession) -> UserListResponse:
    """Admin listing: every user plus a per-role head count."""
    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    users = result.scalars().all()
    admins = sum(1 for u in users if u.is_admin)
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        total=len(users),
        admins=admins,
        visitors=len(users) - admins,
    )


async def get_user(db: AsyncSession, user_id: int) -> dict:
    """
    Return the detail dict for *user_id* including a summary of their
    articles.  ``selectinload`` keeps it to one extra query.
    """
    q = select(User).where(User.id == user_id).options(selectinload(User.articles))
    result = await db.execute(q)
    user = result.unique().scalar_one_or_none()
    if user is None:
        raise NotFound(f"user {user_id} not found")

    data = _user_to_dict(user)
    data["articles"] = [
        ArticleResponse.model_validate(a).model_dump(mode="json", exclude={"content"})
        for a in user.articles
    ]
    return data


async def create_user(db: AsyncSession, data: UserCreate, role: Role = Role.VISITOR) -> dict:
    """
    Create a new user and return its serialised dict.

    Email and username uniqueness is enforced at the database level; the
    router translates integrity errors into 409 responses.
    """
    user = User(username=data.username, email=data.email, role=role.value)
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return _user_to_dict(user)


async def promote_user(db: AsyncSession, data: PromoteUserRequest, promoted_by: User) -> dict:
    """Grant the admin role to a user found by id or email."""
    if data.user_id is not None:
        q = select(User).where(User.id == data.user_id)
    else:
        q = select(User).where(User.email == data.email)
    user = (await db.execute(q)).scalar_one_or_none()
    if user is None:
        raise NotFound("user not found")
    if user.is_admin:
        raise InvalidState("User is already an administrator")

    user.role = Role.ADMIN.value
    await db.flush()
    logger.info("User %s (%s) promoted to admin by %s", user.id, user.email, promoted_by.email)
    return _user_to_dict(user)


async def admin_exists(db: AsyncSession) -> bool:
    result = await db.execute(select(User.id).where(User.role == Role.ADMIN.value).limit(1))
    return result.scalar_one_or_none() is not None

