"""
Direct service-layer tests — exercises business logic without HTTP overhead.

These tests call service functions directly with a database session, giving
accurate coverage of the SQLAlchemy query paths, cache-aside logic, and
serialisation helpers behind the publication, comment and user endpoints.
"""
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import InvalidState, NotFound
from app.models import ContentType
from app.schemas import (
    ArticleCreate,
    ArticleUpdate,
    CommentCreate,
    PromoteUserRequest,
    ReviewCreate,
    UserCreate,
)
from app.services import comment_service, publication_service, user_service


# ---------------------------------------------------------------------------
# publication_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_publications_empty(db_session: AsyncSession):
    result = await publication_service.list_publications(db_session, ContentType.ARTICLE)
    assert result.total == 0
    assert result.items == []
    assert result.pages == 0


@pytest.mark.asyncio
async def test_create_article_via_service(db_session: AsyncSession, seed):
    admin = await seed.admin()
    data = ArticleCreate(title="Service Test Article", content="Direct service test content")
    result = await publication_service.create_publication(
        db_session, ContentType.ARTICLE, data, admin.id
    )
    assert result["slug"] == "service-test-article"
    assert result["content"] == "Direct service test content"
    assert result["like_count"] == 0
    assert result["author_id"] == admin.id


@pytest.mark.asyncio
async def test_create_review_via_service(db_session: AsyncSession, seed):
    admin = await seed.admin()
    data = ReviewCreate(title="Hollow Knight", rating=9, game_title="Hollow Knight", platform="PC")
    result = await publication_service.create_publication(
        db_session, ContentType.REVIEW, data, admin.id
    )
    assert result["rating"] == 9
    assert result["platform"] == "PC"
    assert result["genre"] is None


@pytest.mark.asyncio
async def test_comments_are_not_publications(db_session: AsyncSession):
    with pytest.raises(InvalidState):
        await publication_service.list_publications(db_session, ContentType.COMMENT)


@pytest.mark.asyncio
async def test_list_publications_sort_and_fallback(db_session: AsyncSession, seed):
    admin = await seed.admin()
    for title in ("Beta", "Alpha", "Gamma"):
        await seed.article(admin, title=title)

    by_title = await publication_service.list_publications(
        db_session, ContentType.ARTICLE, sort_by="title", sort_order="asc"
    )
    assert [item["title"] for item in by_title.items] == ["Alpha", "Beta", "Gamma"]

    # Unknown columns fall back to created_at instead of raising.
    fallback = await publication_service.list_publications(
        db_session, ContentType.ARTICLE, sort_by="password"
    )
    assert fallback.total == 3


@pytest.mark.asyncio
async def test_update_article_via_service(db_session: AsyncSession, seed):
    admin = await seed.admin()
    article = await seed.article(admin, title="Before")
    result = await publication_service.update_publication(
        db_session, ContentType.ARTICLE, article.id, ArticleUpdate(excerpt="Teaser")
    )
    assert result["excerpt"] == "Teaser"
    # Title untouched, so the slug is too.
    assert result["slug"] == article.slug


@pytest.mark.asyncio
async def test_update_nonexistent_publication(db_session: AsyncSession):
    with pytest.raises(NotFound):
        await publication_service.update_publication(
            db_session, ContentType.REVIEW, 404, ArticleUpdate(title="Ghost")
        )


@pytest.mark.asyncio
async def test_get_publication_not_found(db_session: AsyncSession):
    with pytest.raises(NotFound):
        await publication_service.get_publication(db_session, ContentType.ARTICLE, 404)
    with pytest.raises(NotFound):
        await publication_service.get_by_slug(db_session, ContentType.ARTICLE, "missing")


# ---------------------------------------------------------------------------
# comment_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_comment_via_service(db_session: AsyncSession, seed):
    user = await seed.user()
    article = await seed.article(user)
    result = await comment_service.create_comment(
        db_session, CommentCreate(content="Nice", article_id=article.id), user.id
    )
    assert result["content"] == "Nice"
    assert result["parent_id"] is None


@pytest.mark.asyncio
async def test_add_comment_nonexistent_review_service(db_session: AsyncSession, seed):
    user = await seed.user()
    with pytest.raises(NotFound):
        await comment_service.create_comment(
            db_session, CommentCreate(content="Nice", review_id=404), user.id
        )


@pytest.mark.asyncio
async def test_list_comments_includes_placeholders(db_session: AsyncSession, seed):
    user = await seed.user()
    article = await seed.article(user)
    parent = await seed.comment(user, article=article)
    await seed.comment(user, article=article, parent=parent)
    parent.is_deleted = True
    parent.content = ""
    await db_session.commit()

    page = await comment_service.list_comments(db_session, ContentType.ARTICLE, article.id)
    assert page.total == 2
    assert any(item["is_deleted"] for item in page.items)


# ---------------------------------------------------------------------------
# user_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user_via_service(db_session: AsyncSession):
    result = await user_service.create_user(
        db_session, UserCreate(username="svcuser", email="svc@example.com")
    )
    assert result["username"] == "svcuser"
    assert result["role"] == "visitor"
    assert await user_service.admin_exists(db_session) is False


@pytest.mark.asyncio
async def test_get_user_not_found_service(db_session: AsyncSession):
    with pytest.raises(NotFound):
        await user_service.get_user(db_session, 404)


@pytest.mark.asyncio
async def test_promote_user_via_service(db_session: AsyncSession, seed):
    admin = await seed.admin()
    visitor = await seed.user()

    result = await user_service.promote_user(
        db_session, PromoteUserRequest(email=visitor.email), admin
    )
    assert result["role"] == "admin"

    with pytest.raises(InvalidState):
        await user_service.promote_user(db_session, PromoteUserRequest(user_id=visitor.id), admin)


def test_promote_request_needs_identifier():
    with pytest.raises(ValueError):
        PromoteUserRequest()
