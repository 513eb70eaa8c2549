"""
Comment endpoint tests — covers posting comments and replies, target
validation, and the per-viewer flags on thread listings.

Removal is covered in test_cascade.py.
"""
import pytest
from httpx import AsyncClient

from app.models import ContentType


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_comment(async_client: AsyncClient, seed, headers):
    """Posting a comment returns 201 with the correct fields."""
    user = await seed.user()
    article = await seed.article(user)

    resp = await async_client.post(
        "/api/v1/comments",
        json={"content": "  Great article!  ", "article_id": article.id},
        headers=headers(user),
    )
    assert resp.status_code == 201
    comment = resp.json()
    assert comment["content"] == "Great article!"
    assert comment["author_id"] == user.id
    assert comment["article_id"] == article.id
    assert comment["review_id"] is None
    assert comment["like_count"] == 0
    assert comment["is_deleted"] is False
    assert comment["can_delete"] is True


@pytest.mark.asyncio
async def test_add_reply_on_review(async_client: AsyncClient, seed, headers):
    user = await seed.user()
    review = await seed.review(user)
    parent = await seed.comment(user, review=review)

    resp = await async_client.post(
        "/api/v1/comments",
        json={"content": "Agreed", "review_id": review.id, "parent_id": parent.id},
        headers=headers(user),
    )
    assert resp.status_code == 201
    assert resp.json()["parent_id"] == parent.id


@pytest.mark.asyncio
async def test_reply_to_comment_on_other_item(async_client: AsyncClient, seed, headers):
    """A reply must sit on the same article as its parent."""
    user = await seed.user()
    first = await seed.article(user)
    second = await seed.article(user)
    parent = await seed.comment(user, article=first)

    resp = await async_client.post(
        "/api/v1/comments",
        json={"content": "Wrong thread", "article_id": second.id, "parent_id": parent.id},
        headers=headers(user),
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidState"


@pytest.mark.asyncio
async def test_reply_to_missing_parent(async_client: AsyncClient, seed, headers):
    user = await seed.user()
    article = await seed.article(user)

    resp = await async_client.post(
        "/api/v1/comments",
        json={"content": "Hello?", "article_id": article.id, "parent_id": 999},
        headers=headers(user),
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_comment_on_missing_article(async_client: AsyncClient, seed, headers):
    user = await seed.user()
    resp = await async_client.post(
        "/api/v1/comments",
        json={"content": "Anyone?", "article_id": 999},
        headers=headers(user),
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFound"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_comment_requires_exactly_one_target(async_client: AsyncClient, seed, headers):
    user = await seed.user()
    article = await seed.article(user)
    review = await seed.review(user)

    resp = await async_client.post(
        "/api/v1/comments", json={"content": "Nowhere"}, headers=headers(user)
    )
    assert resp.status_code == 422

    resp = await async_client.post(
        "/api/v1/comments",
        json={"content": "Everywhere", "article_id": article.id, "review_id": review.id},
        headers=headers(user),
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_comment_content_bounds(async_client: AsyncClient, seed, headers):
    user = await seed.user()
    article = await seed.article(user)

    resp = await async_client.post(
        "/api/v1/comments", json={"content": "", "article_id": article.id}, headers=headers(user)
    )
    assert resp.status_code == 422

    resp = await async_client.post(
        "/api/v1/comments",
        json={"content": "x" * 1001, "article_id": article.id},
        headers=headers(user),
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_comment_requires_identity(async_client: AsyncClient, seed):
    user = await seed.user()
    article = await seed.article(user)
    resp = await async_client.post(
        "/api/v1/comments", json={"content": "Anonymous", "article_id": article.id}
    )
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_comments_viewer_flags(async_client: AsyncClient, seed, headers):
    author = await seed.user()
    viewer = await seed.user()
    article = await seed.article(author)
    own = await seed.comment(viewer, article=article, content="Mine")
    theirs = await seed.comment(author, article=article, content="Theirs")
    await seed.like(viewer, ContentType.COMMENT, theirs)

    resp = await async_client.get(
        f"/api/v1/comments/article/{article.id}", headers=headers(viewer)
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    items = {item["id"]: item for item in body["items"]}
    assert items[own.id]["can_delete"] is True
    assert items[own.id]["is_liked"] is False
    assert items[theirs.id]["can_delete"] is False
    assert items[theirs.id]["is_liked"] is True
    assert items[theirs.id]["like_count"] == 1


@pytest.mark.asyncio
async def test_list_comments_anonymous_and_sorting(async_client: AsyncClient, seed):
    author = await seed.user()
    review = await seed.review(author)
    favourite = await seed.comment(author, review=review)
    runner_up = await seed.comment(author, review=review)
    await seed.like(await seed.user(), ContentType.COMMENT, favourite)
    await seed.like(await seed.user(), ContentType.COMMENT, favourite)
    await seed.like(await seed.user(), ContentType.COMMENT, runner_up)

    resp = await async_client.get(f"/api/v1/comments/review/{review.id}?sort_by=likes")
    assert resp.status_code == 200
    items = resp.json()["items"]
    assert [item["id"] for item in items] == [favourite.id, runner_up.id]
    assert all(item["can_delete"] is False and item["is_liked"] is False for item in items)


@pytest.mark.asyncio
async def test_list_comments_pagination(async_client: AsyncClient, seed):
    author = await seed.user()
    article = await seed.article(author)
    for i in range(7):
        await seed.comment(author, article=article, content=f"Comment {i}")

    resp = await async_client.get(f"/api/v1/comments/article/{article.id}?page=2&page_size=5")
    body = resp.json()
    assert body["total"] == 7
    assert body["pages"] == 2
    assert len(body["items"]) == 2


@pytest.mark.asyncio
async def test_list_comments_missing_article(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/comments/article/999")
    assert resp.status_code == 404
