"""
Like ledger tests — uniqueness, removal, exact counts and listing order,
exercised directly against the service module.
"""
import asyncio
import os

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.database import Base
from app.exceptions import DuplicateLike, NotFound
from app.models import Article, ContentType, User
from app.services import like_ledger


@pytest.mark.asyncio
async def test_record_like_returns_fact(db_session: AsyncSession, seed):
    user = await seed.user()
    article = await seed.article(user)

    like = await like_ledger.record_like(db_session, user.id, article.id, ContentType.ARTICLE)
    await db_session.commit()

    assert like.id is not None
    assert like.user_id == user.id
    assert like.content_type == "article"
    assert await like_ledger.count_for(db_session, article.id, ContentType.ARTICLE) == 1


@pytest.mark.asyncio
async def test_duplicate_like_is_rejected(db_session: AsyncSession, seed):
    """A second insert for the same triple fails and leaves exactly one row."""
    user = await seed.user()
    article = await seed.article(user)
    await like_ledger.record_like(db_session, user.id, article.id, ContentType.ARTICLE)

    with pytest.raises(DuplicateLike):
        await like_ledger.record_like(db_session, user.id, article.id, ContentType.ARTICLE)
    await db_session.commit()

    assert await like_ledger.count_for(db_session, article.id, ContentType.ARTICLE) == 1


@pytest.mark.asyncio
async def test_same_id_different_type_is_a_different_like(db_session: AsyncSession, seed):
    user = await seed.user()
    article = await seed.article(user)
    review = await seed.review(user)
    assert article.id == review.id == 1

    await like_ledger.record_like(db_session, user.id, 1, ContentType.ARTICLE)
    await like_ledger.record_like(db_session, user.id, 1, ContentType.REVIEW)
    await db_session.commit()

    assert await like_ledger.count_for(db_session, 1, ContentType.ARTICLE) == 1
    assert await like_ledger.count_for(db_session, 1, ContentType.REVIEW) == 1


@pytest.mark.asyncio
async def test_remove_like(db_session: AsyncSession, seed):
    user = await seed.user()
    article = await seed.article(user)
    await like_ledger.record_like(db_session, user.id, article.id, ContentType.ARTICLE)

    removed = await like_ledger.remove_like(db_session, user.id, article.id, ContentType.ARTICLE)
    await db_session.commit()

    assert removed.user_id == user.id
    assert await like_ledger.count_for(db_session, article.id, ContentType.ARTICLE) == 0


@pytest.mark.asyncio
async def test_remove_missing_like_raises_not_found(db_session: AsyncSession, seed):
    user = await seed.user()
    article = await seed.article(user)

    with pytest.raises(NotFound):
        await like_ledger.remove_like(db_session, user.id, article.id, ContentType.ARTICLE)


@pytest.mark.asyncio
async def test_is_liked_by(db_session: AsyncSession, seed):
    liker = await seed.user()
    other = await seed.user()
    article = await seed.article(liker)
    await seed.like(liker, ContentType.ARTICLE, article)

    assert await like_ledger.is_liked_by(db_session, liker.id, article.id, ContentType.ARTICLE)
    assert not await like_ledger.is_liked_by(db_session, other.id, article.id, ContentType.ARTICLE)
    assert not await like_ledger.is_liked_by(db_session, None, article.id, ContentType.ARTICLE)


@pytest.mark.asyncio
async def test_list_for_is_newest_first_with_users(db_session: AsyncSession, seed):
    author = await seed.user("author")
    first = await seed.user("first")
    second = await seed.user("second")
    article = await seed.article(author)
    await seed.like(first, ContentType.ARTICLE, article)
    await seed.like(second, ContentType.ARTICLE, article)

    likes = await like_ledger.list_for(db_session, article.id, ContentType.ARTICLE)

    assert [like.user.username for like in likes] == ["second", "first"]


@pytest.mark.asyncio
async def test_bulk_removal_is_idempotent(db_session: AsyncSession, seed):
    author = await seed.user()
    article = await seed.article(author)
    for _ in range(3):
        await seed.like(await seed.user(), ContentType.ARTICLE, article)

    assert await like_ledger.remove_all_for_content(db_session, article.id, ContentType.ARTICLE) == 3
    assert await like_ledger.remove_all_for_content(db_session, article.id, ContentType.ARTICLE) == 0


def test_group_targets_counts_per_item():
    rows = [(1, "article", 10), (2, "article", 10), (3, "comment", 10)]
    assert like_ledger.group_targets(rows) == {("article", 10): 2, ("comment", 10): 1}


# ---------------------------------------------------------------------------
# Racing likes from separate sessions
# ---------------------------------------------------------------------------

# Postgres URL (postgresql+asyncpg://...) for the true concurrent race; unset skips it.
RACE_DATABASE_URL = os.environ.get("LEDGER_TEST_DATABASE_URL")


async def _ledger_database(url: str):
    """Fresh schema on *url* with one user and one article; returns (engine, factory, user_id, article_id)."""
    engine = create_async_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        user = User(username="racer", email="racer@example.com")
        session.add(user)
        await session.flush()
        article = Article(title="Raced", slug="raced", content="Body", author_id=user.id)
        session.add(article)
        await session.commit()
        return engine, factory, user.id, article.id


async def _drop(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.mark.asyncio
async def test_interleaved_sessions_record_one_like(tmp_path):
    """
    Two sessions that both saw "not liked yet" race to insert: the loser
    gets DuplicateLike and the ledger keeps a single row.
    """
    engine, factory, user_id, article_id = await _ledger_database(
        f"sqlite+aiosqlite:///{tmp_path / 'likes.db'}"
    )
    try:
        async with factory() as first, factory() as second:
            assert await like_ledger.find_like(first, user_id, article_id, ContentType.ARTICLE) is None
            assert await like_ledger.find_like(second, user_id, article_id, ContentType.ARTICLE) is None

            await like_ledger.record_like(first, user_id, article_id, ContentType.ARTICLE)
            await first.commit()

            with pytest.raises(DuplicateLike):
                await like_ledger.record_like(second, user_id, article_id, ContentType.ARTICLE)
            await second.rollback()

        async with factory() as session:
            assert await like_ledger.count_for(session, article_id, ContentType.ARTICLE) == 1
    finally:
        await _drop(engine)


@pytest.mark.asyncio
@pytest.mark.skipif(RACE_DATABASE_URL is None, reason="LEDGER_TEST_DATABASE_URL not set")
async def test_concurrent_likes_record_one_row():
    """Simultaneous inserts for one triple: exactly one commits, the other is DuplicateLike."""
    engine, factory, user_id, article_id = await _ledger_database(RACE_DATABASE_URL)

    async def like_once():
        async with factory() as session:
            await like_ledger.record_like(session, user_id, article_id, ContentType.ARTICLE)
            await session.commit()

    try:
        results = await asyncio.gather(like_once(), like_once(), return_exceptions=True)

        assert sum(isinstance(r, DuplicateLike) for r in results) == 1
        assert sum(r is None for r in results) == 1
        async with factory() as session:
            assert await like_ledger.count_for(session, article_id, ContentType.ARTICLE) == 1
    finally:
        await _drop(engine)
