"""
Test infrastructure for the Like Ledger API.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped.
- The app's get_db dependency is overridden so every test-time request uses
  the test session factory rather than the production one.
- All tables are created fresh before each test and dropped after.
- The Redis cache is disabled by setting cache._redis = None; the CacheManager
  already handles a None _redis gracefully.
- Service code writes counters with ``synchronize_session=False``, so tests
  read counters and rows back through SQL (``content_registry.read_counter``,
  ``content_registry.get``) rather than through objects already in the
  session.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
from app.cache import cache
from app.middleware import install_query_counter
from app.models import Article, Comment, ContentType, Like, Review, Role, User
from app.services import content_registry, like_ledger

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

class Seeder:
    """Creates rows directly through a session and commits after each one."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def user(self, name: str | None = None, role: Role = Role.VISITOR) -> User:
        name = name or f"user{self._next()}"
        return await self._save(User(username=name, email=f"{name}@example.com", role=role.value))

    async def admin(self, name: str | None = None) -> User:
        return await self.user(name or f"admin{self._next()}", role=Role.ADMIN)

    async def article(self, author: User, title: str | None = None) -> Article:
        n = self._next()
        return await self._save(
            Article(title=title or f"Article {n}", slug=f"article-{n}", content="Body", author_id=author.id)
        )

    async def review(self, author: User, title: str | None = None) -> Review:
        n = self._next()
        return await self._save(
            Review(title=title or f"Review {n}", slug=f"review-{n}", content="Body", rating=7, author_id=author.id)
        )

    async def comment(
        self,
        author: User,
        article: Article | None = None,
        review: Review | None = None,
        parent: Comment | None = None,
        content: str = "A comment",
    ) -> Comment:
        return await self._save(
            Comment(
                content=content,
                author_id=author.id,
                article_id=article.id if article else None,
                review_id=review.id if review else None,
                parent_id=parent.id if parent else None,
            )
        )

    async def like(self, user: User, content_type: ContentType, item) -> None:
        """Record a like and bump the counter, keeping ledger and counter in step."""
        await like_ledger.record_like(self.db, user.id, item.id, content_type)
        await content_registry.increment_counter(self.db, content_type, item.id, 1)
        await self.db.commit()

    async def raw_like(self, user_id: int, content_type: ContentType, content_id: int) -> Like:
        """Insert a ledger row only (no counter change, no referential checks)."""
        return await self._save(
            Like(user_id=user_id, content_id=content_id, content_type=content_type.value)
        )

    async def drift(self, content_type: ContentType, content_id: int, value: int) -> None:
        """Overwrite a stored counter to simulate divergence."""
        model = content_registry.model_for(content_type)
        await self.db.execute(
            update(model)
            .where(model.id == content_id)
            .values(like_count=value)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()


def auth(user: User) -> dict:
    """Identity header forwarded by the auth layer."""
    return {"X-User-Id": str(user.id)}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """Yield a live AsyncSession for tests that call services directly."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def seed(db_session: AsyncSession) -> Seeder:
    return Seeder(db_session)


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """
    Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport,
    with Redis disabled.
    """
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def headers():
    return auth
