"""Database seeder for manual like-ledger audit runs."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta
from sqlalchemy import select, update
from app.database import engine, async_session, Base
from app.models import User, Article, Review, Comment, Like, ContentType, Role

GAMES = ["Hades", "Celeste", "Outer Wilds", "Disco Elysium", "Hollow Knight",
         "Stardew Valley", "Slay the Spire", "Return of the Obra Dinn"]
PLATFORMS = ["PC", "PS5", "Switch", "Xbox Series"]


async def seed(small: bool = False, drift: int = 0):
    num_users = 10 if small else 200
    num_items = 20 if small else 2000
    likes_per_user = 5 if small else 40

    print(f"Seeding: {num_users} users, {num_items} articles, {num_items} reviews")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        admin = User(username="admin", email="admin@example.com", role=Role.ADMIN.value)
        session.add(admin)
        users = []
        for i in range(num_users):
            user = User(username=f"user_{i:04d}", email=f"user_{i:04d}@example.com")
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users (+1 admin)")

        for i in range(num_items):
            created = datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365))
            session.add(Article(
                title=f"Article {i}",
                slug=f"article-{i}",
                excerpt=f"Notes on {random.choice(GAMES)}.",
                content=f"This is the full content of article {i}. " * 10,
                created_at=created,
                author_id=admin.id,
            ))
            game = random.choice(GAMES)
            session.add(Review(
                title=f"{game} review {i}",
                slug=f"review-{i}",
                content=f"What we thought of {game}. " * 10,
                rating=random.randint(0, 10),
                game_title=game,
                platform=random.choice(PLATFORMS),
                created_at=created,
                author_id=admin.id,
            ))
        await session.flush()

        article_ids = (await session.execute(select(Article.id))).scalars().all()
        review_ids = (await session.execute(select(Review.id))).scalars().all()

        comment_ids = []
        for article_id in random.sample(article_ids, k=len(article_ids) // 2):
            comment = Comment(
                content="Great read, thanks!",
                author_id=random.choice(users).id,
                article_id=article_id,
            )
            session.add(comment)
            await session.flush()
            comment_ids.append(comment.id)
            session.add(Comment(
                content="Agreed.",
                author_id=random.choice(users).id,
                article_id=article_id,
                parent_id=comment.id,
            ))
        await session.flush()
        print(f"  Created {len(comment_ids)} threads")

        # Likes go in through the ledger; counters are derived from it below.
        targets = (
            [(ContentType.ARTICLE, i) for i in article_ids]
            + [(ContentType.REVIEW, i) for i in review_ids]
            + [(ContentType.COMMENT, i) for i in comment_ids]
        )
        counts: dict[tuple[ContentType, int], int] = {}
        total_likes = 0
        for user in users:
            for content_type, content_id in random.sample(targets, k=min(likes_per_user, len(targets))):
                session.add(Like(user_id=user.id, content_id=content_id, content_type=content_type.value))
                counts[(content_type, content_id)] = counts.get((content_type, content_id), 0) + 1
                total_likes += 1
        await session.flush()

        models = {ContentType.ARTICLE: Article, ContentType.REVIEW: Review, ContentType.COMMENT: Comment}
        for (content_type, content_id), count in counts.items():
            model = models[content_type]
            await session.execute(
                update(model).where(model.id == content_id).values(like_count=count)
            )

        # Knock some counters off the ledger so the audit has something to report.
        drifted = random.sample(list(counts), k=min(drift, len(counts)))
        for content_type, content_id in drifted:
            model = models[content_type]
            await session.execute(
                update(model)
                .where(model.id == content_id)
                .values(like_count=model.like_count + random.randint(1, 3))
            )

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Likes: {total_likes}")
    print(f"  Drifted counters: {len(drifted)}")


def main():
    parser = argparse.ArgumentParser(description="Seed the like ledger database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (20 items per type)")
    parser.add_argument("--drift", type=int, default=0, metavar="N",
                        help="Corrupt N stored counters after seeding")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small, drift=args.drift))


if __name__ == "__main__":
    main()
