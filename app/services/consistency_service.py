"""
Consistency service — auditing and repairing the like counters.

The ledger (``likes`` table) is the truth; ``like_count`` on articles,
reviews and comments is a cache of it.  ``audit_consistency`` only reads
and reports; ``resync_counters`` rewrites divergent counters with the
ledger count using a compare-and-swap UPDATE, so a toggle that lands
between the audit read and the write is never overwritten (the row is
skipped and picked up by the next cycle).
"""
import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.cache import cache
from app.models import Article, Comment, ContentType, Review
from app.schemas import (
    AuditReport,
    AuditSummary,
    Divergence,
    Irreconcilable,
    LikeRef,
    OrphanCleanupReport,
    ResyncReport,
    TypeTotals,
)
from app.services import content_registry, like_ledger

logger = logging.getLogger(__name__)

# Field names on TypeTotals / ResyncReport for each content type.
_PLURAL = {
    ContentType.ARTICLE: "articles",
    ContentType.REVIEW: "reviews",
    ContentType.COMMENT: "comments",
}


def _scope(content_types: Iterable[ContentType] | None) -> list[ContentType]:
    if not content_types:
        return list(ContentType)
    return [ContentType(ct) for ct in content_types]


def _like_ref(like) -> LikeRef:
    return LikeRef(
        id=like.id,
        user_id=like.user_id,
        content_type=like.content_type,
        content_id=like.content_id,
        liked_at=like.created_at,
    )


async def _divergences(
    db: AsyncSession, content_type: ContentType
) -> tuple[list[Divergence], int]:
    """Return the divergent items of one type and the sum of their stored counters."""
    real_counts = await like_ledger.counts_by_content(db, content_type)
    snapshot = await content_registry.counter_snapshot(db, content_type)

    divergent = []
    stored_sum = 0
    for content_id, stored in snapshot:
        stored_sum += stored
        real = real_counts.get(content_id, 0)
        if real != stored:
            divergent.append(
                Divergence(
                    id=content_id,
                    content_type=content_type.value,
                    real=real,
                    stored=stored,
                    delta=real - stored,
                )
            )
    return divergent, stored_sum


async def _broken_comments(db: AsyncSession) -> list[Irreconcilable]:
    """Comments whose article, review or parent row no longer exists."""
    broken: list[Irreconcilable] = []
    parent = aliased(Comment)
    checks = (
        (Article, Comment.article_id, "article no longer exists"),
        (Review, Comment.review_id, "review no longer exists"),
        (parent, Comment.parent_id, "parent comment no longer exists"),
    )
    for target, column, reason in checks:
        result = await db.execute(
            select(Comment.id)
            .outerjoin(target, target.id == column)
            .where(column.is_not(None), target.id.is_(None))
            .order_by(Comment.id)
        )
        broken.extend(
            Irreconcilable(id=comment_id, content_type=ContentType.COMMENT.value, reason=reason)
            for comment_id in result.scalars().all()
        )
    return broken


async def audit_consistency(
    db: AsyncSession, content_types: Iterable[ContentType] | None = None
) -> AuditReport:
    """
    Compare every stored counter in scope with the ledger.

    Never mutates state and never fails on divergence: an empty
    ``divergences`` list is the normal "all good" report.
    """
    scope = _scope(content_types)
    ledger_totals = await like_ledger.count_by_type(db)

    divergences: list[Divergence] = []
    irreconcilable: list[Irreconcilable] = []
    real = TypeTotals()
    stored = TypeTotals()

    for content_type in scope:
        divergent, stored_sum = await _divergences(db, content_type)
        divergences.extend(divergent)
        field = _PLURAL[content_type]
        setattr(real, field, ledger_totals[content_type.value])
        setattr(stored, field, stored_sum)
        irreconcilable.extend(
            Irreconcilable(id=d.id, content_type=d.content_type, reason="negative stored counter")
            for d in divergent
            if d.stored < 0
        )

    real.total = real.articles + real.reviews + real.comments
    stored.total = stored.articles + stored.reviews + stored.comments

    if ContentType.COMMENT in scope:
        irreconcilable.extend(await _broken_comments(db))

    scoped_values = {ct.value for ct in scope}
    orphaned = [
        _like_ref(like)
        for like in await like_ledger.find_orphaned(db)
        if like.content_type in scoped_values
    ]
    dangling = [
        _like_ref(like)
        for like in await like_ledger.find_dangling(db)
        if like.content_type in scoped_values
    ]

    for item in irreconcilable:
        logger.warning(
            "Irreconcilable %s %s: %s", item.content_type, item.id, item.reason
        )

    summary = AuditSummary(
        is_consistent=not divergences,
        needs_sync=bool(divergences),
        has_orphans=bool(orphaned),
        total_divergent=len(divergences),
    )
    logger.info(
        "Audit finished: %d divergent, %d orphaned, %d dangling, %d irreconcilable",
        len(divergences), len(orphaned), len(dangling), len(irreconcilable),
    )
    return AuditReport(
        real_counts=real,
        stored_counts=stored,
        divergences=divergences,
        orphaned_likes=orphaned,
        dangling_likes=dangling,
        irreconcilable=irreconcilable,
        summary=summary,
    )


async def resync_counters(
    db: AsyncSession, content_types: Iterable[ContentType] | None = None
) -> ResyncReport:
    """
    Overwrite every divergent counter with its ledger count.

    Running it twice with no writes in between fixes nothing the second
    time.  Counters that changed after they were read are left alone and
    counted in ``skipped``.
    """
    report = ResyncReport()
    for content_type in _scope(content_types):
        divergent, _ = await _divergences(db, content_type)
        field = f"{_PLURAL[content_type]}_fixed"
        for item in divergent:
            swapped = await content_registry.set_counter_if(
                db, content_type, item.id, expected=item.stored, value=item.real
            )
            if not swapped:
                report.skipped += 1
                logger.info(
                    "Resync skipped %s %s: counter moved since it was read",
                    content_type.value, item.id,
                )
                continue
            setattr(report, field, getattr(report, field) + 1)
            logger.info(
                "Resync %s %s: %d -> %d", content_type.value, item.id, item.stored, item.real
            )
            await cache.invalidate_content(content_type, item.id)

    report.total = report.articles_fixed + report.reviews_fixed + report.comments_fixed
    logger.info("Resync finished: %d counter(s) fixed, %d skipped", report.total, report.skipped)
    return report


async def cleanup_orphaned_likes(db: AsyncSession) -> OrphanCleanupReport:
    """Delete likes whose user no longer exists and take them off their targets' counters."""
    orphaned = await like_ledger.find_orphaned(db)
    if not orphaned:
        return OrphanCleanupReport(cleaned=0, details=[])

    rows = [(like.id, like.content_type, like.content_id) for like in orphaned]
    cleaned = await like_ledger.delete_by_ids(db, [like_id for like_id, _, _ in rows])
    targets = like_ledger.group_targets(rows)
    await content_registry.decrement_counters(db, targets)
    for content_type, content_id in targets:
        await cache.invalidate_content(content_type, content_id)

    logger.info("Removed %d orphaned like(s) across %d item(s)", cleaned, len(targets))
    return OrphanCleanupReport(cleaned=cleaned, details=[_like_ref(like) for like in orphaned])
