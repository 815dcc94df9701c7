"""Quota ledger: per-user daily allowances for rate-limited actions.

Consumption is one conditional UPDATE (``counter = counter - 1 WHERE counter
> 0``) executed inside the caller's transaction, so two concurrent requests
can never both spend the last unit. Replenishment is a paged batch UPDATE
that stamps each row with the day it was granted, making a re-run on the
same day a no-op.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import case, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from snapfeed.config import Settings
from snapfeed.database import transaction
from snapfeed.errors import QuotaExhausted
from snapfeed.middleware.monitoring import record_quota_denied, record_sweep
from snapfeed.models.user import UserLimit
from snapfeed.utils.logger import logger


class QuotaKind(str, Enum):
    CREATE_POST = "create_post"
    COMMENT = "comment"
    LIKE = "like"
    FOLLOW = "follow"


_LEDGER_COLUMNS = {
    QuotaKind.CREATE_POST: UserLimit.create_post_limit,
    QuotaKind.COMMENT: UserLimit.comment_limit,
    QuotaKind.LIKE: UserLimit.like_limit,
    QuotaKind.FOLLOW: UserLimit.follow_limit,
}

_unmapped = set(QuotaKind) - set(_LEDGER_COLUMNS)
if _unmapped:
    raise RuntimeError(f"quota kinds without a ledger column: {sorted(k.value for k in _unmapped)}")


def ledger_column(kind: QuotaKind):
    return _LEDGER_COLUMNS[kind]


@dataclass(frozen=True)
class QuotaAmounts:
    """One integer per quota kind (starting allowance or daily grant)"""

    create_post: int = 0
    comment: int = 0
    like: int = 0
    follow: int = 0

    def for_kind(self, kind: QuotaKind) -> int:
        return getattr(self, kind.value)


@dataclass(frozen=True)
class QuotaGrants:
    daily: QuotaAmounts
    caps: Dict[QuotaKind, Optional[int]] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "QuotaGrants":
        return cls(
            daily=QuotaAmounts(
                create_post=settings.QUOTA_DAILY_CREATE_POST,
                comment=settings.QUOTA_DAILY_COMMENT,
                like=settings.QUOTA_DAILY_LIKE,
                follow=settings.QUOTA_DAILY_FOLLOW,
            ),
            caps={
                QuotaKind.CREATE_POST: settings.QUOTA_CAP_CREATE_POST,
                QuotaKind.COMMENT: settings.QUOTA_CAP_COMMENT,
                QuotaKind.LIKE: settings.QUOTA_CAP_LIKE,
                QuotaKind.FOLLOW: settings.QUOTA_CAP_FOLLOW,
            },
        )


def initial_quota(settings: Settings) -> QuotaAmounts:
    return QuotaAmounts(
        create_post=settings.QUOTA_INITIAL_CREATE_POST,
        comment=settings.QUOTA_INITIAL_COMMENT,
        like=settings.QUOTA_INITIAL_LIKE,
        follow=settings.QUOTA_INITIAL_FOLLOW,
    )


# ---------------------------------------------------------------------------
# Ledger rows and consumption
# ---------------------------------------------------------------------------

def create_ledger(db: Session, user_id: int, initial: QuotaAmounts) -> UserLimit:
    """Add the ledger row for a new user (flushed, not committed)"""
    ledger = UserLimit(
        user_id=user_id,
        create_post_limit=initial.create_post,
        comment_limit=initial.comment,
        like_limit=initial.like,
        follow_limit=initial.follow,
    )
    db.add(ledger)
    db.flush()
    return ledger


def consume(db: Session, user_id: int, kind: QuotaKind) -> None:
    """Spend one unit of ``kind`` for ``user_id``.

    Does not commit: the decrement belongs to the caller's transaction and is
    rolled back with it.

    Raises:
        QuotaExhausted: the counter is already zero (or the user has no ledger row).
    """
    column = ledger_column(kind)
    result = db.execute(
        update(UserLimit)
        .where(UserLimit.user_id == user_id, column > 0)
        .values({column.key: column - 1, "updated_at": datetime.utcnow()})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        record_quota_denied(kind.value)
        logger.info(
            "Quota exhausted",
            extra={"user_id": user_id, "kind": kind.value, "action": "consume_quota"},
        )
        raise QuotaExhausted(kind.value)


def remaining(db: Session, user_id: int) -> Optional[Dict[str, int]]:
    ledger = db.query(UserLimit).filter(UserLimit.user_id == user_id).first()
    if ledger is None:
        return None
    return {kind.value: getattr(ledger, ledger_column(kind).key) for kind in QuotaKind}


# ---------------------------------------------------------------------------
# Replenishment
# ---------------------------------------------------------------------------

def _grant_expression(kind: QuotaKind, amount: int, cap: Optional[int]):
    column = ledger_column(kind)
    if cap is None:
        return column + amount
    # Never lower a counter that already sits above the cap
    return case(
        (column >= cap, column),
        (column + amount > cap, cap),
        else_=column + amount,
    )


def replenish(db: Session, user_ids: Sequence[int], grants: QuotaGrants, run_date: date) -> int:
    """Apply the daily grant to ``user_ids`` not yet granted on ``run_date``.

    Returns the number of ledger rows updated. Does not commit.
    """
    if not user_ids:
        return 0

    values = {"replenished_on": run_date, "updated_at": datetime.utcnow()}
    for kind in QuotaKind:
        amount = grants.daily.for_kind(kind)
        if amount > 0:
            values[ledger_column(kind).key] = _grant_expression(kind, amount, grants.caps.get(kind))

    result = db.execute(
        update(UserLimit)
        .where(
            UserLimit.user_id.in_(list(user_ids)),
            or_(UserLimit.replenished_on.is_(None), UserLimit.replenished_on < run_date),
        )
        .values(values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


@dataclass
class SweepResult:
    run_date: date
    users_seen: int = 0
    users_replenished: int = 0
    failed_batches: int = 0


def _chunks(items: List[int], size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def run_replenishment_sweep(
    session_factory: Callable[[], Session],
    grants: QuotaGrants,
    *,
    run_date: Optional[date] = None,
    page_size: int = 1000,
    batch_size: int = 100,
) -> SweepResult:
    """Grant the daily allowance to every ledger row, one bounded batch at a time.

    Pages walk user ids in ascending order; each batch commits on its own so
    the table is never locked as a whole. A failed batch is logged and
    skipped, the rest of the sweep continues. Rows already stamped with
    ``run_date`` are left untouched, so a restart after a crash resumes
    without granting anyone twice.
    """
    run_date = run_date or date.today()
    result = SweepResult(run_date=run_date)
    last_user_id = 0

    logger.info("Quota replenishment sweep started", extra={"run_date": run_date.isoformat()})

    while True:
        with session_factory() as db:
            page = [
                row[0]
                for row in db.query(UserLimit.user_id)
                .filter(UserLimit.user_id > last_user_id)
                .order_by(UserLimit.user_id)
                .limit(page_size)
                .all()
            ]
        if not page:
            break

        last_user_id = page[-1]
        result.users_seen += len(page)

        for batch in _chunks(page, batch_size):
            db = session_factory()
            try:
                with transaction(db):
                    result.users_replenished += replenish(db, batch, grants, run_date)
            except SQLAlchemyError:
                result.failed_batches += 1
                logger.error(
                    "Quota replenishment batch failed",
                    extra={"run_date": run_date.isoformat(), "batch_size": len(batch)},
                    exc_info=True,
                )
            finally:
                db.close()

        if len(page) < page_size:
            break

    record_sweep(result.users_replenished, result.failed_batches)
    logger.info(
        f"Quota replenishment sweep finished: {result.users_replenished}/{result.users_seen} users",
        extra={"run_date": run_date.isoformat(), "status": result.failed_batches},
    )
    return result
