"""
SQLAlchemy ledger store (PostgreSQL in production, SQLite for dev/tests).

Every primitive is one database transaction built from conditional
``UPDATE ... WHERE`` statements and ``INSERT ... ON CONFLICT DO NOTHING``;
``rowcount`` tells whether the condition held. Row locks taken by the first
UPDATE serialize concurrent writers for the same user, across processes.

The blocking unit of work runs in a worker thread so the event loop is
never blocked.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, TypeVar

from sqlalchemy import Engine, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from cladhunter.core.errors import (
    AlreadyClaimed,
    AlreadyProcessed,
    CooldownActive,
    DailyLimitReached,
    LedgerError,
    StoreUnavailable,
)
from cladhunter.db.base import Base
from cladhunter.db.models import AdWatch, DailyWatchCounter, Order, RewardClaim, SessionEvent, User
from cladhunter.db.session import make_session_factory
from cladhunter.ledger.store import (
    ORDER_PAID,
    ORDER_PENDING,
    Account,
    AdWatchRecord,
    LedgerStore,
    OrderRecord,
    WatchCredit,
    WatchTotals,
)
from cladhunter.services.quota import cooldown_remaining

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ORM-enabled UPDATEs below never touch objects loaded in the session.
_NO_SYNC = {"synchronize_session": False}


def _utc(dt: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _account(row: User) -> Account:
    return Account(
        id=row.id,
        energy=int(row.energy),
        boost_level=int(row.boost_level),
        boost_expires_at=_utc(row.boost_expires_at),
        last_watch_at=_utc(row.last_watch_at),
        created_at=_utc(row.created_at),
    )


def _order(row: Order) -> OrderRecord:
    return OrderRecord(
        id=row.id,
        user_id=row.user_id,
        boost_level=int(row.boost_level),
        ton_amount=Decimal(row.ton_amount),
        status=row.status,
        payload=row.payload,
        tx_hash=row.tx_hash,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _insert_ignore(db: Session, model: type[Base], values: dict[str, Any]) -> bool:
    """INSERT unless a row with the same unique key exists. True if inserted."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as pg_insert

        stmt = pg_insert(model.__table__).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert

        stmt = sqlite_insert(model.__table__).values(**values).on_conflict_do_nothing()
    else:
        try:
            with db.begin_nested():
                db.execute(insert(model.__table__).values(**values))
            return True
        except IntegrityError:
            return False
    return db.execute(stmt).rowcount > 0


def _load_user(db: Session, user_id: str) -> User:
    row = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if row is None:
        raise KeyError(f"no account {user_id}")
    return row


class SqlLedgerStore(LedgerStore):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = make_session_factory(engine)

    def create_schema(self) -> None:
        Base.metadata.create_all(bind=self._engine)

    async def close(self) -> None:
        self._engine.dispose()

    def _call(self, work: Callable[[Session], T]) -> T:
        db = self._session_factory()
        try:
            result = work(db)
            db.commit()
            return result
        except LedgerError:
            db.rollback()
            raise
        except (OperationalError, InterfaceError) as e:
            logger.warning("Ledger store unavailable: %s", e)
            db.rollback()
            raise StoreUnavailable() from e
        except Exception:
            logger.exception("Ledger store operation failed")
            db.rollback()
            raise
        finally:
            db.close()

    async def _run(self, work: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._call, work)

    # --- accounts -------------------------------------------------------

    async def get_account(self, user_id: str) -> Account | None:
        def work(db: Session) -> Account | None:
            row = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
            return _account(row) if row else None

        return await self._run(work)

    async def get_or_create_account(self, user_id: str, now: datetime) -> Account:
        def work(db: Session) -> Account:
            created = _insert_ignore(
                db,
                User,
                {
                    "id": user_id,
                    "energy": 0,
                    "boost_level": 0,
                    "created_at": now,
                    "updated_at": now,
                },
            )
            if created:
                logger.info("Created account %s", user_id)
            return _account(_load_user(db, user_id))

        return await self._run(work)

    async def expire_boost(self, user_id: str, now: datetime) -> Account:
        def work(db: Session) -> Account:
            db.execute(
                update(User)
                .where(
                    User.id == user_id,
                    User.boost_expires_at.is_not(None),
                    User.boost_expires_at <= now,
                )
                .values(boost_level=0, boost_expires_at=None),
                execution_options=_NO_SYNC,
            )
            return _account(_load_user(db, user_id))

        return await self._run(work)

    # --- ad watches -----------------------------------------------------

    async def credit_ad_watch(
        self,
        user_id: str,
        ad_id: str,
        reward: int,
        base_reward: int,
        multiplier: Decimal,
        now: datetime,
        cooldown_seconds: int,
        day: str,
        daily_limit: int,
    ) -> WatchCredit:
        def work(db: Session) -> WatchCredit:
            stmt = update(User).where(User.id == user_id)
            if cooldown_seconds > 0:
                cutoff = now - timedelta(seconds=cooldown_seconds)
                stmt = stmt.where(or_(User.last_watch_at.is_(None), User.last_watch_at <= cutoff))
            res = db.execute(
                stmt.values(energy=User.energy + reward, last_watch_at=now),
                execution_options=_NO_SYNC,
            )
            if res.rowcount == 0:
                last = _load_user(db, user_id).last_watch_at
                remaining = cooldown_remaining(_utc(last), now, cooldown_seconds)
                raise CooldownActive(max(1, remaining))

            _insert_ignore(db, DailyWatchCounter, {"user_id": user_id, "day": day, "count": 0})
            res = db.execute(
                update(DailyWatchCounter)
                .where(
                    DailyWatchCounter.user_id == user_id,
                    DailyWatchCounter.day == day,
                    DailyWatchCounter.count < daily_limit,
                )
                .values(count=DailyWatchCounter.count + 1),
                execution_options=_NO_SYNC,
            )
            if res.rowcount == 0:
                raise DailyLimitReached()

            db.add(
                AdWatch(
                    user_id=user_id,
                    ad_id=ad_id,
                    reward=reward,
                    base_reward=base_reward,
                    multiplier=multiplier,
                    created_at=now,
                )
            )
            db.flush()

            count = db.execute(
                select(DailyWatchCounter.count).where(
                    DailyWatchCounter.user_id == user_id,
                    DailyWatchCounter.day == day,
                )
            ).scalar_one()
            return WatchCredit(account=_account(_load_user(db, user_id)), watch_count=int(count))

        return await self._run(work)

    async def consume_daily_quota(self, user_id: str, day: str, limit: int) -> int:
        def work(db: Session) -> int:
            _insert_ignore(db, DailyWatchCounter, {"user_id": user_id, "day": day, "count": 0})
            res = db.execute(
                update(DailyWatchCounter)
                .where(
                    DailyWatchCounter.user_id == user_id,
                    DailyWatchCounter.day == day,
                    DailyWatchCounter.count < limit,
                )
                .values(count=DailyWatchCounter.count + 1),
                execution_options=_NO_SYNC,
            )
            if res.rowcount == 0:
                raise DailyLimitReached()
            return int(
                db.execute(
                    select(DailyWatchCounter.count).where(
                        DailyWatchCounter.user_id == user_id,
                        DailyWatchCounter.day == day,
                    )
                ).scalar_one()
            )

        return await self._run(work)

    async def daily_watch_count(self, user_id: str, day: str) -> int:
        def work(db: Session) -> int:
            count = db.execute(
                select(DailyWatchCounter.count).where(
                    DailyWatchCounter.user_id == user_id,
                    DailyWatchCounter.day == day,
                )
            ).scalar_one_or_none()
            return int(count or 0)

        return await self._run(work)

    async def watch_totals(self, user_id: str) -> WatchTotals:
        def work(db: Session) -> WatchTotals:
            total, earned = db.execute(
                select(func.count(AdWatch.id), func.coalesce(func.sum(AdWatch.reward), 0)).where(
                    AdWatch.user_id == user_id
                )
            ).one()
            return WatchTotals(total_watches=int(total), total_reward=int(earned))

        return await self._run(work)

    async def recent_watches(self, user_id: str, limit: int) -> list[AdWatchRecord]:
        def work(db: Session) -> list[AdWatchRecord]:
            rows = db.execute(
                select(AdWatch)
                .where(AdWatch.user_id == user_id)
                .order_by(AdWatch.created_at.desc(), AdWatch.id.desc())
                .limit(limit)
            ).scalars().all()
            return [
                AdWatchRecord(
                    user_id=r.user_id,
                    ad_id=r.ad_id,
                    reward=int(r.reward),
                    base_reward=int(r.base_reward),
                    multiplier=Decimal(r.multiplier),
                    created_at=_utc(r.created_at),
                )
                for r in rows
            ]

        return await self._run(work)

    # --- partner claims -------------------------------------------------

    async def claim_partner_reward(
        self, user_id: str, partner_id: str, reward: int, now: datetime
    ) -> Account:
        def work(db: Session) -> Account:
            inserted = _insert_ignore(
                db,
                RewardClaim,
                {"user_id": user_id, "partner_id": partner_id, "reward": reward, "claimed_at": now},
            )
            if not inserted:
                raise AlreadyClaimed()
            db.execute(
                update(User).where(User.id == user_id).values(energy=User.energy + reward),
                execution_options=_NO_SYNC,
            )
            return _account(_load_user(db, user_id))

        return await self._run(work)

    async def claimed_partner_ids(self, user_id: str) -> list[str]:
        def work(db: Session) -> list[str]:
            return list(
                db.execute(
                    select(RewardClaim.partner_id)
                    .where(RewardClaim.user_id == user_id)
                    .order_by(RewardClaim.claimed_at, RewardClaim.id)
                ).scalars().all()
            )

        return await self._run(work)

    # --- orders ---------------------------------------------------------

    async def insert_order(self, order: OrderRecord) -> bool:
        def work(db: Session) -> bool:
            return _insert_ignore(
                db,
                Order,
                {
                    "id": order.id,
                    "user_id": order.user_id,
                    "boost_level": order.boost_level,
                    "ton_amount": order.ton_amount,
                    "status": order.status,
                    "payload": order.payload,
                    "tx_hash": order.tx_hash,
                    "created_at": order.created_at,
                    "updated_at": order.updated_at,
                },
            )

        return await self._run(work)

    async def get_order(self, order_id: str) -> OrderRecord | None:
        def work(db: Session) -> OrderRecord | None:
            row = db.execute(select(Order).where(Order.id == order_id)).scalar_one_or_none()
            return _order(row) if row else None

        return await self._run(work)

    async def mark_order_paid(
        self,
        order_id: str,
        tx_hash: str,
        user_id: str,
        boost_level: int,
        boost_expires_at: datetime | None,
        now: datetime,
    ) -> Account:
        def work(db: Session) -> Account:
            res = db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == ORDER_PENDING)
                .values(status=ORDER_PAID, tx_hash=tx_hash, updated_at=now),
                execution_options=_NO_SYNC,
            )
            if res.rowcount == 0:
                raise AlreadyProcessed()
            db.execute(
                update(User)
                .where(User.id == user_id)
                .values(boost_level=boost_level, boost_expires_at=boost_expires_at),
                execution_options=_NO_SYNC,
            )
            return _account(_load_user(db, user_id))

        return await self._run(work)

    # --- sessions -------------------------------------------------------

    async def record_session(self, user_id: str, now: datetime) -> None:
        def work(db: Session) -> None:
            db.add(SessionEvent(user_id=user_id, created_at=now))

        await self._run(work)

    async def count_sessions(self, user_id: str) -> int:
        def work(db: Session) -> int:
            return int(
                db.execute(
                    select(func.count(SessionEvent.id)).where(SessionEvent.user_id == user_id)
                ).scalar_one()
            )

        return await self._run(work)
