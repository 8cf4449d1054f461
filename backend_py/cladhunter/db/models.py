from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    DateTime,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from cladhunter.db.base import Base


class User(Base):
    __tablename__ = "users"

    # Wallet address, tg_<telegram id> or anon_<device id>
    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    energy: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    # 0 = no boost. Non-zero only while boost_expires_at is in the future.
    boost_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    boost_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Last credited ad watch, drives the cooldown.
    last_watch_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class AdWatch(Base):
    """
    Append-only audit log, one row per credited ad watch.
    """
    __tablename__ = "ad_watches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    ad_id: Mapped[str] = mapped_column(String(128))

    # Applied credit = floor(base_reward * multiplier)
    reward: Mapped[int] = mapped_column(Integer)
    base_reward: Mapped[int] = mapped_column(Integer)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 2))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)


class DailyWatchCounter(Base):
    """
    Credited watches per user per UTC day. A new day is a new row.
    """
    __tablename__ = "daily_watch_counters"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    day: Mapped[str] = mapped_column(String(10), primary_key=True)  # YYYY-MM-DD
    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class RewardClaim(Base):
    """
    One-time partner reward. The unique constraint is what makes a claim
    exactly-once.
    """
    __tablename__ = "reward_claims"
    __table_args__ = (UniqueConstraint("user_id", "partner_id", name="uq_reward_claims_user_partner"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    partner_id: Mapped[str] = mapped_column(String(128))
    reward: Mapped[int] = mapped_column(Integer)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Order(Base):
    """
    Boost purchase. Status: 'pending' -> 'paid'. 'failed' is only set by an
    external expiry sweep.
    """
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    boost_level: Mapped[int] = mapped_column(Integer)

    # Price in TON
    ton_amount: Mapped[Decimal] = mapped_column(Numeric(18, 9))

    status: Mapped[str] = mapped_column(String(16), default="pending")

    # Memo the wallet attaches to the transfer
    payload: Mapped[str] = mapped_column(String(256))

    # Payment proof supplied at confirmation
    tx_hash: Mapped[str | None] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SessionEvent(Base):
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
