from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, BigInteger, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# SQLite only autoincrements INTEGER primary keys
IdType = BigInteger().with_variant(Integer, "sqlite")

ORDER_PENDING = "pending"
ORDER_COMPLETE = "complete"

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class User(Base):
    __tablename__ = "users"
    fid = Column(BigInteger, primary_key=True, autoincrement=False)
    username = Column(String(64), nullable=False)
    display_name = Column(String(128), nullable=False, default="")
    pfp_url = Column(String(512), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow)

class UserStats(Base):
    __tablename__ = "user_stats"
    id = Column(IdType, primary_key=True, autoincrement=True)
    fid = Column(BigInteger, nullable=False, unique=True)
    coins = Column(BigInteger, nullable=False, default=0)
    follows_given = Column(Integer, nullable=False, default=0)
    followers_received = Column(Integer, nullable=False, default=0)
    referrals = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class FollowOrder(Base):
    __tablename__ = "follow_orders"
    __table_args__ = (Index("ix_follow_orders_status_created", "status", "created_at"),)
    id = Column(IdType, primary_key=True, autoincrement=True)
    requester_fid = Column(BigInteger, ForeignKey("users.fid"), nullable=False, index=True)
    target_fid = Column(BigInteger, ForeignKey("users.fid"), nullable=False, index=True)
    # Snapshot of the target's profile when the order was placed
    username = Column(String(64), nullable=False)
    display_name = Column(String(128), nullable=False, default="")
    pfp_url = Column(String(512), nullable=False, default="")
    quantity = Column(Integer, nullable=False)
    cost = Column(BigInteger, nullable=False)
    remaining_follows = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default=ORDER_PENDING)  # pending|complete
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

class FollowAction(Base):
    __tablename__ = "follow_actions"
    __table_args__ = (UniqueConstraint("follower_fid", "target_fid", name="uq_follow_actions_pair"),)
    id = Column(IdType, primary_key=True, autoincrement=True)
    follower_fid = Column(BigInteger, nullable=False, index=True)
    target_fid = Column(BigInteger, nullable=False, index=True)
    order_id = Column(IdType, ForeignKey("follow_orders.id"), nullable=True, index=True)
    coins_earned = Column(Integer, nullable=False, default=0)
    action_at = Column(DateTime(timezone=True), default=utcnow)

class CoinLedgerEntry(Base):
    __tablename__ = "coin_ledger_entries"
    id = Column(IdType, primary_key=True, autoincrement=True)
    fid = Column(BigInteger, nullable=False, index=True)
    delta = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)
    reason = Column(String(32), nullable=False)  # order_debit|follow_reward|referral_bonus|manual_adjustment
    reference_type = Column(String(16))
    reference_id = Column(String(64))
    created_at = Column(DateTime(timezone=True), default=utcnow)
