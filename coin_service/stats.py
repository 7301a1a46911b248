"""Per-user coin balance and counters.

Every helper here works inside the caller's session and transaction; none of
them commit.
"""
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from common.error_handling import ConflictError, InsufficientBalanceError, ValidationError
from common.settings import settings
from coin_service.models import CoinLedgerEntry, User, UserStats, utcnow

logger = logging.getLogger(__name__)

COUNTER_FIELDS = ("coins", "follows_given", "followers_received", "referrals")

def upsert_user(db: Session, fid: int, username: str, display_name: str, pfp_url: str) -> User:
    """Insert or refresh a user's profile fields, keeping the original created_at."""
    user = db.get(User, fid)
    if user is None:
        user = User(fid=fid, username=username, display_name=display_name, pfp_url=pfp_url)
        db.add(user)
    else:
        user.username = username
        user.display_name = display_name
        user.pfp_url = pfp_url
    db.flush()
    return user

def find_stats(db: Session, fid: int) -> Optional[UserStats]:
    return db.execute(select(UserStats).where(UserStats.fid == fid)).scalar_one_or_none()

def get_or_init_stats(db: Session, fid: int) -> UserStats:
    stats = find_stats(db, fid)
    if stats is not None:
        return stats
    stats = UserStats(
        fid=fid,
        coins=settings.starting_coins,
        follows_given=0,
        followers_received=0,
        referrals=0,
        last_updated=utcnow(),
    )
    db.add(stats)
    try:
        db.flush()
    except IntegrityError as e:
        # Unique fid: a concurrent first request created the row
        raise ConflictError("Stats were initialized concurrently, please retry", context={"fid": fid}) from e
    logger.info(f"🆕 Initialized stats for fid {fid} with {settings.starting_coins} coins")
    return stats

def record_ledger_entry(db: Session, fid: int, delta: int, balance_after: int, reason: str,
                        reference_type: str = None, reference_id: str = None) -> CoinLedgerEntry:
    entry = CoinLedgerEntry(
        fid=fid,
        delta=delta,
        balance_after=balance_after,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.add(entry)
    return entry

def apply_delta(db: Session, fid: int, coins: int = 0, follows_given: int = 0, followers_received: int = 0,
                referrals: int = 0, reason: str = "manual_adjustment", reference_type: str = None,
                reference_id: str = None) -> UserStats:
    """Add the given deltas to a user's stats in a single conditional UPDATE.

    The WHERE clause refuses any change that would take a field below zero,
    so a debit racing another debit cannot overdraw the balance.
    """
    deltas = dict(zip(COUNTER_FIELDS, (coins, follows_given, followers_received, referrals)))
    for name, value in deltas.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{name} delta must be an integer", field=name)

    stats = get_or_init_stats(db, fid)
    changes = {name: value for name, value in deltas.items() if value}

    conditions = [UserStats.fid == fid]
    values = {"last_updated": utcnow()}
    for name, value in changes.items():
        column = getattr(UserStats, name)
        values[name] = column + value
        if value < 0:
            conditions.append(column >= -value)

    result = db.execute(
        update(UserStats).where(*conditions).values(**values).execution_options(synchronize_session=False)
    )
    db.refresh(stats)

    if result.rowcount == 0:
        if coins < 0 and stats.coins + coins < 0:
            raise InsufficientBalanceError(required=-coins, available=stats.coins)
        negative = next((name for name, value in changes.items() if getattr(stats, name) + value < 0), None)
        if negative is None:
            raise ConflictError("Stats changed concurrently, please retry", context={"fid": fid})
        raise ValidationError(f"{negative} cannot go below zero", field=negative)

    if coins:
        record_ledger_entry(db, fid, coins, stats.coins, reason, reference_type, reference_id)
    return stats

def apply_referral(db: Session, fid: int) -> UserStats:
    """Credit the referral bonus; every reported referral counts, with no per-referrer cap."""
    stats = apply_delta(db, fid, coins=settings.referral_bonus, referrals=1, reason="referral_bonus")
    logger.info(f"🎁 Referral bonus of {settings.referral_bonus} credited to fid {fid}")
    return stats
