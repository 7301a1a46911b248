"""Follow settlement: record a follow of a queued target and pay the follower."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from common.error_handling import ConflictError, UpstreamError, ValidationError
from common.schemas import SettlementOut
from common.settings import settings
from coin_service.models import ORDER_COMPLETE, FollowAction, FollowOrder
from coin_service.orders import get_order
from coin_service.stats import apply_delta

logger = logging.getLogger(__name__)

def find_follow_action(db: Session, follower_fid: int, target_fid: int) -> Optional[FollowAction]:
    query = select(FollowAction).where(
        FollowAction.follower_fid == follower_fid,
        FollowAction.target_fid == target_fid,
    )
    return db.execute(query).scalar_one_or_none()

def _result(order: FollowOrder, follower_fid: int, coins_earned: int, already_settled: bool) -> SettlementOut:
    return SettlementOut(
        order_id=order.id,
        follower_fid=follower_fid,
        target_fid=order.target_fid,
        coins_earned=coins_earned,
        remaining_follows=order.remaining_follows,
        order_status=order.status,
        already_settled=already_settled,
    )

def settle_follow(session_factory: sessionmaker, social_graph, follower_fid: int, order_id: int,
                  signer_uuid: Optional[str] = None) -> SettlementOut:
    """Follow the order's target on the social graph, then credit the follower once.

    A follower already credited for this target gets a zero-coin success and
    the social graph is not called again. A failed follow changes nothing.
    """
    with session_factory() as db:
        order = get_order(db, order_id)
        target_fid = order.target_fid
        if follower_fid == target_fid:
            raise ValidationError("You cannot follow yourself.", field="follower_fid",
                                  context={"order_id": order_id})
        if find_follow_action(db, follower_fid, target_fid) is not None:
            logger.info(f"fid {follower_fid} already credited for fid {target_fid}, nothing to settle")
            return _result(order, follower_fid, 0, True)

    outcome = social_graph.follow(signer_uuid or settings.neynar_signer_uuid, target_fid)
    if not outcome.succeeded:
        raise UpstreamError("Follow action failed on Farcaster; no coins were credited.")

    reward = settings.follow_reward
    try:
        with session_factory.begin() as db:
            order = get_order(db, order_id, for_update=True)
            if find_follow_action(db, follower_fid, target_fid) is not None:
                return _result(order, follower_fid, 0, True)

            db.add(FollowAction(
                follower_fid=follower_fid,
                target_fid=target_fid,
                order_id=order.id,
                coins_earned=reward,
            ))
            db.flush()
            apply_delta(
                db,
                follower_fid,
                coins=reward,
                follows_given=1,
                reason="follow_reward",
                reference_type="order",
                reference_id=str(order.id),
            )
            if order.remaining_follows > 0:
                order.remaining_follows -= 1
            if order.remaining_follows == 0:
                order.status = ORDER_COMPLETE
            db.flush()
            result = _result(order, follower_fid, reward, False)
    except IntegrityError as e:
        # A concurrent settlement of the same pair may have committed first
        with session_factory() as db:
            order = get_order(db, order_id)
            if find_follow_action(db, follower_fid, target_fid) is None:
                raise ConflictError("Settlement collided with a concurrent update, please retry.") from e
            logger.info(f"Concurrent settlement for fid {follower_fid} -> fid {target_fid}")
            return _result(order, follower_fid, 0, True)

    logger.info(f"🤝 fid {follower_fid} followed fid {target_fid} ({outcome.value}), "
                f"+{reward} coin, order {order_id} has {result.remaining_follows} follows left")
    return result
