"""Follower orders: spend coins to queue a profile for other users to follow."""
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from common.error_handling import ErrorCodes, InsufficientBalanceError, NotFoundError, ValidationError
from common.redis_client import RedisClient
from common.schemas import OrderOut, Profile
from common.settings import settings
from coin_service.models import ORDER_PENDING, FollowAction, FollowOrder
from coin_service.profiles import resolve_profile
from coin_service.stats import apply_delta, get_or_init_stats, upsert_user

logger = logging.getLogger(__name__)

@dataclass
class Requester:
    fid: int
    username: str
    display_name: str
    pfp_url: str

@dataclass
class PlacedOrder:
    order: OrderOut
    cost: int
    balance_after: int
    target: Profile

def order_cost(quantity: int) -> int:
    return quantity * settings.cost_per_follower

def validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", field="quantity")
    if quantity < 1 or quantity > settings.max_order_quantity:
        raise ValidationError(
            f"quantity must be between 1 and {settings.max_order_quantity}",
            field="quantity",
            context={"quantity": quantity},
        )
    return quantity

def create_order(session_factory: sessionmaker, social_graph, requester: Requester, profile_ref: str,
                 quantity: int, cache: Optional[RedisClient] = None) -> PlacedOrder:
    """Resolve the target, then debit the requester and queue the order in one transaction."""
    validate_quantity(quantity)
    target = resolve_profile(profile_ref, social_graph, cache)
    cost = order_cost(quantity)

    with session_factory.begin() as db:
        upsert_user(db, requester.fid, requester.username, requester.display_name, requester.pfp_url)
        stats = get_or_init_stats(db, requester.fid)
        if stats.coins < cost:
            raise InsufficientBalanceError(required=cost, available=stats.coins)

        upsert_user(db, target.fid, target.username, target.display_name, target.pfp_url)
        order = FollowOrder(
            requester_fid=requester.fid,
            target_fid=target.fid,
            username=target.username,
            display_name=target.display_name,
            pfp_url=target.pfp_url,
            quantity=quantity,
            cost=cost,
            remaining_follows=quantity,
            status=ORDER_PENDING,
        )
        db.add(order)
        db.flush()

        # Conditional debit re-checks the balance under this transaction
        stats = apply_delta(
            db,
            requester.fid,
            coins=-cost,
            followers_received=quantity,
            reason="order_debit",
            reference_type="order",
            reference_id=str(order.id),
        )
        placed = PlacedOrder(order=OrderOut.model_validate(order), cost=cost, balance_after=stats.coins, target=target)

    logger.info(f"🧾 Order {placed.order.id}: fid {requester.fid} bought {quantity} follows "
                f"for fid {target.fid} ({cost} coins, balance now {placed.balance_after})")
    return placed

def list_pending_orders(db: Session, limit: Optional[int] = None) -> List[FollowOrder]:
    """Pending orders, oldest first; this is the queue follow suggestions are drawn from."""
    query = (
        select(FollowOrder)
        .where(FollowOrder.status == ORDER_PENDING)
        .order_by(FollowOrder.created_at.asc(), FollowOrder.id.asc())
    )
    if limit is not None:
        query = query.limit(limit)
    return list(db.execute(query).scalars().all())

def get_order(db: Session, order_id: int, for_update: bool = False) -> FollowOrder:
    query = select(FollowOrder).where(FollowOrder.id == order_id)
    if for_update:
        query = query.with_for_update()
    order = db.execute(query).scalar_one_or_none()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", code=ErrorCodes.ORDER_NOT_FOUND,
                            context={"order_id": order_id})
    return order

def list_order_followers(db: Session, order_id: int) -> List[FollowAction]:
    get_order(db, order_id)
    query = (
        select(FollowAction)
        .where(FollowAction.order_id == order_id)
        .order_by(FollowAction.action_at.asc(), FollowAction.id.asc())
    )
    return list(db.execute(query).scalars().all())
