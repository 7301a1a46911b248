#!/usr/bin/env python3
"""
Coin Service
Earn coins by following Farcaster users, spend them ordering followers.
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from sqlalchemy.orm import sessionmaker

from common.documentation import FOLLOW_DOCS, ORDER_DOCS, create_custom_openapi
from common.error_handling import RateLimitError, ValidationError, add_error_handlers
from common.kafka import publish_event
from common.redis_client import RedisClient, redis_client
from common.schemas import (
    CoinEvent,
    CreateOrderRequest,
    CreateOrderResponse,
    FollowActionOut,
    InitUserRequest,
    MeOut,
    OrderOut,
    ReferralRequest,
    ResolveProfileRequest,
    SettleFollowRequest,
    SettlementOut,
    StatsAdjustment,
    StatsOut,
    UserOut,
)
from common.security import INTERNAL_AUDIENCE, verify_token
from common.settings import settings
from common.tracing import coin_tracer, tracing_middleware
from coin_service.db import engine, get_session_factory
from coin_service.models import Base
from coin_service.orders import Requester, create_order, get_order, list_order_followers, list_pending_orders
from coin_service.profiles import resolve_profile
from coin_service.settlement import settle_follow
from coin_service.social_graph import get_social_graph
from coin_service.stats import apply_delta, apply_referral, get_or_init_stats, upsert_user

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Coin service starting...")
    Base.metadata.create_all(bind=engine)
    yield
    logger.info("👋 Coin service shutting down")

app = FastAPI(title="Coin Service", version="1.0.0", lifespan=lifespan)
add_error_handlers(app)
app.openapi = lambda: create_custom_openapi(
    app, "Coin Service", "1.0.0", "Follow Farcaster users for coins; spend coins on follower orders."
)

@app.middleware("http")
async def add_tracing(request: Request, call_next):
    return await tracing_middleware(request, call_next, coin_tracer)

def get_profile_cache() -> Optional[RedisClient]:
    return redis_client

def get_event_publisher() -> Callable[[CoinEvent], None]:
    return publish_event

def enforce_rate_limit(cache: Optional[RedisClient], fid: int, endpoint: str):
    if cache is None:
        return
    verdict = cache.check_rate_limit(fid, endpoint, settings.rate_limit_max_requests,
                                     settings.rate_limit_window_seconds)
    if not verdict["allowed"]:
        raise RateLimitError(
            f"Too many requests, retry in {verdict['retry_after']}s",
            context={"retry_after": verdict["retry_after"]},
        )

# Down-scoped token for operators adjusting balances directly
async def internal_auth(authorization: Optional[str] = Header(None)):
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "missing bearer token")
    token = authorization.split(" ", 1)[1]
    try:
        return verify_token(token, audience=INTERNAL_AUDIENCE)
    except Exception as e:
        raise HTTPException(401, f"invalid internal token: {e}")

@app.get("/health", tags=["Health"])
async def health():
    return {"ok": True, "service": "coin"}

@app.get("/me", tags=["Users"], response_model=MeOut)
def me(authorization: Optional[str] = Header(None), social_graph=Depends(get_social_graph),
       cache: Optional[RedisClient] = Depends(get_profile_cache)):
    """Who is signed in: verify the Sign in with Neynar token and return the fid and its signer."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "missing sign-in token")
    identity = social_graph.verify_sign_in(authorization.split(" ", 1)[1])
    if identity is None:
        raise HTTPException(401, "sign-in could not be verified")
    profile = resolve_profile(identity.fid, social_graph, cache)
    return MeOut(fid=identity.fid, username=profile.username, signer_uuid=identity.signer_uuid)

@app.post("/profiles/resolve", tags=["Profiles"])
def resolve(body: ResolveProfileRequest, social_graph=Depends(get_social_graph),
            cache: Optional[RedisClient] = Depends(get_profile_cache)):
    profile = resolve_profile(body.profile_url, social_graph, cache)
    return {"success": True, "profile": profile}

@app.post("/users/init", tags=["Users"])
def init_user(body: InitUserRequest, session_factory: sessionmaker = Depends(get_session_factory)):
    """Create or refresh a user on first contact and make sure they have stats."""
    with session_factory.begin() as db:
        user = upsert_user(db, body.fid, body.username, body.display_name, body.pfp_url)
        stats = get_or_init_stats(db, body.fid)
        payload = {"success": True, "user": UserOut.model_validate(user), "stats": StatsOut.model_validate(stats)}
    return payload

@app.get("/users/{fid}/stats", tags=["Users"], response_model=StatsOut)
def get_stats(fid: int, session_factory: sessionmaker = Depends(get_session_factory)):
    if fid <= 0:
        raise ValidationError("fid must be a positive integer", field="fid")
    with session_factory.begin() as db:
        return StatsOut.model_validate(get_or_init_stats(db, fid))

@app.post("/orders", tags=["Orders"], response_model=CreateOrderResponse, description=ORDER_DOCS)
def place_order(body: CreateOrderRequest,
                session_factory: sessionmaker = Depends(get_session_factory),
                social_graph=Depends(get_social_graph),
                cache: Optional[RedisClient] = Depends(get_profile_cache),
                publish: Callable[[CoinEvent], None] = Depends(get_event_publisher)):
    enforce_rate_limit(cache, body.requester_fid, "orders")
    requester = Requester(
        fid=body.requester_fid,
        username=body.requester_username,
        display_name=body.requester_display_name,
        pfp_url=body.requester_pfp_url,
    )
    placed = create_order(session_factory, social_graph, requester, body.profile_url, body.quantity, cache)
    publish(CoinEvent(
        type="OrderCreated",
        fid=requester.fid,
        coins_delta=-placed.cost,
        order_id=placed.order.id,
        target_fid=placed.target.fid,
        quantity=placed.order.quantity,
    ))
    return CreateOrderResponse(order=placed.order, cost=placed.cost, balance_after=placed.balance_after,
                               target_user=placed.target)

@app.get("/orders", tags=["Orders"], response_model=List[OrderOut])
def pending_orders(limit: Optional[int] = Query(None, ge=1, le=500),
                   session_factory: sessionmaker = Depends(get_session_factory)):
    with session_factory() as db:
        return [OrderOut.model_validate(order) for order in list_pending_orders(db, limit)]

@app.get("/orders/{order_id}", tags=["Orders"], response_model=OrderOut)
def order_detail(order_id: int, session_factory: sessionmaker = Depends(get_session_factory)):
    with session_factory() as db:
        return OrderOut.model_validate(get_order(db, order_id))

@app.get("/orders/{order_id}/followers", tags=["Orders"])
def order_followers(order_id: int, session_factory: sessionmaker = Depends(get_session_factory)):
    with session_factory() as db:
        followers = [FollowActionOut.model_validate(action) for action in list_order_followers(db, order_id)]
    return {"success": True, "followers": followers}

@app.post("/follow", tags=["Follows"], response_model=SettlementOut, description=FOLLOW_DOCS)
def follow(body: SettleFollowRequest,
           session_factory: sessionmaker = Depends(get_session_factory),
           social_graph=Depends(get_social_graph),
           cache: Optional[RedisClient] = Depends(get_profile_cache),
           publish: Callable[[CoinEvent], None] = Depends(get_event_publisher)):
    enforce_rate_limit(cache, body.follower_fid, "follow")
    result = settle_follow(session_factory, social_graph, body.follower_fid, body.order_id, body.signer_uuid)
    if result.coins_earned:
        publish(CoinEvent(
            type="FollowSettled",
            fid=result.follower_fid,
            coins_delta=result.coins_earned,
            order_id=result.order_id,
            target_fid=result.target_fid,
        ))
    return result

@app.post("/referrals", tags=["Referrals"])
def referral(body: ReferralRequest,
             session_factory: sessionmaker = Depends(get_session_factory),
             publish: Callable[[CoinEvent], None] = Depends(get_event_publisher)):
    with session_factory.begin() as db:
        stats = StatsOut.model_validate(apply_referral(db, body.fid))
    publish(CoinEvent(type="ReferralCredited", fid=body.fid, coins_delta=settings.referral_bonus))
    return {"success": True, "stats": stats}

@app.post("/internal/stats/{fid}/adjust", tags=["Administration"], response_model=StatsOut,
          dependencies=[Depends(internal_auth)])
def adjust_stats(fid: int, body: StatsAdjustment, session_factory: sessionmaker = Depends(get_session_factory)):
    with session_factory.begin() as db:
        stats = apply_delta(
            db,
            fid,
            coins=body.coins,
            follows_given=body.follows_given,
            followers_received=body.followers_received,
            referrals=body.referrals,
            reason=body.reason,
        )
        return StatsOut.model_validate(stats)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
