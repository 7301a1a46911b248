from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional

class Profile(BaseModel):
    fid: int
    username: str
    display_name: str = ""
    pfp_url: str = ""

class ResolveProfileRequest(BaseModel):
    profile_url: str = Field(..., min_length=1)

class InitUserRequest(BaseModel):
    fid: int = Field(..., gt=0)
    username: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    pfp_url: str = Field(..., min_length=1)

class CreateOrderRequest(BaseModel):
    requester_fid: int = Field(..., gt=0)
    requester_username: str = Field(..., min_length=1)
    requester_display_name: str = Field(..., min_length=1)
    requester_pfp_url: str = Field(..., min_length=1)
    profile_url: str = Field(..., min_length=1)
    quantity: int

class SettleFollowRequest(BaseModel):
    follower_fid: int = Field(..., gt=0)
    order_id: int = Field(..., gt=0)
    signer_uuid: Optional[str] = None

class ReferralRequest(BaseModel):
    fid: int = Field(..., gt=0)

class StatsAdjustment(BaseModel):
    coins: int = 0
    follows_given: int = 0
    followers_received: int = 0
    referrals: int = 0
    reason: str = Field("manual_adjustment", min_length=1, max_length=32)

class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    fid: int
    username: str
    display_name: str
    pfp_url: str

class StatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    fid: int
    coins: int
    follows_given: int
    followers_received: int
    referrals: int
    last_updated: Optional[datetime] = None

class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_fid: int
    target_fid: int
    username: str
    display_name: str
    pfp_url: str
    quantity: int
    cost: int
    remaining_follows: int
    status: str
    created_at: Optional[datetime] = None

class FollowActionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    follower_fid: int
    target_fid: int
    order_id: Optional[int] = None
    coins_earned: int
    action_at: Optional[datetime] = None

class CreateOrderResponse(BaseModel):
    success: bool = True
    order: OrderOut
    cost: int
    balance_after: int
    target_user: Profile

class SettlementOut(BaseModel):
    success: bool = True
    order_id: int
    follower_fid: int
    target_fid: int
    coins_earned: int
    remaining_follows: int
    order_status: str
    already_settled: bool = False

class CoinEvent(BaseModel):
    type: Literal["OrderCreated", "FollowSettled", "ReferralCredited"]
    fid: int
    coins_delta: int
    order_id: Optional[int] = None
    target_fid: Optional[int] = None
    quantity: Optional[int] = None

class MeOut(BaseModel):
    success: bool = True
    fid: int
    username: str
    signer_uuid: str
