"""
Redis client utilities for profile caching and rate limiting
"""
import json
import logging
import redis
from typing import Optional, Dict, Any
from datetime import datetime
from .schemas import Profile
from .settings import settings

logger = logging.getLogger(__name__)

class RedisClient:
    """Redis client wrapper; every helper fails open when Redis is down"""

    def __init__(self, url: str = None):
        self.client = redis.Redis.from_url(
            url or settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=0.5,
            socket_timeout=0.5,
        )

    def ping(self) -> bool:
        """Check Redis connectivity"""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False

    # Profile cache
    def cache_profile(self, key: str, profile: Profile, ttl_seconds: int = None) -> bool:
        """Cache a resolved social-graph profile under a normalized handle or fid"""
        ttl = ttl_seconds if ttl_seconds is not None else settings.profile_cache_ttl_seconds
        if ttl <= 0:
            return False
        try:
            return bool(self.client.setex(f"profile:{key}", ttl, profile.model_dump_json()))
        except redis.RedisError as e:
            logger.warning(f"Failed to cache profile {key}: {e}")
            return False

    def get_cached_profile(self, key: str) -> Optional[Profile]:
        try:
            value = self.client.get(f"profile:{key}")
            if value:
                return Profile.model_validate(json.loads(value))
            return None
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Failed to read cached profile {key}: {e}")
            return None

    # Rate Limiting
    def check_rate_limit(self, fid: int, endpoint: str, max_requests: int, window_seconds: int) -> Dict[str, Any]:
        """Fixed-window counter per fid/endpoint"""
        current_time = int(datetime.now().timestamp())
        window_start = current_time // window_seconds * window_seconds
        reset_time = window_start + window_seconds
        current_key = f"rate_limit:{fid}:{endpoint}:{window_start}"
        try:
            pipe = self.client.pipeline()
            pipe.incr(current_key)
            pipe.expire(current_key, window_seconds)
            new_count = pipe.execute()[0]
        except redis.RedisError as e:
            logger.warning(f"🚨 Rate limit check failed, allowing request: {e}")
            return {
                "allowed": True,
                "count": 0,
                "remaining": max_requests,
                "reset_time": 0,
                "retry_after": 0
            }

        allowed = new_count <= max_requests
        return {
            "allowed": allowed,
            "count": new_count,
            "remaining": max(0, max_requests - new_count),
            "reset_time": reset_time,
            "retry_after": 0 if allowed else reset_time - current_time
        }

# Global Redis client instance
redis_client = RedisClient()
