import os
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./follow_coins.db")

    neynar_api_key: str = os.getenv("NEYNAR_API_KEY", "")
    neynar_signer_uuid: str = os.getenv("NEYNAR_SIGNER_UUID", "")
    neynar_base_url: str = os.getenv("NEYNAR_BASE_URL", "https://api.neynar.com")
    neynar_timeout_seconds: float = float(os.getenv("NEYNAR_TIMEOUT_SECONDS", "10"))

    # Coin economy
    starting_coins: int = int(os.getenv("STARTING_COINS", "10"))
    cost_per_follower: int = int(os.getenv("COST_PER_FOLLOWER", "2"))
    follow_reward: int = int(os.getenv("FOLLOW_REWARD", "1"))
    referral_bonus: int = int(os.getenv("REFERRAL_BONUS", "5"))
    max_order_quantity: int = int(os.getenv("MAX_ORDER_QUANTITY", "1000"))

    jwt_issuer: str = os.getenv("JWT_ISSUER", "follow-coins")
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change")
    internal_jwt_ttl_seconds: int = int(os.getenv("INTERNAL_JWT_TTL_SECONDS", "300"))

    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    profile_cache_ttl_seconds: int = int(os.getenv("PROFILE_CACHE_TTL_SECONDS", "300"))
    rate_limit_max_requests: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "30"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

    kafka_enabled: bool = os.getenv("KAFKA_ENABLED", "false").lower() == "true"
    kafka_bootstrap: str = os.getenv("KAFKA_BOOTSTRAP", "kafka:9092")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
