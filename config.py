import os
import logging
import secrets
from typing import List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    database_url: str = Field("mongodb://localhost:27017", description="MongoDB connection string")
    database_name: str = Field("influencer_connect", description="Database holding the user/chat/message collections")
    jwt_secret: str = Field(..., description="HMAC secret used to sign bearer tokens")
    jwt_expires_minutes: int = Field(60, description="Lifetime of an issued token")
    redis_url: Optional[str] = Field(None, description="Enables the Redis broker when set")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        secret = os.getenv("JWT_SECRET")
        if not secret:
            # tokens will not survive a restart
            logger.warning("JWT_SECRET is not set, using a random per-process secret")
            secret = secrets.token_urlsafe(32)
        origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "influencer_connect"),
            jwt_secret=secret,
            jwt_expires_minutes=int(os.getenv("JWT_EXPIRES_MINUTES", 60)),
            redis_url=os.getenv("REDIS_URL") or None,
            cors_origins=origins or ["*"],
            port=int(os.getenv("PORT", 8000)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
