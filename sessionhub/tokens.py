import logging
import secrets
from typing import Optional
import redis
from sessionhub.config import get_settings
from sessionhub.errors import FatalStoreError

logger = logging.getLogger(__name__)
settings = get_settings()


def get_redis_client() -> redis.Redis:
    """
    Creates and returns a new Redis client instance.
    The connection is opened lazily on first command.
    """
    return redis.from_url(settings.redis_url, decode_responses=True)


class ExpiringTokenStore:
    """
    One-time tokens with a fixed time to live.
    
    A consumed, expired or never-issued token all read back as None;
    callers cannot tell the three apart.
    """
    
    # A collision needs two equal 256-bit draws, so one retry is plenty
    MAX_ISSUE_ATTEMPTS = 3
    
    def __init__(self, client: redis.Redis):
        self.client = client
    
    def issue(self, key_prefix: str, value: str, ttl_seconds: int) -> str:
        """
        Store value under key_prefix + <random token> and return the token.
        
        SET NX guarantees a token is never handed out twice, even if two
        issuances happened to draw the same value.
        """
        for _ in range(self.MAX_ISSUE_ATTEMPTS):
            token = secrets.token_urlsafe(32)
            try:
                stored = self.client.set(key_prefix + token, value, nx=True, ex=ttl_seconds)
            except redis.RedisError as e:
                raise FatalStoreError("token store unavailable") from e
            if stored:
                return token
        raise FatalStoreError("could not issue a unique token")
    
    def consume(self, key: str) -> Optional[str]:
        """
        Read and delete key in one step (GETDEL).
        
        Of two concurrent consumers at most one receives the value.
        """
        try:
            return self.client.getdel(key)
        except redis.RedisError as e:
            raise FatalStoreError("token store unavailable") from e
