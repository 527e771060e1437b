from backend import RedisBackend
from constants import RATE_LIMIT_MAX, RATE_LIMIT_WINDOW
from core.errors import RateLimitExceeded
from logging_config import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Fixed-window counter per capability token, shared by all rooms.

    INCR and EXPIRE are two separate calls; a counter left without expiry
    after a crash between them only ever throttles its own token.
    """

    def __init__(self, backend: RedisBackend, limit: int = RATE_LIMIT_MAX, window_seconds: int = RATE_LIMIT_WINDOW):
        self.backend = backend
        self.limit = limit
        self.window_seconds = window_seconds

    def check_and_increment(self, token: str) -> int:
        count = self.backend.increment_counter(token)
        if count == 1:
            # First hit opens the window
            self.backend.expire_counter(token, self.window_seconds)
        if count > self.limit:
            # Rejected attempts still count
            logger.warning(f"Rate limit exceeded for token {token[:8]}...: {count}/{self.limit}")
            raise RateLimitExceeded()
        return count
