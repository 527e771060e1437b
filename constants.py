import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Room lifecycle
MAX_ROOM_CAPACITY = 2
BASE_TTL = 600  # seconds
TTL_EXTENSION_SECONDS = 5  # added per posted message, capped at BASE_TTL

# Per-token fixed window, global across rooms
RATE_LIMIT_WINDOW = 5  # seconds
RATE_LIMIT_MAX = 20

MAX_TEXT_LENGTH = 1000
MAX_SENDER_LENGTH = 100

AUTH_COOKIE_NAME = "x-auth-token"
AUTH_HEADER_NAME = "X-Auth-Token"
