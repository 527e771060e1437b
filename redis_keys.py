REDIS_META_KEY = "room:meta:{slug}" # room id - hash: connected (json list), created_at
REDIS_MESSAGES_KEY = "room:messages:{slug}" # room id - list of json messages, append order
REDIS_USERS_KEY = "room:users:{slug}" # room id - set of live websocket connection IDs
REDIS_ROOM_CHANNEL = "room:channel:{slug}" # room id - pub/sub channel name
REDIS_RATE_KEY = "rate:{token}" # capability token - fixed window counter

# **TTL**
# - `room:meta`, `room:messages` and `room:users` always carry the same TTL.
# - Posting a message slides it forward by a few seconds, never past the base TTL.
# - `rate:{token}` has its own short window expiry.
