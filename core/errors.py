class ChatError(Exception):
    """Base for request-scoped domain errors. Never fatal to the process."""

    status_code = 400
    detail = "Bad request"

    def __init__(self, detail: str = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class Unauthorized(ChatError):
    status_code = 401
    detail = "Unauthorized"


class MissingCredentials(Unauthorized):
    detail = "Missing room id or token"


class RoomNotFound(Unauthorized):
    detail = "Room does not exist"


class RoomFull(Unauthorized):
    detail = "Room is full"


class InvalidToken(Unauthorized):
    detail = "Invalid token"


class RoomGone(ChatError):
    status_code = 410
    detail = "Room does not exist"


class RateLimitExceeded(ChatError):
    status_code = 429
    detail = "Rate limit exceeded"


class MessageNotFound(ChatError):
    status_code = 404
    detail = "Message not found"


class NotAuthorized(ChatError):
    status_code = 403
    detail = "Not authorized to modify this message"


class MessageDeleted(ChatError):
    status_code = 409
    detail = "Message has been deleted"
