from typing import Optional

from fastapi import Cookie, Header, Request

from constants import AUTH_COOKIE_NAME, AUTH_HEADER_NAME
from core.chat_service import ChatService


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat


def get_token(
    cookie_token: Optional[str] = Cookie(None, alias=AUTH_COOKIE_NAME),
    header_token: Optional[str] = Header(None, alias=AUTH_HEADER_NAME),
) -> Optional[str]:
    """Capability token from the auth cookie, falling back to the header."""
    return cookie_token or header_token
