from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Optional

from core.chat_service import ChatService
from core.errors import ChatError
from logging_config import get_logger
from routers.dependencies import get_chat_service, get_token
from schemas.messages import EditMessageRequest, Message, MessagesResponse, PostMessageRequest, SuccessResponse

logger = get_logger(__name__)

messages_router = APIRouter(prefix="/messages", tags=["messages"])


@messages_router.post("", response_model=Message, status_code=status.HTTP_201_CREATED)
async def post_message(
    body: PostMessageRequest,
    room_id: Optional[str] = Query(None),
    token: Optional[str] = Depends(get_token),
    chat: ChatService = Depends(get_chat_service),
):
    try:
        message = chat.post_message(room_id, token, body)
    except ChatError as e:
        logger.warning(f"Post message failed for room {room_id}: {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    logger.debug(f"Message {message.id} posted to room {room_id}")
    return message


@messages_router.get("", response_model=MessagesResponse)
async def list_messages(
    room_id: Optional[str] = Query(None),
    token: Optional[str] = Depends(get_token),
    chat: ChatService = Depends(get_chat_service),
):
    try:
        messages = chat.list_messages(room_id, token)
    except ChatError as e:
        logger.warning(f"List messages failed for room {room_id}: {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return MessagesResponse(messages=messages)


@messages_router.patch("/{message_id}", response_model=SuccessResponse)
async def edit_message(
    message_id: str,
    body: EditMessageRequest,
    room_id: Optional[str] = Query(None),
    token: Optional[str] = Depends(get_token),
    chat: ChatService = Depends(get_chat_service),
):
    try:
        chat.edit_message(room_id, token, message_id, body)
    except ChatError as e:
        logger.warning(f"Edit message {message_id} failed for room {room_id}: {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return SuccessResponse()


@messages_router.delete("/{message_id}", response_model=SuccessResponse)
async def delete_message(
    message_id: str,
    room_id: Optional[str] = Query(None),
    token: Optional[str] = Depends(get_token),
    chat: ChatService = Depends(get_chat_service),
):
    try:
        chat.delete_message(room_id, token, message_id)
    except ChatError as e:
        logger.warning(f"Delete message {message_id} failed for room {room_id}: {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return SuccessResponse()
