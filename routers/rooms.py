from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from typing import Optional

from constants import AUTH_COOKIE_NAME, BASE_TTL
from core.chat_service import ChatService
from core.errors import ChatError
from logging_config import get_logger
from routers.dependencies import get_chat_service, get_token
from schemas.messages import SuccessResponse
from schemas.rooms import CreateRoomResponse, JoinRoomResponse, TtlResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/room", tags=["rooms"])


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@rooms_router.post("/create", response_model=CreateRoomResponse)
async def create_room(request: Request, chat: ChatService = Depends(get_chat_service)):
    logger.info(f"Room creation request from {_client_host(request)}")
    room_id = chat.create_room()
    return CreateRoomResponse(room_id=room_id)


@rooms_router.post("/join", response_model=JoinRoomResponse)
async def join_room(
    request: Request,
    response: Response,
    room_id: str = Query(...),
    chat: ChatService = Depends(get_chat_service),
):
    # Issues the capability token and sets it as the auth cookie.
    # Fails with 401 when the room is unknown or already has two participants.
    logger.info(f"Join room request for {room_id} from {_client_host(request)}")
    try:
        token = chat.join_room(room_id)
    except ChatError as e:
        logger.warning(f"Join room failed for {room_id}: {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    response.set_cookie(
        AUTH_COOKIE_NAME,
        token,
        max_age=BASE_TTL,
        httponly=True,
        samesite="strict",
        secure=request.url.scheme == "https",
    )
    return JoinRoomResponse(room_id=room_id, token=token)


@rooms_router.get("/ttl", response_model=TtlResponse)
async def get_ttl(
    room_id: Optional[str] = Query(None),
    token: Optional[str] = Depends(get_token),
    chat: ChatService = Depends(get_chat_service),
):
    try:
        ttl = chat.get_ttl(room_id, token)
    except ChatError as e:
        logger.warning(f"TTL request failed for room {room_id}: {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return TtlResponse(ttl=ttl)


@rooms_router.delete("", response_model=SuccessResponse)
async def destroy_room(
    request: Request,
    room_id: Optional[str] = Query(None),
    token: Optional[str] = Depends(get_token),
    chat: ChatService = Depends(get_chat_service),
):
    logger.info(f"Destroy room request for {room_id} from {_client_host(request)}")
    try:
        chat.destroy_room(room_id, token)
    except ChatError as e:
        logger.warning(f"Destroy room failed for {room_id}: {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return SuccessResponse()
