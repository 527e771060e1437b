from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from routers.rooms import rooms_router
from routers.messages import messages_router
from backend import RedisBackend, create_redis_backend
from constants import AUTH_COOKIE_NAME, CORS_ORIGINS
from core.access_control import authorize
from core.chat_service import ChatService
from core.errors import ChatError
from core.events import EVENT_DESTROY, event_name
import redis
import uuid
import json
import asyncio
from typing import Dict, Optional
from logging_config import get_logger, setup_logging
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)

# In-memory connection tracking per room
# Format: {room_id: {connection_id: websocket}}
# NOTE: Each instance tracks only its own WebSocket connections. Redis pub/sub
# distributes events across all instances and each instance forwards them to
# its local connections. No room data is kept here.
room_connections: Dict[str, Dict[str, WebSocket]] = {}

# Background tasks for Redis pub/sub listeners per room
# Format: {room_id: task}
room_pubsub_tasks: Dict[str, asyncio.Task] = {}


def create_app(backend: Optional[RedisBackend] = None) -> FastAPI:
    """Build the application. Without a backend one is created from the environment on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "backend", None) is None:
            app.state.backend = create_redis_backend()
            app.state.chat = ChatService(app.state.backend)
        logger.info("Application startup complete")
        yield
        for task in list(room_pubsub_tasks.values()):
            task.cancel()
        logger.info("Application shutdown complete")

    app = FastAPI(title="vanishchat", lifespan=lifespan)
    if backend is not None:
        app.state.backend = backend
        app.state.chat = ChatService(backend)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)
    app.include_router(messages_router)

    @app.exception_handler(redis.exceptions.RedisError)
    async def store_error_handler(request: Request, exc: redis.exceptions.RedisError):
        logger.error(f"Store failure on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=503, content={"detail": "Store unavailable"})

    @app.get("/health")
    async def health_check(request: Request):
        try:
            redis_ok = request.app.state.backend.ping()
        except redis.exceptions.RedisError as e:
            logger.warning(f"Health check: Redis unreachable: {e}")
            redis_ok = False
        return {"status": "ok" if redis_ok else "degraded", "redis": redis_ok}

    app.add_api_websocket_route("/room/{room_id}/ws", websocket_endpoint)

    logger.info("FastAPI application initialized")
    return app


async def _close_local_connections(room_id: str, reason: str):
    for ws in list(room_connections.get(room_id, {}).values()):
        try:
            await ws.close(code=1000, reason=reason)
        except Exception as e:
            logger.debug(f"Error closing WebSocket in room {room_id}: {e}")


async def listen_to_redis_channel(backend: RedisBackend, room_id: str, pubsub):
    """Background task to listen for room events on Redis pub/sub and forward them to local connections."""
    logger.info(f"Starting Redis pub/sub listener for room: {room_id}")
    try:
        loop = asyncio.get_running_loop()

        while True:
            if room_id not in room_connections or len(room_connections[room_id]) == 0:
                logger.info(f"No more connections in room {room_id}, stopping listener")
                break

            # Blocking get_message() runs in the thread pool with a timeout
            message = await loop.run_in_executor(
                None, lambda: pubsub.get_message(timeout=1.0, ignore_subscribe_messages=True)
            )
            if message is None or message.get("type") != "message":
                continue

            try:
                envelope = json.loads(message["data"])
            except json.JSONDecodeError as e:
                logger.error(f"Error parsing event from Redis for room {room_id}: {e}")
                continue

            connections = dict(room_connections.get(room_id, {}))
            logger.debug(f"Forwarding {envelope.get('event')} to {len(connections)} local connections in room {room_id}")
            results = await asyncio.gather(
                *(ws.send_text(json.dumps(envelope)) for ws in connections.values()),
                return_exceptions=True,
            )
            for conn_id, result in zip(connections, results):
                if isinstance(result, Exception):
                    logger.warning(f"Error sending to connection {conn_id} in room {room_id}: {result}")
                    room_connections.get(room_id, {}).pop(conn_id, None)
                    backend.remove_connection(room_id, conn_id)

            if envelope.get("event") == event_name(EVENT_DESTROY):
                await _close_local_connections(room_id, "Room destroyed")
                break

    except asyncio.CancelledError:
        logger.info(f"Redis listener task cancelled for room: {room_id}")
    except Exception as e:
        logger.error(f"Error in Redis listener for room {room_id}: {e}", exc_info=True)
    finally:
        try:
            pubsub.close()
        except Exception as e:
            logger.error(f"Error closing pub/sub for room {room_id}: {e}")
        room_pubsub_tasks.pop(room_id, None)


async def websocket_endpoint(websocket: WebSocket, room_id: str, token: Optional[str] = None):
    """Live room events for an authorized participant.

    The token comes from the ``token`` query parameter or the auth cookie.
    Messages are posted over HTTP; anything the client sends here is ignored.
    """
    chat: ChatService = websocket.app.state.chat
    backend: RedisBackend = websocket.app.state.backend
    token = token or websocket.cookies.get(AUTH_COOKIE_NAME)

    try:
        authorize(chat.registry, room_id, token)
    except ChatError as e:
        logger.info(f"WebSocket connection rejected for room {room_id}: {e.detail}")
        await websocket.close(code=1008, reason=e.detail)
        return

    # Connection set shares the room's lifetime
    ttl = chat.registry.connection_ttl(room_id)
    if ttl == 0:
        logger.info(f"WebSocket connection rejected for room {room_id}: room expired")
        await websocket.close(code=1008, reason="Room does not exist")
        return

    connection_id = str(uuid.uuid4())
    room_connections.setdefault(room_id, {})[connection_id] = websocket

    try:
        # Subscribe before accepting so no event published after the handshake is missed
        if room_id not in room_pubsub_tasks or room_pubsub_tasks[room_id].done():
            pubsub = backend.subscribe_to_room(room_id)
            room_pubsub_tasks[room_id] = asyncio.create_task(listen_to_redis_channel(backend, room_id, pubsub))

        await websocket.accept()
        logger.info(f"WebSocket connection {connection_id} accepted for room {room_id}")
        backend.add_connection(room_id, connection_id, ttl=ttl)

        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for connection {connection_id} in room {room_id}")
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id} in room {room_id}: {e}", exc_info=True)
    finally:
        room_connections.get(room_id, {}).pop(connection_id, None)
        try:
            backend.remove_connection(room_id, connection_id)
        except redis.exceptions.RedisError as e:
            logger.warning(f"Could not remove connection {connection_id} from room {room_id}: {e}")

        if room_id in room_connections and not room_connections[room_id]:
            del room_connections[room_id]
            task = room_pubsub_tasks.pop(room_id, None)
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            logger.info(f"No more local connections in room {room_id}, cleaned up")


app = create_app()
