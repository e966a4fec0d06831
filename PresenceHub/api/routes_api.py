"""
Messaging REST routes.

This is the CRUD side of the system: it persists through the MessageStore
and then reaches live users through the gateway's ``push_to_user``.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from PresenceHub import __version__ as __main_version__
from PresenceHub.config import config
from PresenceHub.core.message.protocol import EventType
from PresenceHub.core.server.auth import JWTAuthenticator
from PresenceHub.core.server.exceptions import StoreError
from PresenceHub.core.server.gateway import GatewayServer, get_gateway
from PresenceHub.core.server.interfaces import Identity, MessageStore
from .routes_base import SendMessageRequest, authenticate_request

logger = logging.getLogger(__name__)


def create_app(
    gateway: Optional[GatewayServer] = None,
    store: Optional[MessageStore] = None,
    authenticator: Optional[JWTAuthenticator] = None,
    allowed_origins: Optional[List[str]] = None
) -> FastAPI:
    """
    Build the messaging api.

    Collaborators left as None are resolved per request from the
    process-wide gateway, so the app can be created before ``initialize``.

    Args:
        gateway: Gateway used for pushes and presence reads
        store: Message store (gateway.store if None)
        authenticator: Bearer token verifier (gateway.authenticator if None)
        allowed_origins: CORS allow-list (config.allowed_origins() if None)

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="PresenceHub api",
        version=__main_version__,
        description="Direct messaging api for PresenceHub.",
        contact={"name": "PresenceHub Team"}
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins if allowed_origins is not None else config.allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def current_gateway() -> GatewayServer:
        return gateway if gateway is not None else get_gateway()

    def current_store(gw: GatewayServer = Depends(current_gateway)) -> MessageStore:
        return store if store is not None else gw.store

    def current_user(request: Request) -> Identity:
        verifier = authenticator if authenticator is not None else current_gateway().authenticator
        return authenticate_request(request, verifier)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error("Store failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.get("/health")
    async def health(gw: GatewayServer = Depends(current_gateway)) -> Dict[str, Any]:
        return {"status": "OK", "online": len(gw.online_user_ids())}

    @app.get("/api/messages/history/{other_user_id}")
    async def history(
        other_user_id: int,
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        me: Identity = Depends(current_user),
        db: MessageStore = Depends(current_store)
    ) -> List[Dict[str, Any]]:
        return await db.fetch_history(me.user_id, other_user_id, limit, offset)

    @app.post("/api/messages", status_code=201)
    async def send_message(
        body: SendMessageRequest,
        me: Identity = Depends(current_user),
        db: MessageStore = Depends(current_store),
        gw: GatewayServer = Depends(current_gateway)
    ) -> Dict[str, Any]:
        """
        Persist a message and push ``new_message`` to the recipient's room.

        This is a complete send path on its own, the same as the socket
        ``send_message`` event. A client uses one or the other per message;
        using both stores and delivers it twice. The sender gets the stored
        row back and no ``message_sent`` event.
        """
        content = body.content.strip()
        if not content:
            raise HTTPException(status_code=400, detail="Message content is required")

        if await db.find_user_by_id(body.recipientId) is None:
            raise HTTPException(status_code=404, detail="Recipient not found")

        message = await db.insert_message(me.user_id, body.recipientId, content)
        await gw.push_to_user(body.recipientId, EventType.NEW_MESSAGE, message)
        return message

    @app.put("/api/messages/read/{other_user_id}")
    async def mark_read(
        other_user_id: int,
        me: Identity = Depends(current_user),
        db: MessageStore = Depends(current_store),
        gw: GatewayServer = Depends(current_gateway)
    ) -> Dict[str, Any]:
        updated = await db.mark_read(me.user_id, other_user_id)
        await gw.push_to_user(other_user_id, EventType.MESSAGES_READ, {"userId": me.user_id})
        return {"message": "Messages marked as read", "updated": updated}

    @app.get("/api/messages/unread/count")
    async def unread_count(
        me: Identity = Depends(current_user),
        db: MessageStore = Depends(current_store)
    ) -> Dict[str, int]:
        return {"count": await db.unread_count(me.user_id)}

    @app.get("/api/messages/conversations")
    async def conversations(
        me: Identity = Depends(current_user),
        db: MessageStore = Depends(current_store)
    ) -> List[Dict[str, Any]]:
        return await db.list_conversations(me.user_id)

    @app.get("/api/messages/online")
    async def online_users(
        me: Identity = Depends(current_user),
        gw: GatewayServer = Depends(current_gateway)
    ) -> Dict[str, List[int]]:
        return {"online": gw.online_user_ids()}

    return app


__all__ = ['create_app']
