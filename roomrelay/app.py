"""FastAPI application: the WebSocket relay endpoint and the HTTP control plane."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.websockets import WebSocketState

from . import __version__
from .constants import CLOSE_NORMAL
from .errors import RelayError
from .schemas import (
    AnonymousBody,
    CharacterLimitBody,
    ClientIdBody,
    ClientInfo,
    CommandResponse,
    IndexBody,
    IpBody,
    PathBody,
)
from .service import RelayService
from .trust import Principal


class WebSocketTransport:
    """Adapts a Starlette WebSocket to the session Transport protocol."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket

    @property
    def is_open(self) -> bool:
        return (
            self._ws.application_state == WebSocketState.CONNECTED
            and self._ws.client_state == WebSocketState.CONNECTED
        )

    async def send_text(self, text: str) -> None:
        await self._ws.send_text(text)

    async def close(self, code: int = CLOSE_NORMAL) -> None:
        if self._ws.application_state == WebSocketState.DISCONNECTED:
            return
        await self._ws.close(code=code)


def client_ip(
    headers: Mapping[str, str], client: Any, *, trust_forwarded_for: bool
) -> str | None:
    if trust_forwarded_for:
        xff = headers.get("x-forwarded-for")
        if xff:
            first = xff.split(",")[0].strip()
            if first:
                return first
    return client.host if client else None


def admin_token(headers: Mapping[str, str]) -> str | None:
    auth = headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return headers.get("x-admin-token") or None


def create_app(service: RelayService) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        service.start()
        try:
            yield
        finally:
            await service.stop()

    app = FastAPI(title="roomrelay", version=__version__, lifespan=lifespan)
    app.state.service = service
    control = service.control
    trust_xff = service.config.trust_forwarded_for

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status,
            content={"success": False, "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        detail = errors[0].get("msg", "invalid request") if errors else "invalid request"
        return JSONResponse(
            status_code=400, content={"success": False, "message": str(detail)}
        )

    def get_principal(request: Request) -> Principal:
        ip = client_ip(request.headers, request.client, trust_forwarded_for=trust_xff)
        return service.admin_gate.principal_for(ip, token=admin_token(request.headers))

    # -------------------- WebSocket relay --------------------

    @app.websocket("/ws")
    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        ip = client_ip(websocket.headers, websocket.client, trust_forwarded_for=trust_xff)
        session = service.session_manager.register(WebSocketTransport(websocket), ip=ip)
        try:
            while not session.closed:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await service.router.route_event(session, raw)
        except WebSocketDisconnect:
            pass
        finally:
            service.session_manager.deregister(session.client_id)

    # -------------------- Namespace --------------------

    @app.get("/paths")
    async def list_paths(principal: Principal = Depends(get_principal)) -> dict[str, Any]:
        return control.list_namespace(principal)

    @app.post("/add-category", response_model=CommandResponse)
    async def add_category(
        body: PathBody, principal: Principal = Depends(get_principal)
    ) -> dict[str, Any]:
        return (await control.add_category(principal, body.path)).to_dict()

    @app.post("/add-room", response_model=CommandResponse)
    async def add_room(
        body: PathBody, principal: Principal = Depends(get_principal)
    ) -> dict[str, Any]:
        return (await control.add_room(principal, body.path)).to_dict()

    # -------------------- Room inspection --------------------

    @app.get("/clients/{path:path}", response_model=list[ClientInfo])
    async def list_clients(
        path: str, principal: Principal = Depends(get_principal)
    ) -> list[dict[str, Any]]:
        return control.list_clients(principal, path)

    @app.get("/chat-logs/{path:path}")
    async def chat_logs(
        path: str, principal: Principal = Depends(get_principal)
    ) -> list[dict[str, Any]]:
        return control.chat_log(principal, path)

    # -------------------- Message history --------------------

    @app.post("/clear-messages/{path:path}", response_model=CommandResponse)
    async def clear_messages(
        path: str, principal: Principal = Depends(get_principal)
    ) -> dict[str, Any]:
        return (await control.clear_messages(principal, path)).to_dict()

    @app.post("/delete-message/{path:path}", response_model=CommandResponse)
    async def delete_message(
        path: str, body: IndexBody, principal: Principal = Depends(get_principal)
    ) -> dict[str, Any]:
        return (await control.delete_message(principal, path, body.index)).to_dict()

    # -------------------- Settings --------------------

    @app.post("/anonymous/{path:path}", response_model=CommandResponse)
    async def set_anonymous(
        path: str, body: AnonymousBody, principal: Principal = Depends(get_principal)
    ) -> dict[str, Any]:
        return (await control.set_anonymous(principal, path, body.anonymous)).to_dict()

    @app.post("/character-limit/{path:path}", response_model=CommandResponse)
    async def set_character_limit(
        path: str,
        body: CharacterLimitBody,
        principal: Principal = Depends(get_principal),
    ) -> dict[str, Any]:
        result = await control.set_character_limit(principal, path, body.characterLimit)
        return result.to_dict()

    # -------------------- Moderation --------------------

    @app.post("/kick-client/{path:path}", response_model=CommandResponse)
    async def kick_client(
        path: str, body: ClientIdBody, principal: Principal = Depends(get_principal)
    ) -> dict[str, Any]:
        return (await control.kick_client(principal, path, body.clientId)).to_dict()

    @app.post("/ban-client/{path:path}", response_model=CommandResponse)
    async def ban_client(
        path: str, body: IpBody, principal: Principal = Depends(get_principal)
    ) -> dict[str, Any]:
        return (await control.ban_in_room(principal, path, body.ip)).to_dict()

    @app.post("/ban-global", response_model=CommandResponse)
    async def ban_global(
        body: IpBody, principal: Principal = Depends(get_principal)
    ) -> dict[str, Any]:
        return (await control.ban_globally(principal, body.ip)).to_dict()

    # -------------------- Persistence & diagnostics --------------------

    @app.post("/save-chat", response_model=CommandResponse)
    async def save_chat(principal: Principal = Depends(get_principal)) -> dict[str, Any]:
        return control.save(principal).to_dict()

    @app.get("/stats")
    async def stats(principal: Principal = Depends(get_principal)) -> dict[str, Any]:
        return control.stats(principal)

    return app
