"""HTTP and WebSocket binding for the identity lifecycle and the message relay."""

from __future__ import annotations

import logging
from contextlib import suppress
from datetime import date, datetime
from typing import Dict, List, Optional, Type

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.websockets import WebSocketState
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .codes import CodeIssuer
from .config import Settings, load_settings
from .database import Database
from .errors import (
    AuthError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    QuickTalkError,
    ServerError,
    ValidationError,
)
from .identity import (
    REGISTERED_MESSAGE,
    RESET_COMPLETED_MESSAGE,
    VERIFIED_MESSAGE,
    IdentityManager,
)
from .keys import generate_public_key
from .models import Message, Profile
from .notifier import LoggingNotifier, Notifier
from .relay import InboxHub, RelayDispatcher
from .security import SessionAuth, extract_bearer_token
from .sessions import SessionManager
from .streaming import send_websocket_json, stream_chat

logger = logging.getLogger("quicktalk.service")

_ERROR_STATUS: Dict[Type[QuickTalkError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    AuthError: status.HTTP_401_UNAUTHORIZED,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    ServerError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for_error(exc: QuickTalkError) -> int:
    for error_type in type(exc).__mro__:
        code = _ERROR_STATUS.get(error_type)  # type: ignore[arg-type]
        if code is not None:
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class RegisterRequest(BaseModel):
    email: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    gender: Optional[str] = Field(default=None, max_length=20)
    date_of_birth: Optional[date] = None
    country_of_origin: Optional[str] = Field(default=None, max_length=100)

    def profile(self) -> Profile:
        return Profile(
            first_name=self.first_name,
            last_name=self.last_name,
            gender=self.gender,
            date_of_birth=self.date_of_birth,
            country_of_origin=self.country_of_origin,
        )


class VerifyEmailRequest(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class EmailRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = None
    new_password: Optional[str] = None
    confirm_password: Optional[str] = None


class MessageRequest(BaseModel):
    recipient: Optional[str] = None
    content: Optional[str] = None


class DetailResponse(BaseModel):
    detail: str


class LoginResponse(BaseModel):
    username: str
    token: str
    expires_in: int


class AccountResponse(BaseModel):
    username: str
    email: str
    verified: bool
    first_name: Optional[str]
    last_name: Optional[str]
    gender: Optional[str]
    date_of_birth: Optional[date]
    country_of_origin: Optional[str]
    created_at: datetime


class PublicKeyResponse(BaseModel):
    public_key: str


class MessageResponse(BaseModel):
    id: int
    room: str
    sender: str
    recipient: str
    content: str
    sent_at: datetime


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]


def message_to_response(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        room=message.room,
        sender=message.sender,
        recipient=message.recipient,
        content=message.content,
        sent_at=message.sent_at,
    )


def _trusted_proxy_hosts(settings: Settings) -> list[str] | str:
    hosts = list(settings.trusted_proxies)
    return hosts or "127.0.0.1"


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    notifier: Notifier | None = None,
    codes: CodeIssuer | None = None,
    sessions: SessionManager | None = None,
    hub: InboxHub | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the chat service."""

    settings = settings or load_settings()
    db = database or Database(settings.database_path)
    db.initialize()

    code_issuer = codes or CodeIssuer(ttl=settings.code_ttl)
    session_manager = sessions or SessionManager(ttl=settings.session_ttl)
    identity = IdentityManager(db, code_issuer, notifier or LoggingNotifier())
    dispatcher = RelayDispatcher(db, hub or InboxHub(queue_size=settings.inbox_queue_size))
    current_handle = SessionAuth(session_manager)

    app = FastAPI(
        title="QuickTalk",
        version="0.1.0",
        description="OTP-verified accounts and a two-party message relay.",
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_proxy_hosts(settings))
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.settings = settings
    app.state.database = db
    app.state.codes = code_issuer
    app.state.sessions = session_manager
    app.state.identity = identity
    app.state.dispatcher = dispatcher

    @app.exception_handler(QuickTalkError)
    async def handle_quicktalk_error(_: Request, exc: QuickTalkError) -> JSONResponse:
        code = status_for_error(exc)
        if code >= 500:
            logger.error("Request failed: %s", exc.message, exc_info=exc.__cause__ or exc)
        payload: Dict[str, object] = {"detail": exc.message}
        if isinstance(exc, ConflictError):
            payload["field"] = exc.field
        return JSONResponse(status_code=code, content=payload)

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/users/ping")
    async def ping() -> str:
        return "ok"

    # ------------------------------------------------------------------
    # Identity lifecycle
    # ------------------------------------------------------------------
    @app.post(
        "/api/auth/register",
        response_model=DetailResponse,
        status_code=status.HTTP_201_CREATED,
    )
    def register(request: RegisterRequest) -> DetailResponse:
        identity.register(
            request.username,
            request.email,
            request.password,
            request.confirm_password,
            request.profile(),
        )
        return DetailResponse(detail=REGISTERED_MESSAGE)

    @app.post("/api/auth/verify-email", response_model=DetailResponse)
    def verify_email(request: VerifyEmailRequest) -> DetailResponse:
        identity.verify_email(request.email, request.otp)
        return DetailResponse(detail=VERIFIED_MESSAGE)

    @app.post("/api/auth/resend-verification", response_model=DetailResponse)
    def resend_verification(request: EmailRequest) -> DetailResponse:
        return DetailResponse(detail=identity.resend_verification(request.email))

    @app.post("/api/auth/login", response_model=LoginResponse)
    def login(request: LoginRequest) -> LoginResponse:
        handle = identity.login(request.email, request.password)
        token = session_manager.create(handle)
        return LoginResponse(username=handle, token=token, expires_in=session_manager.expires_in)

    @app.post("/api/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
    async def logout(request: Request, _: str = Depends(current_handle)) -> None:
        token = extract_bearer_token(request.headers.get("authorization"))
        if token:
            session_manager.destroy(token)

    @app.post("/api/auth/request-password-reset", response_model=DetailResponse)
    def request_password_reset(request: EmailRequest) -> DetailResponse:
        return DetailResponse(detail=identity.request_password_reset(request.email))

    @app.post("/api/auth/reset-password", response_model=DetailResponse)
    def reset_password(request: ResetPasswordRequest) -> DetailResponse:
        account = identity.reset_password(
            request.email,
            request.otp,
            request.new_password,
            request.confirm_password,
        )
        revoked = session_manager.revoke_handle(account.handle)
        if revoked:
            logger.info("Revoked %s session(s) for account %s after password reset", revoked, account.handle)
        return DetailResponse(detail=RESET_COMPLETED_MESSAGE)

    @app.get("/api/users/me", response_model=AccountResponse)
    def read_current_account(handle: str = Depends(current_handle)) -> AccountResponse:
        account = db.find_account_by_handle(handle)
        if account is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
        return AccountResponse(
            username=account.handle,
            email=account.address,
            verified=account.verified,
            first_name=account.profile.first_name,
            last_name=account.profile.last_name,
            gender=account.profile.gender,
            date_of_birth=account.profile.date_of_birth,
            country_of_origin=account.profile.country_of_origin,
            created_at=account.created_at,
        )

    @app.get("/api/crypto/keypair", response_model=PublicKeyResponse)
    async def generate_keypair() -> PublicKeyResponse:
        return PublicKeyResponse(public_key=generate_public_key())

    # ------------------------------------------------------------------
    # Message relay
    # ------------------------------------------------------------------
    @app.post(
        "/api/messages",
        response_model=MessageResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def send_message(
        request: MessageRequest,
        handle: str = Depends(current_handle),
    ) -> MessageResponse:
        message = await dispatcher.submit(handle, request.recipient, request.content)
        if message is None:
            raise ValidationError("Recipient and non-blank content are required.")
        return message_to_response(message)

    @app.get("/api/messages/history", response_model=MessageListResponse)
    def read_history(handle: str = Depends(current_handle)) -> MessageListResponse:
        return MessageListResponse(
            messages=[message_to_response(message) for message in dispatcher.history(handle)]
        )

    @app.get("/api/messages/conversation/{peer}", response_model=MessageListResponse)
    def read_conversation(peer: str, handle: str = Depends(current_handle)) -> MessageListResponse:
        return MessageListResponse(
            messages=[
                message_to_response(message)
                for message in dispatcher.conversation(handle, peer)
            ]
        )

    @app.websocket("/ws/chat")
    async def chat_socket(websocket: WebSocket) -> None:
        token = extract_bearer_token(websocket.headers.get("authorization"))
        if token is None:
            token = websocket.query_params.get("token") or None
        if token is None:
            await websocket.close(code=4401)
            return
        handle = session_manager.resolve(token)
        if handle is None:
            await websocket.close(code=4403)
            return

        # Subscribe before accepting so nothing relayed after the handshake is missed.
        subscription = await dispatcher.hub.subscribe(handle)
        try:
            await websocket.accept()
            await send_websocket_json(
                websocket,
                {"type": "status", "status": "connected", "username": handle},
            )
            await stream_chat(websocket, dispatcher, subscription, handle=handle)
        finally:
            await dispatcher.hub.unsubscribe(subscription)
            if websocket.client_state != WebSocketState.DISCONNECTED:
                with suppress(Exception):
                    await websocket.close()

    return app


__all__ = ["create_app", "message_to_response", "status_for_error"]
