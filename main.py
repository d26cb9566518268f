import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo.database import Database

import accounts
import chats
from auth import authenticate_websocket, create_access_token, get_ctx, get_current_user, resolve_user
from config import Settings, configure_logging
from database import connect, ensure_indexes, to_str_id
from errors import AppError, ContactNotFound
from realtime import Broker, RoomConnection, create_broker

logger = logging.getLogger(__name__)


class AppContext:
    def __init__(self, settings: Settings, db: Database, broker: Broker):
        self.settings = settings
        self.db = db
        self.broker = broker


class RegisterRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class SocialLinksUpdate(BaseModel):
    instagram: Optional[str] = None
    twitter: Optional[str] = None
    youtube: Optional[str] = None
    tiktok: Optional[str] = None


class UpdateProfileRequest(BaseModel):
    bio: Optional[str] = None
    avatar: Optional[str] = None
    role: Optional[str] = None
    location: Optional[str] = None
    interests: Optional[Union[List[str], str]] = None
    social_links: Optional[SocialLinksUpdate] = None


class OpenChatRequest(BaseModel):
    contact_id: str


class SendMessageRequest(BaseModel):
    content: Optional[str] = None
    receiver_id: Optional[str] = None


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None, broker: Optional[Broker] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    db = db if db is not None else connect(settings)
    broker = broker or create_broker(settings.redis_url)
    ctx = AppContext(settings, db, broker)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_indexes(ctx.db)
        yield
        await ctx.broker.close()
        ctx.db.client.close()

    app = FastAPI(title="InfluencerConnect API", lifespan=lifespan)
    app.state.ctx = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": "Invalid request body"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Server error"})

    @app.get("/")
    def read_root():
        return {"message": "InfluencerConnect API running"}

    @app.get("/healthz")
    def healthz():
        return {"ok": True, "time": datetime.now(timezone.utc).isoformat()}

    # Accounts

    @app.post("/api/users/register", status_code=201)
    def register(payload: RegisterRequest, ctx=Depends(get_ctx)):
        user = accounts.register_user(ctx.db, payload.username, payload.email, payload.password)
        token = create_access_token(str(user["_id"]), ctx.settings)
        return {"token": token, "user": accounts.public_user(user)}

    @app.post("/api/users/login")
    def login(payload: LoginRequest, ctx=Depends(get_ctx)):
        user = accounts.authenticate(ctx.db, payload.password, username=payload.username, email=payload.email)
        token = create_access_token(str(user["_id"]), ctx.settings)
        return {"token": token, "user": accounts.public_user(user)}

    @app.get("/api/users/me")
    def get_me(user=Depends(get_current_user)):
        return {"user": accounts.profile(user)}

    @app.patch("/api/users/me")
    def update_me(payload: UpdateProfileRequest, user=Depends(get_current_user), ctx=Depends(get_ctx)):
        changes = payload.model_dump(exclude_none=True)
        if payload.social_links is not None:
            changes["social_links"] = payload.social_links.model_dump(exclude_none=True)
        updated = accounts.update_profile(ctx.db, user, changes)
        return {"user": accounts.profile(updated)}

    @app.get("/api/contacts")
    def get_contacts(user=Depends(get_current_user), ctx=Depends(get_ctx)):
        return accounts.list_contacts(ctx.db, user)

    @app.get("/api/dashboard")
    def get_dashboard(user=Depends(get_current_user), ctx=Depends(get_ctx)):
        return accounts.dashboard(ctx.db, user)

    # Chats and messages

    @app.post("/api/chats")
    def open_chat(payload: OpenChatRequest, user=Depends(get_current_user), ctx=Depends(get_ctx)):
        uid = str(user["_id"])
        contact = resolve_user(ctx.db, payload.contact_id)
        if not contact:
            raise ContactNotFound()
        if str(contact["_id"]) == uid:
            raise ContactNotFound("Cannot start a chat with yourself")
        chat = chats.get_or_create_chat(ctx.db, uid, str(contact["_id"]))
        return to_str_id(chat)

    @app.get("/api/chats")
    def get_chats(user=Depends(get_current_user), ctx=Depends(get_ctx)):
        return chats.list_chats(ctx.db, str(user["_id"]))

    @app.get("/api/messages/{chat_id}")
    def get_messages(chat_id: str, user=Depends(get_current_user), ctx=Depends(get_ctx)):
        chat = chats.get_chat(ctx.db, chat_id)
        if not chat or str(user["_id"]) not in chat.get("participants", []):
            return []
        return chats.list_messages(ctx.db, chat_id)

    @app.post("/api/messages/{chat_id}", status_code=201)
    async def post_message(chat_id: str, payload: SendMessageRequest, user=Depends(get_current_user), ctx=Depends(get_ctx)):
        message = await run_in_threadpool(chats.send_message, ctx.db, chat_id, str(user["_id"]), payload.content, receiver_id=payload.receiver_id)
        await publish_message(ctx, message)
        return message

    # Realtime

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        try:
            user = authenticate_websocket(websocket, ctx)
        except AppError:
            await websocket.close(code=1008)
            return
        await websocket.accept()
        uid = str(user["_id"])
        logger.info("User %s connected", user["username"])

        conn = RoomConnection(websocket, ctx.broker)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                frame = parse_frame(message.get("text"))
                await handle_event(ctx, conn, uid, frame)
        except WebSocketDisconnect:
            logger.info("User %s disconnected", user["username"])
        finally:
            await conn.close_all()

    return app


def parse_frame(text: Optional[str]):
    # binary frames carry no text and are treated like malformed JSON
    if text is None:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


async def publish_message(ctx: AppContext, message: Dict) -> None:
    try:
        await ctx.broker.publish(message["chat_id"], message)
    except Exception:
        # the message is stored; subscribers will see it on their next history fetch
        logger.exception("Publishing message %s failed", message["id"])


async def handle_event(ctx: AppContext, conn: RoomConnection, uid: str, frame) -> None:
    if not isinstance(frame, dict):
        await conn.send("error", {"detail": "Invalid event"})
        return
    name = frame.get("event")
    data = frame.get("data")
    if not isinstance(data, dict):
        data = {}
    chat_id = data.get("chatId")
    try:
        if name == "join":
            await run_in_threadpool(chats.require_participant, ctx.db, chat_id, uid)
            if await conn.join(chat_id):
                logger.info("%s joined chat: %s", data.get("username") or uid, chat_id)
            await conn.send("joined", {"chatId": chat_id})
        elif name == "leave":
            if await conn.leave(chat_id):
                logger.info("%s left chat: %s", data.get("username") or uid, chat_id)
            await conn.send("left", {"chatId": chat_id})
        elif name == "sendMessage":
            sender = data.get("sender")
            if sender is not None and str(sender) != uid:
                await conn.send("error", {"detail": "Sender does not match the authenticated user", "chatId": chat_id})
                return
            message = await run_in_threadpool(chats.send_message, ctx.db, chat_id, uid, data.get("content"), receiver_id=data.get("receiver"))
            await publish_message(ctx, message)
        else:
            await conn.send("error", {"detail": f"Unknown event: {name}"})
    except AppError as e:
        await conn.send("error", {"detail": e.detail, "chatId": chat_id})
    except Exception:
        logger.exception("Handling %s failed", name)
        await conn.send("error", {"detail": "Server error", "chatId": chat_id})


settings = Settings.from_env()
configure_logging(settings)
app = create_app(settings)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
