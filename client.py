"""
Client side session state for the InfluencerConnect API.

``ChatSession`` keeps what a front end needs between calls: the token and
current user, contacts, chats, the open conversation and its messages. Live
updates arrive over a WebSocket channel attached with ``attach`` (any object
with ``send_json``/``receive_json``) or opened with ``connect``. Failures are
recorded in ``session.error`` and raised as ``ClientError``.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from websockets.sync.client import connect as ws_connect

logger = logging.getLogger(__name__)


class ClientError(Exception):
    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class WebSocketChannel:
    """Adapts a ``websockets`` connection to send_json/receive_json."""

    def __init__(self, connection):
        self.connection = connection

    def send_json(self, data: Dict[str, Any]) -> None:
        self.connection.send(json.dumps(data))

    def receive_json(self) -> Dict[str, Any]:
        return json.loads(self.connection.recv())

    def close(self) -> None:
        self.connection.close()


class ChatSession:
    def __init__(self, http: httpx.Client):
        self.http = http
        self.token: Optional[str] = None
        self.user: Optional[Dict[str, Any]] = None
        self.contacts: List[Dict[str, Any]] = []
        self.chats: List[Dict[str, Any]] = []
        self.chat_id: Optional[str] = None
        self.messages: List[Dict[str, Any]] = []
        self.error: Optional[str] = None
        self.channel = None

    def _fail(self, detail: str, status_code: Optional[int] = None):
        self.error = detail
        logger.warning("Request failed: %s", detail)
        raise ClientError(detail, status_code)

    def _request(self, method: str, url: str, **kwargs) -> Any:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            resp = self.http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            self._fail(f"Network error: {e}")
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("detail", resp.text)
            except ValueError:
                detail = resp.text
            self._fail(detail, resp.status_code)
        self.error = None
        return resp.json()

    def _start(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.token = data["token"]
        self.user = data["user"]
        return self.user

    def register(self, username: str, email: str, password: str) -> Dict[str, Any]:
        return self._start(self._request("POST", "/api/users/register", json={"username": username, "email": email, "password": password}))

    def login(self, password: str, username: Optional[str] = None, email: Optional[str] = None) -> Dict[str, Any]:
        return self._start(self._request("POST", "/api/users/login", json={"username": username, "email": email, "password": password}))

    def load_profile(self) -> Dict[str, Any]:
        self.user = self._request("GET", "/api/users/me")["user"]
        return self.user

    def update_profile(self, **changes) -> Dict[str, Any]:
        self.user = self._request("PATCH", "/api/users/me", json=changes)["user"]
        return self.user

    def load_contacts(self) -> List[Dict[str, Any]]:
        self.contacts = self._request("GET", "/api/contacts")
        return self.contacts

    def load_chats(self) -> List[Dict[str, Any]]:
        self.chats = self._request("GET", "/api/chats")
        return self.chats

    def attach(self, channel) -> None:
        self.channel = channel

    def connect(self, ws_url: str) -> None:
        self.attach(WebSocketChannel(ws_connect(f"{ws_url}/ws?token={self.token}")))

    def disconnect(self) -> None:
        if self.channel is None:
            return
        self.close_chat()
        if isinstance(self.channel, WebSocketChannel):
            self.channel.close()
        self.channel = None

    def open_chat(self, contact_id: str) -> str:
        self.close_chat()
        chat = self._request("POST", "/api/chats", json={"contact_id": contact_id})
        self.chat_id = chat["id"]
        self.messages = self._request("GET", f"/api/messages/{self.chat_id}")
        if self.channel is not None:
            self._emit("join", {"chatId": self.chat_id, "username": self.user["username"]})
            self._wait_for("joined")
        return self.chat_id

    def close_chat(self) -> None:
        if self.chat_id is None:
            return
        chat_id, self.chat_id = self.chat_id, None
        self.messages = []
        if self.channel is not None:
            self._emit("leave", {"chatId": chat_id, "username": self.user["username"]})
            self._wait_for("left")

    def send(self, content: str) -> None:
        if not content or not content.strip():
            self._fail("Message content cannot be empty")
        if self.chat_id is None:
            self._fail("No chat is open")
        if self.channel is not None:
            self._emit("sendMessage", {"chatId": self.chat_id, "sender": self.user["id"], "content": content})
            return
        self._apply_message(self._request("POST", f"/api/messages/{self.chat_id}", json={"content": content}))

    def receive(self) -> Dict[str, Any]:
        frame = self.channel.receive_json()
        name, data = frame.get("event"), frame.get("data") or {}
        if name == "message":
            self._apply_message(data)
        elif name == "error":
            self.error = data.get("detail")
        return frame

    def _emit(self, name: str, data: Dict[str, Any]) -> None:
        self.channel.send_json({"event": name, "data": data})

    def _wait_for(self, name: str) -> Dict[str, Any]:
        while True:
            frame = self.receive()
            if frame.get("event") == name:
                return frame
            if frame.get("event") == "error":
                raise ClientError(self.error)

    def _apply_message(self, message: Dict[str, Any]) -> None:
        if message.get("chat_id") != self.chat_id:
            return
        if any(m["id"] == message["id"] for m in self.messages):
            return
        self.messages.append(message)
