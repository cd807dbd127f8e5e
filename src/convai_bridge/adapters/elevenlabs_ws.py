import asyncio
import json
import logging
from urllib.parse import urlencode

import httpx
import websockets
from websockets.exceptions import ConnectionClosedError, WebSocketException

from convai_bridge.domain.errors import SendMessageError, SessionCloseError, SessionOpenError
from convai_bridge.ports.session import SessionEvents

logger = logging.getLogger(__name__)

CONVERSATION_PATH = "/v1/convai/conversation"
SIGNED_URL_PATH = "/v1/convai/conversation/get-signed-url"


class ElevenLabsWebSocketSession:
    """Session provider speaking the ElevenLabs Conversational AI WebSocket API.

    Conversations are opened in text-only mode; audio never flows through
    this adapter. The receive loop runs as a task on the caller's event
    loop, so every callback lands on the bridge's loop.
    """

    def __init__(
        self,
        api_key: str = "",
        api_base_url: str = "https://api.elevenlabs.io",
        ws_base_url: str = "wss://api.elevenlabs.io",
        text_only: bool = True,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_base_url = api_base_url.rstrip("/")
        self._ws_base_url = ws_base_url.rstrip("/")
        self._text_only = text_only
        self._http_transport = http_transport
        self._events: SessionEvents | None = None
        self._socket = None
        self._receive_task: asyncio.Task | None = None

    def bind(self, events: SessionEvents) -> None:
        self._events = events

    @property
    def is_open(self) -> bool:
        return self._socket is not None

    async def open_session(self, agent_id: str, user_id: str) -> None:
        if self._events is None:
            raise SessionOpenError("No event sink bound to the session provider")

        if self._socket is not None:
            await self.close_session()

        self._events.on_status_change("connecting")
        try:
            url = await self._conversation_url(agent_id)
            socket = await websockets.connect(url)
        except SessionOpenError:
            raise
        except Exception as exc:
            raise SessionOpenError(f"Could not connect to conversation: {exc}") from exc

        try:
            await socket.send(json.dumps(self._initiation_data(user_id)))
        except WebSocketException as exc:
            await socket.close()
            raise SessionOpenError(f"Could not initiate conversation: {exc}") from exc

        self._socket = socket
        self._receive_task = asyncio.create_task(self._receive_loop(socket))
        logger.info("Conversation socket open (agent=%s, user=%s)", agent_id, user_id)

    async def close_session(self) -> None:
        task, socket = self._receive_task, self._socket
        self._receive_task = None
        self._socket = None

        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if socket is None:
            return
        try:
            await socket.close()
        except Exception as exc:
            raise SessionCloseError(f"Error closing conversation socket: {exc}") from exc
        logger.info("Conversation socket closed")

    async def send_user_message(self, text: str) -> None:
        if self._socket is None:
            raise SendMessageError("No open conversation")
        try:
            await self._socket.send(json.dumps({"type": "user_message", "text": text}))
        except WebSocketException as exc:
            raise SendMessageError(f"Could not send message: {exc}") from exc

    async def _conversation_url(self, agent_id: str) -> str:
        if not self._api_key:
            query = urlencode({"agent_id": agent_id})
            return f"{self._ws_base_url}{CONVERSATION_PATH}?{query}"

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(10.0), transport=self._http_transport
        ) as client:
            try:
                response = await client.get(
                    f"{self._api_base_url}{SIGNED_URL_PATH}",
                    params={"agent_id": agent_id},
                    headers={"xi-api-key": self._api_key},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise SessionOpenError(
                    f"Signed URL request failed: {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                raise SessionOpenError(f"Signed URL request failed: {exc}") from exc

        signed_url = response.json().get("signed_url")
        if not signed_url:
            raise SessionOpenError("Signed URL response did not contain 'signed_url'")
        return signed_url

    def _initiation_data(self, user_id: str) -> dict:
        data: dict = {"type": "conversation_initiation_client_data", "user_id": user_id}
        if self._text_only:
            data["conversation_config_override"] = {"conversation": {"text_only": True}}
        return data

    async def _receive_loop(self, socket) -> None:
        try:
            async for raw in socket:
                if isinstance(raw, bytes):
                    continue
                await self._dispatch(socket, raw)
        except ConnectionClosedError as exc:
            logger.warning("Conversation socket dropped: %s", exc)
        except Exception:
            logger.exception("Conversation receive loop failed")

        if self._socket is socket:
            self._socket = None
            self._receive_task = None
        logger.info("Conversation ended by remote")
        self._events.on_status_change("disconnected")

    async def _dispatch(self, socket, raw: str) -> None:
        try:
            data = json.loads(raw)
            message_type = data.get("type") if isinstance(data, dict) else None
        except (ValueError, RecursionError):
            message_type = None

        if message_type == "conversation_initiation_metadata":
            event = data.get("conversation_initiation_metadata_event")
            if not isinstance(event, dict):
                event = {}
            self._events.on_connect(str(event.get("conversation_id", "")))
            self._events.on_status_change("connected")
            self._events.on_mode_change("listening")
            return

        if message_type == "ping":
            event = data.get("ping_event")
            if not isinstance(event, dict):
                event = {}
            await socket.send(json.dumps({"type": "pong", "event_id": event.get("event_id")}))

        if message_type == "audio":
            self._events.on_mode_change("speaking")
            return

        source = "user" if message_type == "user_transcript" else "ai"
        if message_type == "agent_response":
            self._events.on_mode_change("speaking")

        self._events.on_message(source, raw)

        if message_type == "user_transcript":
            self._events.on_mode_change("speaking")
        elif message_type == "interruption":
            self._events.on_mode_change("listening")
        elif message_type == "agent_response" and self._text_only:
            self._events.on_mode_change("listening")
