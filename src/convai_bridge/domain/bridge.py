import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from convai_bridge.domain.errors import ConfigurationError, MessageParseError, SessionOpenError
from convai_bridge.domain.messages import (
    AgentResponse,
    AgentResponseCorrection,
    Interruption,
    Ping,
    UserTranscript,
    parse_message,
)
from convai_bridge.domain.state import CallStatus, is_expected_transition, status_for_mode
from convai_bridge.domain.transcript import Transcript, TranscriptEntry
from convai_bridge.ports.session import SessionProvider

logger = logging.getLogger(__name__)

DEFAULT_OPEN_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.5


@dataclass(frozen=True)
class BridgeSnapshot:
    is_call_active: bool
    is_loading: bool
    is_muted: bool
    call_status: CallStatus
    transcript: tuple[TranscriptEntry, ...]
    session_id: str | None


Listener = Callable[[BridgeSnapshot], None]


class SessionBridge:
    """Owns the single conversation session and the state the UI renders.

    Outbound intents (start, end, send, mute) come from the UI; inbound
    events come from the session provider, which must call back on the
    same event loop. Every completed mutation step emits one snapshot to
    the registered listeners.
    """

    def __init__(
        self,
        provider: SessionProvider,
        agent_id: str = "",
        user_id: str = "",
        open_attempts: int = DEFAULT_OPEN_ATTEMPTS,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
    ) -> None:
        self._provider = provider
        self._agent_id = agent_id
        self._user_id = user_id
        self._open_attempts = open_attempts
        self._retry_backoff_seconds = retry_backoff_seconds

        self._is_call_active = False
        self._is_loading = False
        self._is_muted = False
        self._call_status = CallStatus.IDLE
        self._transcript = Transcript()
        self._session_id: str | None = None

        self._starting = False
        self._generation = 0
        self._latest_start = 0
        self._listeners: list[Listener] = []

        provider.bind(self)

    @property
    def agent_id(self) -> str:
        return self._agent_id

    @property
    def is_call_active(self) -> bool:
        return self._is_call_active

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_muted(self) -> bool:
        return self._is_muted

    @property
    def call_status(self) -> CallStatus:
        return self._call_status

    @property
    def transcript(self) -> tuple[TranscriptEntry, ...]:
        return self._transcript.entries

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def snapshot(self) -> BridgeSnapshot:
        return BridgeSnapshot(
            is_call_active=self._is_call_active,
            is_loading=self._is_loading,
            is_muted=self._is_muted,
            call_status=self._call_status,
            transcript=self._transcript.entries,
            session_id=self._session_id,
        )

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def start_call(self) -> None:
        if self._is_call_active or self._starting:
            return

        self._is_loading = True
        self._notify()

        if not self._agent_id.strip():
            self._is_loading = False
            self._set_status(CallStatus.ERROR)
            self._notify()
            raise ConfigurationError(
                "ElevenLabs agent ID is not configured, set ELEVENLABS_AGENT_ID"
            )

        self._starting = True
        self._generation += 1
        generation = self._generation
        self._latest_start = generation
        user_id = self._user_id or f"convai_user_{int(time.time() * 1000)}"

        try:
            last_error: Exception | None = None
            for attempt in range(1, self._open_attempts + 1):
                logger.info(
                    "Opening session attempt %d/%d (agent=%s)",
                    attempt,
                    self._open_attempts,
                    self._agent_id,
                )
                try:
                    await self._provider.open_session(self._agent_id, user_id)
                except Exception as exc:
                    last_error = exc
                    logger.warning("Attempt %d failed: %s", attempt, exc)
                    if attempt < self._open_attempts:
                        await asyncio.sleep(self._retry_backoff_seconds * attempt)
                    if generation != self._generation:
                        logger.info("Session start was cancelled, abandoning retries")
                        return
                    continue

                if generation != self._generation:
                    # A newer start owns the provider session; leave it alone.
                    if self._latest_start == generation:
                        logger.info("Session start was cancelled, closing late session")
                        await self._close_provider_session()
                    return

                self._set_status(CallStatus.CONNECTING)
                self._notify()
                return

            self._is_loading = False
            self._set_status(CallStatus.ERROR)
            self._notify()
            if last_error is None:
                raise SessionOpenError("Failed to open session: exhausted retries")
            raise SessionOpenError(
                f"Failed to open session after {self._open_attempts} attempts: {last_error}"
            ) from last_error
        finally:
            if generation == self._generation:
                self._starting = False

    async def end_call(self) -> None:
        if not self._is_call_active and not self._starting:
            return

        # Invalidates any retry loop still running in start_call.
        self._generation += 1
        self._starting = False

        self._is_loading = True
        self._notify()

        await self._close_provider_session()

        self._is_call_active = False
        self._is_muted = False
        self._session_id = None
        self._is_loading = False
        self._set_status(CallStatus.IDLE)
        self._transcript.clear()
        self._notify()

    async def send_message(self, text: str) -> None:
        if not self._is_call_active:
            return

        try:
            await self._provider.send_user_message(text)
        except Exception as exc:
            logger.error("Error sending message: %s", exc)
            return

        logger.info("Transcript: [user] %s", text)
        self._transcript.add_user_entry(text)
        self._notify()

    def toggle_mute(self) -> bool:
        # Local display flag only; the provider is never told about it.
        self._is_muted = not self._is_muted
        logger.info("Mute %s", "on" if self._is_muted else "off")
        self._notify()
        return self._is_muted

    async def aclose(self) -> None:
        if self._is_call_active or self._starting:
            await self.end_call()

    def on_connect(self, session_id: str) -> None:
        logger.info("Connected to conversation: %s", session_id)
        self._session_id = session_id
        self._is_call_active = True
        self._is_loading = False
        self._set_status(CallStatus.ACTIVE)
        self._notify()

    def on_message(self, source: str, payload: str) -> None:
        logger.debug("Message from %s: %s", source, payload)
        try:
            message = parse_message(payload)
        except MessageParseError as exc:
            logger.warning("Dropping malformed message from %s: %s", source, exc)
            return

        if isinstance(message, UserTranscript):
            self._append_entry(message.text.strip(), is_user=True)
        elif isinstance(message, AgentResponse):
            self._append_entry(message.text.strip(), is_user=False)
        elif isinstance(message, AgentResponseCorrection):
            corrected = message.text.strip()
            if corrected:
                logger.info("Correction: %s", corrected)
                self._transcript.replace_last_agent_entry(corrected)
                self._notify()
        elif isinstance(message, Ping):
            logger.debug("Ping ignored")
        elif isinstance(message, Interruption):
            logger.info("Conversation interrupted")
        else:
            logger.info("Unhandled message type: %s", message.type)

    def on_mode_change(self, mode: str) -> None:
        logger.debug("Mode changed: %s", mode)
        self._set_status(status_for_mode(mode))
        self._notify()

    def on_status_change(self, status: str) -> None:
        logger.debug("Status changed: %s", status)
        if status == "connected":
            self._set_status(CallStatus.ACTIVE)
        elif status == "connecting":
            self._set_status(CallStatus.CONNECTING)
        elif status == "disconnected":
            self._is_call_active = False
            self._is_loading = False
            self._set_status(CallStatus.IDLE)
        else:
            logger.info("Ignoring unknown connection status: %s", status)
            return
        self._notify()

    async def _close_provider_session(self) -> None:
        try:
            await self._provider.close_session()
        except Exception as exc:
            logger.error("Error closing session: %s", exc)

    def _append_entry(self, text: str, is_user: bool) -> None:
        if not text:
            return
        logger.info("Transcript: [%s] %s", "user" if is_user else "agent", text)
        if is_user:
            self._transcript.add_user_entry(text)
        else:
            self._transcript.add_agent_entry(text)
        self._notify()

    def _set_status(self, target: CallStatus) -> None:
        if target == self._call_status:
            return
        if not is_expected_transition(self._call_status, target):
            logger.warning(
                "Unexpected state change %s -> %s", self._call_status.name, target.name
            )
        logger.info("State: %s -> %s", self._call_status.name, target.name)
        self._call_status = target

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener failed")
