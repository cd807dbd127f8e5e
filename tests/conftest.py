import json

import pytest
import pytest_asyncio

from convai_bridge.domain.bridge import BridgeSnapshot, SessionBridge

AGENT_ID = "agent_test_123"


def user_transcript(text: str) -> str:
    return json.dumps(
        {"type": "user_transcript", "user_transcription_event": {"user_transcript": text}}
    )


def agent_response(text: str) -> str:
    return json.dumps({"type": "agent_response", "agent_response_event": {"agent_response": text}})


def agent_correction(text: str) -> str:
    return json.dumps(
        {
            "type": "agent_response_correction",
            "agent_response_correction_event": {"corrected_agent_response": text},
        }
    )


class FakeSessionProvider:
    def __init__(self, open_failures: int = 0) -> None:
        self._open_failures = open_failures
        self.events = None
        self.open_calls: list[tuple[str, str]] = []
        self.close_calls = 0
        self.sent_messages: list[str] = []
        self.close_error: Exception | None = None
        self.send_error: Exception | None = None
        self.open_hook = None

    def bind(self, events) -> None:
        self.events = events

    async def open_session(self, agent_id: str, user_id: str) -> None:
        self.open_calls.append((agent_id, user_id))
        if self.open_hook:
            await self.open_hook()
        if len(self.open_calls) <= self._open_failures:
            raise ConnectionError(f"open failed ({len(self.open_calls)})")

    async def close_session(self) -> None:
        self.close_calls += 1
        if self.close_error:
            raise self.close_error

    async def send_user_message(self, text: str) -> None:
        if self.send_error:
            raise self.send_error
        self.sent_messages.append(text)


class RecordingEvents:
    def __init__(self) -> None:
        self.connected: list[str] = []
        self.messages: list[tuple[str, str]] = []
        self.modes: list[str] = []
        self.statuses: list[str] = []

    def on_connect(self, session_id: str) -> None:
        self.connected.append(session_id)

    def on_message(self, source: str, payload: str) -> None:
        self.messages.append((source, payload))

    def on_mode_change(self, mode: str) -> None:
        self.modes.append(mode)

    def on_status_change(self, status: str) -> None:
        self.statuses.append(status)

    def message_types(self) -> list[str]:
        return [json.loads(payload)["type"] for _, payload in self.messages]


@pytest.fixture
def provider():
    return FakeSessionProvider()


@pytest.fixture
def bridge(provider):
    return SessionBridge(provider=provider, agent_id=AGENT_ID)


@pytest.fixture
def snapshots(bridge):
    received: list[BridgeSnapshot] = []
    bridge.add_listener(received.append)
    return received


@pytest_asyncio.fixture
async def active_bridge(bridge, provider):
    await bridge.start_call()
    provider.events.on_connect("conv_abc")
    return bridge
