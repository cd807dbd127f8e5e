import io

import pytest

from convai_bridge.cli import ConsoleView
from convai_bridge.domain.bridge import SessionBridge
from convai_bridge.domain.errors import SessionOpenError
from convai_bridge.domain.state import CallStatus
from tests.conftest import (
    AGENT_ID,
    FakeSessionProvider,
    agent_correction,
    agent_response,
    user_transcript,
)


@pytest.fixture
def output():
    return io.StringIO()


class TestConsoleView:
    @pytest.mark.asyncio
    async def test_prints_status_and_new_entries(self, bridge, provider, output):
        view = ConsoleView(stream=output)
        bridge.add_listener(view.render)

        await bridge.start_call()
        provider.events.on_connect("conv_1")
        bridge.on_message("user", user_transcript("hello"))
        bridge.on_message("ai", agent_response("Hi there"))

        lines = output.getvalue().splitlines()
        assert "[connecting]" in lines
        assert "[active]" in lines
        assert lines[-2].endswith("you: hello")
        assert lines[-1].endswith("agent: Hi there")

    @pytest.mark.asyncio
    async def test_marks_corrected_entry(self, bridge, provider, output):
        view = ConsoleView(stream=output)
        bridge.add_listener(view.render)

        await bridge.start_call()
        provider.events.on_connect("conv_1")
        bridge.on_message("ai", agent_response("Hello world"))
        bridge.on_message("ai", agent_correction("Hello"))

        assert output.getvalue().splitlines()[-1].endswith("agent (corrected): Hello")

    def test_shows_mute(self, bridge, output):
        view = ConsoleView(stream=output)
        bridge.add_listener(view.render)
        bridge.toggle_mute()
        assert output.getvalue().splitlines() == ["[idle (muted)]"]

    @pytest.mark.asyncio
    async def test_calls_on_disconnect_after_remote_hangup(self, bridge, provider, output):
        hangups = []
        view = ConsoleView(on_disconnect=lambda: hangups.append(True), stream=output)
        bridge.add_listener(view.render)

        await bridge.start_call()
        assert hangups == []
        provider.events.on_connect("conv_1")
        provider.events.on_status_change("disconnected")

        assert hangups == [True]

    @pytest.mark.asyncio
    async def test_calls_on_disconnect_when_rejected_early(self, bridge, provider, output):
        hangups = []
        view = ConsoleView(on_disconnect=lambda: hangups.append(True), stream=output)
        bridge.add_listener(view.render)

        await bridge.start_call()
        provider.events.on_status_change("disconnected")

        assert hangups == [True]
        assert output.getvalue().splitlines()[-1] == "[idle]"

    @pytest.mark.asyncio
    async def test_no_disconnect_after_failed_start(self, output):
        provider = FakeSessionProvider(open_failures=3)
        bridge = SessionBridge(provider=provider, agent_id=AGENT_ID, retry_backoff_seconds=0)
        hangups = []
        view = ConsoleView(on_disconnect=lambda: hangups.append(True), stream=output)
        bridge.add_listener(view.render)

        with pytest.raises(SessionOpenError):
            await bridge.start_call()

        assert bridge.call_status == CallStatus.ERROR
        assert hangups == []
