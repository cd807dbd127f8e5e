import argparse
import asyncio
import logging
import os
import signal
import sys
from collections.abc import AsyncIterator, Callable
from pathlib import Path

from convai_bridge.config import ConvaiBridgeConfig
from convai_bridge.domain.bridge import BridgeSnapshot, SessionBridge
from convai_bridge.domain.errors import ConfigurationError, SessionOpenError
from convai_bridge.domain.state import CallStatus
from convai_bridge.domain.transcript import TranscriptEntry
from convai_bridge.log_format import configure_logging

ENV_FILE_PATH = Path.home() / ".config" / "convai-bridge" / "env"

logger = logging.getLogger(__name__)


def _load_env_file() -> None:
    if not ENV_FILE_PATH.exists():
        return
    with open(ENV_FILE_PATH) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            value = value.strip("'\"")
            if key not in os.environ:
                os.environ[key] = value


class ConsoleView:
    """Prints status changes and new transcript entries as snapshots arrive."""

    def __init__(self, on_disconnect: Callable[[], None] | None = None, stream=None) -> None:
        self._on_disconnect = on_disconnect
        self._stream = stream or sys.stdout
        self._status: CallStatus | None = None
        self._muted = False
        self._entries: tuple[TranscriptEntry, ...] = ()
        self._was_started = False

    def render(self, snapshot: BridgeSnapshot) -> None:
        if snapshot.call_status != self._status or snapshot.is_muted != self._muted:
            self._status = snapshot.call_status
            self._muted = snapshot.is_muted
            suffix = " (muted)" if snapshot.is_muted else ""
            self._write(f"[{snapshot.call_status.value}{suffix}]")

        entries = snapshot.transcript
        common = 0
        while (
            common < min(len(entries), len(self._entries))
            and entries[common] is self._entries[common]
        ):
            common += 1
        replaced = common < len(self._entries) and len(entries) > common
        for entry in entries[common:]:
            speaker = "you" if entry.is_user else "agent"
            marker = " (corrected)" if replaced and not entry.is_user else ""
            self._write(f"{entry.timestamp:%H:%M:%S} {speaker}{marker}: {entry.text}")
        self._entries = entries

        if snapshot.is_call_active or snapshot.call_status != CallStatus.IDLE:
            self._was_started = snapshot.call_status != CallStatus.ERROR
        elif self._was_started:
            # Back to idle after connecting, whether or not the call ever went live.
            self._was_started = False
            if self._on_disconnect:
                self._on_disconnect()

    def _write(self, line: str) -> None:
        print(line, file=self._stream, flush=True)


def main() -> None:
    _load_env_file()
    parser = argparse.ArgumentParser(description="ElevenLabs conversation session bridge")
    parser.add_argument("--agent", help="Agent ID (overrides ELEVENLABS_AGENT_ID)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("chat", help="Start a text conversation (default)")
    subparsers.add_parser("check", help="Run configuration health checks")

    args = parser.parse_args()

    config = ConvaiBridgeConfig()
    if args.agent:
        config.agent_id = args.agent

    configure_logging(verbose=args.verbose, log_file=config.log_file)

    if args.command == "check":
        sys.exit(_run_checks(config))
    sys.exit(asyncio.run(_run_chat(config)))


def _run_checks(config: ConvaiBridgeConfig) -> int:
    from convai_bridge.health import has_critical_failures, run_startup_checks

    results = run_startup_checks(config)
    return 1 if has_critical_failures(results) else 0


async def _run_chat(config: ConvaiBridgeConfig) -> int:
    from convai_bridge.factory import create_bridge

    bridge = create_bridge(config)
    shutdown_event = asyncio.Event()
    view = ConsoleView(on_disconnect=shutdown_event.set)
    remove_listener = bridge.add_listener(view.render)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    try:
        await bridge.start_call()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        remove_listener()
        return 1
    except SessionOpenError as exc:
        print(f"Could not start conversation: {exc}", file=sys.stderr)
        remove_listener()
        return 1

    print("Type a message and press Enter. /mute toggles mute, /quit ends the call.")
    input_task = asyncio.create_task(_input_loop(bridge, shutdown_event))

    try:
        await shutdown_event.wait()
    finally:
        input_task.cancel()
        try:
            await input_task
        except asyncio.CancelledError:
            pass
        await bridge.aclose()
        remove_listener()
    return 0


async def _input_loop(bridge: SessionBridge, shutdown_event: asyncio.Event) -> None:
    async for line in _read_stdin_lines():
        text = line.strip()
        if not text:
            continue
        if text == "/quit":
            break
        if text == "/mute":
            bridge.toggle_mute()
            continue
        if not bridge.is_call_active:
            logger.warning("Not connected yet, message dropped")
            continue
        await bridge.send_message(text)
    shutdown_event.set()


async def _read_stdin_lines() -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()
    lines: asyncio.Queue[str] = asyncio.Queue()
    fd = sys.stdin.fileno()
    loop.add_reader(fd, lambda: lines.put_nowait(sys.stdin.readline()))
    try:
        while True:
            line = await lines.get()
            if not line:
                return
            yield line
    finally:
        loop.remove_reader(fd)
