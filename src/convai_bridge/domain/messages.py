import json
from dataclasses import dataclass

from convai_bridge.domain.errors import MessageParseError


@dataclass(frozen=True)
class UserTranscript:
    text: str


@dataclass(frozen=True)
class AgentResponse:
    text: str


@dataclass(frozen=True)
class AgentResponseCorrection:
    text: str


@dataclass(frozen=True)
class Ping:
    event_id: int | None = None


@dataclass(frozen=True)
class Interruption:
    pass


@dataclass(frozen=True)
class UnknownMessage:
    type: str


InboundMessage = (
    UserTranscript
    | AgentResponse
    | AgentResponseCorrection
    | Ping
    | Interruption
    | UnknownMessage
)

# type -> (variant, event object key, text field key)
_TEXT_EVENTS: dict[str, tuple[type, str, str]] = {
    "user_transcript": (UserTranscript, "user_transcription_event", "user_transcript"),
    "agent_response": (AgentResponse, "agent_response_event", "agent_response"),
    "agent_response_correction": (
        AgentResponseCorrection,
        "agent_response_correction_event",
        "corrected_agent_response",
    ),
}


def parse_message(payload: str) -> InboundMessage:
    """Decode a provider JSON payload into one of the inbound message variants.

    Types this module does not know about decode to ``UnknownMessage`` so the
    caller can log them; structurally broken payloads raise
    ``MessageParseError``.
    """
    try:
        data = json.loads(payload)
    except (ValueError, RecursionError, TypeError) as exc:
        raise MessageParseError(f"Payload is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MessageParseError(f"Expected a JSON object, got {type(data).__name__}")

    message_type = data.get("type")
    if not isinstance(message_type, str):
        raise MessageParseError("Message has no string 'type' field")

    if message_type in _TEXT_EVENTS:
        variant, event_key, text_key = _TEXT_EVENTS[message_type]
        return variant(text=_nested_text(data, event_key, text_key))

    if message_type == "ping":
        event = data.get("ping_event")
        event_id = event.get("event_id") if isinstance(event, dict) else None
        return Ping(event_id=event_id)

    if message_type == "interruption":
        return Interruption()

    return UnknownMessage(type=message_type)


def _nested_text(data: dict, event_key: str, text_key: str) -> str:
    event = data.get(event_key)
    if not isinstance(event, dict):
        raise MessageParseError(f"Missing '{event_key}' object")
    text = event.get(text_key)
    if not isinstance(text, str):
        raise MessageParseError(f"Missing string '{event_key}.{text_key}'")
    return text
