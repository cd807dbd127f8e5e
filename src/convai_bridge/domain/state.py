from enum import Enum


class CallStatus(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    LISTENING = "listening"
    PROCESSING = "processing"
    ERROR = "error"


EXPECTED_TRANSITIONS: dict[CallStatus, set[CallStatus]] = {
    CallStatus.IDLE: {CallStatus.CONNECTING, CallStatus.ERROR},
    CallStatus.CONNECTING: {CallStatus.ACTIVE, CallStatus.IDLE, CallStatus.ERROR},
    CallStatus.ACTIVE: {
        CallStatus.LISTENING,
        CallStatus.PROCESSING,
        CallStatus.CONNECTING,
        CallStatus.IDLE,
        CallStatus.ERROR,
    },
    CallStatus.LISTENING: {
        CallStatus.PROCESSING,
        CallStatus.ACTIVE,
        CallStatus.IDLE,
        CallStatus.ERROR,
    },
    CallStatus.PROCESSING: {
        CallStatus.LISTENING,
        CallStatus.ACTIVE,
        CallStatus.IDLE,
        CallStatus.ERROR,
    },
    CallStatus.ERROR: {CallStatus.CONNECTING, CallStatus.IDLE},
}

MODE_TO_STATUS: dict[str, CallStatus] = {
    "listening": CallStatus.LISTENING,
    "speaking": CallStatus.PROCESSING,
}


def is_expected_transition(current: CallStatus, target: CallStatus) -> bool:
    return target in EXPECTED_TRANSITIONS.get(current, set())


def status_for_mode(mode: str) -> CallStatus:
    return MODE_TO_STATUS.get(mode, CallStatus.ACTIVE)
