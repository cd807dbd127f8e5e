class BridgeError(Exception):
    pass


class ConfigurationError(BridgeError):
    """Required configuration (the agent identifier) is missing."""


class SessionOpenError(BridgeError):
    """The session provider could not open a conversation."""


class SessionCloseError(BridgeError):
    pass


class SendMessageError(BridgeError):
    pass


class MessageParseError(BridgeError):
    """An inbound provider payload did not have the expected shape."""
