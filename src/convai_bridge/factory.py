from convai_bridge.adapters.elevenlabs_ws import ElevenLabsWebSocketSession
from convai_bridge.config import ConvaiBridgeConfig
from convai_bridge.domain.bridge import SessionBridge


def create_session_provider(config: ConvaiBridgeConfig) -> ElevenLabsWebSocketSession:
    return ElevenLabsWebSocketSession(
        api_key=config.resolve_api_key(),
        api_base_url=config.api_base_url,
        ws_base_url=config.ws_base_url,
        text_only=config.text_only,
    )


def create_bridge(config: ConvaiBridgeConfig) -> SessionBridge:
    return SessionBridge(
        provider=create_session_provider(config),
        agent_id=config.agent_id,
        user_id=config.user_id,
        open_attempts=config.open_attempts,
        retry_backoff_seconds=config.retry_backoff_seconds,
    )
