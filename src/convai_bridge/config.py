from pydantic_settings import BaseSettings, SettingsConfigDict


class ConvaiBridgeConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ELEVENLABS_",
        env_file=".env",
        extra="ignore",
    )

    agent_id: str = ""
    api_key: str = ""
    api_key_file: str = ""
    user_id: str = ""

    api_base_url: str = "https://api.elevenlabs.io"
    ws_base_url: str = "wss://api.elevenlabs.io"
    text_only: bool = True

    open_attempts: int = 3
    retry_backoff_seconds: float = 0.5

    log_file: str = ""

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

    def resolve_api_key(self) -> str:
        return self.api_key.strip() or self.read_secret(self.api_key_file)
