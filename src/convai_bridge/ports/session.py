from typing import Protocol


class SessionEvents(Protocol):
    def on_connect(self, session_id: str) -> None: ...
    def on_message(self, source: str, payload: str) -> None: ...
    def on_mode_change(self, mode: str) -> None: ...
    def on_status_change(self, status: str) -> None: ...


class SessionProvider(Protocol):
    def bind(self, events: SessionEvents) -> None: ...
    async def open_session(self, agent_id: str, user_id: str) -> None: ...
    async def close_session(self) -> None: ...
    async def send_user_message(self, text: str) -> None: ...
