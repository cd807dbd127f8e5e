from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class TranscriptEntry:
    text: str
    is_user: bool
    timestamp: datetime = field(default_factory=datetime.now)


class Transcript:
    def __init__(self) -> None:
        self._entries: list[TranscriptEntry] = []

    @property
    def entries(self) -> tuple[TranscriptEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def add_user_entry(self, text: str) -> TranscriptEntry:
        entry = TranscriptEntry(text=text, is_user=True)
        self._entries.append(entry)
        return entry

    def add_agent_entry(self, text: str) -> TranscriptEntry:
        entry = TranscriptEntry(text=text, is_user=False)
        self._entries.append(entry)
        return entry

    def replace_last_agent_entry(self, text: str) -> TranscriptEntry:
        # Only a trailing agent entry is replaced; a trailing user entry stays.
        if self._entries and not self._entries[-1].is_user:
            self._entries.pop()
        return self.add_agent_entry(text)

    def clear(self) -> None:
        self._entries.clear()
