"""
Inbound events delivered by a chat platform adapter.
"""

from dataclasses import dataclass

from .history import ROLE_USER, ConversationScope, HistoryEntry


@dataclass(frozen=True)
class MessageEvent:
    scope: ConversationScope
    sender: str
    text: str
    one_to_one: bool
    time: int

    @property
    def scope_key(self) -> str:
        return self.scope.key

    def to_history_entry(self) -> HistoryEntry:
        return HistoryEntry(time=self.time, role=ROLE_USER, text=self.text.strip())


@dataclass(frozen=True)
class SpaceEvent:
    """The bot was added to or removed from a space."""

    space: str
