"""
ChatContext: everything one inbound event needs, built per event and then discarded.
"""

import time
from typing import Callable, Optional

from .history import HistoryStore
from .openai_client import OpenAIClient
from .properties import Properties, PropertyStore
from .scope_config import ScopeConfigStore
from .settings import DEFAULT_HISTORY_MINUTES, RuntimeSettings


def now_millis() -> int:
    return int(time.time() * 1000)


class ChatContext:
    """
    Per-event wiring of properties, settings, stores and the API client.

    The property cache lives here, so nothing read during one event leaks
    into the next. The API client is created on first use, which is also
    when a missing API key is reported.
    """

    def __init__(
        self,
        store: PropertyStore,
        clock: Optional[Callable[[], int]] = None,
        client_factory: Optional[Callable[[str], OpenAIClient]] = None,
        default_history_minutes: float = DEFAULT_HISTORY_MINUTES,
    ):
        self.clock = clock or now_millis
        self.properties = Properties(store)
        self.settings = RuntimeSettings(self.properties, default_history_minutes)
        self.histories = HistoryStore(
            self.properties, lambda: self.settings.history_minutes, self.clock
        )
        self.configurations = ScopeConfigStore(self.properties, self.clock)
        self._client_factory = client_factory or OpenAIClient
        self._openai: Optional[OpenAIClient] = None

    @property
    def openai(self) -> OpenAIClient:
        if self._openai is None:
            self._openai = self._client_factory(self.settings.api_key)
        return self._openai

    def close(self) -> None:
        if self._openai is not None:
            self._openai.close()
            self._openai = None

    def __enter__(self) -> "ChatContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
