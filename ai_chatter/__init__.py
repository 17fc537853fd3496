"""
ai-chatter: Chat bot relaying conversations to the OpenAI API, with short-lived
history and per-conversation settings kept in a key-value property store.

Usage:
    from ai_chatter import AIChatter, ChatterConfig, JsonFilePropertyStore

    config = ChatterConfig(bot_name="AI Chatter", version="1.0.0")
    AIChatter(config=config, store=JsonFilePropertyStore("properties.json")).start()

Custom adapters receive MessageEvent / SpaceEvent values and call
AIChatter.handle_message(), handle_added() and handle_removed().
"""

from .chatter import AIChatter, ChatterConfig
from .commands import CommandDispatcher, parse_command
from .context import ChatContext
from .errors import ChatError, ErrorKind, format_error_chain
from .events import MessageEvent, SpaceEvent
from .history import ConversationScope, HistoryEntry, HistoryLedger, HistoryStore
from .properties import InMemoryPropertyStore, JsonFilePropertyStore, Properties, PropertyStore
from .responses import BotResponse
from .scope_config import ScopeConfigStore, ScopeConfiguration

__all__ = [
    "AIChatter",
    "ChatterConfig",
    "CommandDispatcher",
    "parse_command",
    "ChatContext",
    "ChatError",
    "ErrorKind",
    "format_error_chain",
    "MessageEvent",
    "SpaceEvent",
    "ConversationScope",
    "HistoryEntry",
    "HistoryLedger",
    "HistoryStore",
    "InMemoryPropertyStore",
    "JsonFilePropertyStore",
    "Properties",
    "PropertyStore",
    "BotResponse",
    "ScopeConfigStore",
    "ScopeConfiguration",
]
__version__ = "0.1.0"
