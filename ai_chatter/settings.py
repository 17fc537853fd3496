"""
Runtime settings stored as properties, readable and mostly admin-writable via chat.
"""

import re
from typing import Dict, List, Optional

from .errors import ChatError, ErrorKind
from .properties import INTERNAL_PREFIX, Properties

PROP_OPENAI_API_KEY = "OPENAI_API_KEY"
PROP_ADMINS = "ADMINS"
PROP_CHAT_COMPLETION_MODEL = "CHAT_COMPLETION_MODEL"
PROP_CHAT_COMPLETION_URL = "CHAT_COMPLETION_URL"
PROP_IMAGE_GENERATION_URL = "IMAGE_GENERATION_URL"
PROP_MODERATION_URL = "MODERATION_URL"
PROP_CHAT_COMPLETION_INIT = "CHAT_COMPLETION_INIT"
PROP_CHAT_COMPLETION_SHOW_TOKENS = "CHAT_COMPLETION_SHOW_TOKENS"
PROP_CHAT_COMPLETION_TOKEN_PRICE = "CHAT_COMPLETION_TOKEN_PRICE"
PROP_HISTORY_MINUTES = "HISTORY_MINUTES"
PROP_INTRODUCTION = "INTRODUCTION"
PROP_INTRODUCTION_PROMPT = "INTRODUCTION_PROMPT"
PROP_LOG_CHAT_COMPLETION = "LOG_CHAT_COMPLETION"
PROP_LOG_IMAGE = "LOG_IMAGE"
PROP_LOG_MODERATION = "LOG_MODERATION"

# Never shown via chat
SECRET_PROPERTIES = frozenset({PROP_OPENAI_API_KEY})

# Never modified via chat
PROTECTED_PROPERTIES = frozenset({PROP_OPENAI_API_KEY, PROP_ADMINS})

DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_CHAT_COMPLETION_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_IMAGE_GENERATION_URL = "https://api.openai.com/v1/images/generations"
DEFAULT_MODERATION_URL = "https://api.openai.com/v1/moderations"
DEFAULT_HISTORY_MINUTES = 60.0

DEFAULT_INTRODUCTION = (
    "Hi! I'm a chat bot relaying your messages to an AI assistant. "
    "I remember our recent conversation for a while, so you can ask follow-up questions. "
    'Type "/help" to see what else I can do.'
)
DEFAULT_INTRODUCTION_PROMPT = "Introduce yourself briefly to the people in this chat."

VALID_ROLES = ("system", "user", "assistant")

ADMIN_SEPARATOR = re.compile(r"\s*[,\s]\s*")


def is_internal_property(key: str) -> bool:
    return key.startswith(INTERNAL_PREFIX)


class RuntimeSettings:
    """Named settings with defaults, read through the event's properties."""

    def __init__(self, properties: Properties, default_history_minutes: float = DEFAULT_HISTORY_MINUTES):
        self.properties = properties
        self.default_history_minutes = default_history_minutes

    @property
    def api_key(self) -> str:
        api_key = self.properties.get_string(PROP_OPENAI_API_KEY)
        if not api_key:
            raise ChatError(
                ErrorKind.CONFIGURATION, f"Missing mandatory property: {PROP_OPENAI_API_KEY}"
            )
        return api_key

    @property
    def admins(self) -> List[str]:
        admins = (self.properties.get_string(PROP_ADMINS) or "").strip()
        if not admins:
            return []
        return [a for a in ADMIN_SEPARATOR.split(admins) if a]

    def is_admin(self, user: str) -> bool:
        return user in self.admins

    @property
    def model(self) -> str:
        return self._string(PROP_CHAT_COMPLETION_MODEL, DEFAULT_MODEL)

    @property
    def chat_completion_url(self) -> str:
        return self._string(PROP_CHAT_COMPLETION_URL, DEFAULT_CHAT_COMPLETION_URL)

    @property
    def image_generation_url(self) -> str:
        return self._string(PROP_IMAGE_GENERATION_URL, DEFAULT_IMAGE_GENERATION_URL)

    @property
    def moderation_url(self) -> str:
        return self._string(PROP_MODERATION_URL, DEFAULT_MODERATION_URL)

    @property
    def init_sequence(self) -> List[Dict[str, str]]:
        init = self.properties.get_json(PROP_CHAT_COMPLETION_INIT)
        if init is None:
            return []
        if not _is_valid_init(init):
            raise ChatError(
                ErrorKind.CONFIGURATION,
                f"Invalid initialization sequence: {PROP_CHAT_COMPLETION_INIT}",
            )
        return [{"role": m["role"], "content": m["content"]} for m in init]

    def set_init_sequence(self, text: Optional[str]) -> None:
        if text:
            self.properties.set_json(PROP_CHAT_COMPLETION_INIT, [{"role": "user", "content": text}])
        else:
            self.properties.delete(PROP_CHAT_COMPLETION_INIT)

    @property
    def show_tokens(self) -> bool:
        return bool(self.properties.get_boolean(PROP_CHAT_COMPLETION_SHOW_TOKENS))

    @property
    def token_price(self) -> Optional[float]:
        return self.properties.get_number(PROP_CHAT_COMPLETION_TOKEN_PRICE)

    @property
    def history_minutes(self) -> float:
        minutes = self.properties.get_number(PROP_HISTORY_MINUTES)
        return self.default_history_minutes if minutes is None else minutes

    @property
    def introduction(self) -> str:
        return self._string(PROP_INTRODUCTION, DEFAULT_INTRODUCTION)

    @property
    def introduction_prompt(self) -> str:
        return self._string(PROP_INTRODUCTION_PROMPT, DEFAULT_INTRODUCTION_PROMPT)

    @property
    def log_chat_completion(self) -> bool:
        return bool(self.properties.get_boolean(PROP_LOG_CHAT_COMPLETION))

    @property
    def log_image(self) -> bool:
        return bool(self.properties.get_boolean(PROP_LOG_IMAGE))

    @property
    def log_moderation(self) -> bool:
        return bool(self.properties.get_boolean(PROP_LOG_MODERATION))

    def _string(self, key: str, default: str) -> str:
        value = self.properties.get_string(key)
        return value if value else default


def _is_valid_init(obj) -> bool:
    if not isinstance(obj, list):
        return False
    return all(
        isinstance(m, dict) and m.get("role") in VALID_ROLES and isinstance(m.get("content"), str)
        for m in obj
    )
