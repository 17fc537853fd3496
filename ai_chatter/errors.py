"""
Chat errors — one exception type tagged with a kind and an optional cause.

Kinds form a small hierarchy: UNAUTHORIZED, INVALID_ARGUMENTS and
NOTHING_TO_REPEAT refine COMMAND, so callers can present them the same way
while tests can still tell them apart.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    COMMAND = "command"
    UNAUTHORIZED = "unauthorized"
    INVALID_ARGUMENTS = "invalid_arguments"
    NOTHING_TO_REPEAT = "nothing_to_repeat"
    MODERATION_FLAGGED = "moderation_flagged"
    CONFIGURATION = "configuration"
    UPSTREAM = "upstream"
    PERSISTENCE = "persistence"


_PARENT_KINDS = {
    ErrorKind.UNAUTHORIZED: ErrorKind.COMMAND,
    ErrorKind.INVALID_ARGUMENTS: ErrorKind.COMMAND,
    ErrorKind.NOTHING_TO_REPEAT: ErrorKind.COMMAND,
}

# Kinds whose message is shown to the chat user as is
USER_VISIBLE_KINDS = frozenset({ErrorKind.COMMAND, ErrorKind.MODERATION_FLAGGED})

GENERIC_ERROR_MESSAGE = "Something went wrong, please try again later."


class ChatError(Exception):
    """An error carrying a kind, a message and an optional nested cause."""

    def __init__(self, kind: ErrorKind, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def is_a(self, kind: ErrorKind) -> bool:
        """Whether this error is of the given kind or refines it."""
        current: Optional[ErrorKind] = self.kind
        while current is not None:
            if current is kind:
                return True
            current = _PARENT_KINDS.get(current)
        return False

    @property
    def user_visible(self) -> bool:
        return any(self.is_a(kind) for kind in USER_VISIBLE_KINDS)

    def __repr__(self) -> str:
        return f"ChatError({self.kind.value!r}, {self.message!r})"


def command_error(message: str) -> ChatError:
    return ChatError(ErrorKind.COMMAND, message)


def format_error_chain(err: BaseException) -> str:
    """Render an error and its causes, one "Caused by" line per cause."""
    lines = [_describe(err)]
    seen = {id(err)}
    cause = _cause_of(err)
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        lines.append(f"Caused by: {_describe(cause)}")
        cause = _cause_of(cause)
    return "\n".join(lines)


def user_message(err: BaseException) -> str:
    """The text shown to the chat user for the given error."""
    if isinstance(err, ChatError) and err.user_visible:
        return f"ERROR: {err.message}"
    return f"ERROR: {GENERIC_ERROR_MESSAGE}"


def _cause_of(err: BaseException) -> Optional[BaseException]:
    if isinstance(err, ChatError) and err.cause is not None:
        return err.cause
    return err.__cause__


def _describe(err: BaseException) -> str:
    if isinstance(err, ChatError):
        return f"[{err.kind.value}] {err.message}"
    return f"{type(err).__name__}: {err}"
