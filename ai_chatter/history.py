"""
Conversation history ledgers kept in the property store.

Each conversation scope has one ledger under `_history/<scope>`: the
recent messages in timestamp order and the last repeatable command.
Entries older than the retention window are pruned oldest-first whenever
a ledger is read, and stale or corrupt ledgers of other scopes are swept
before every save.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .errors import ChatError, ErrorKind
from .parsing import Parsed
from .properties import Properties, PropertyStoreError, PropertyValueTooLargeError

logger = logging.getLogger(__name__)

HISTORY_PREFIX = "_history/"

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

MILLIS_PER_MINUTE = 60 * 1000


@dataclass(frozen=True)
class ConversationScope:
    """
    Where a message was posted.

    In a threaded space every thread keeps its own history; otherwise the
    whole space shares one.
    """

    space: str
    thread: Optional[str] = None
    threaded: bool = False

    @property
    def key(self) -> str:
        if self.threaded and self.thread:
            return f"{self.space}/threads/{self.thread}"
        return self.space


@dataclass(frozen=True)
class HistoryEntry:
    time: int
    role: str
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"time": self.time, "role": self.role, "text": self.text}


@dataclass(frozen=True)
class RepeatableCommand:
    """The last command `/again` can replay."""

    time: int
    command: str
    arguments: str

    def to_dict(self) -> Dict[str, Any]:
        return {"time": self.time, "command": self.command, "arguments": self.arguments}


@dataclass
class HistoryLedger:
    scope: str
    last_updated: int
    entries: List[HistoryEntry] = field(default_factory=list)
    repeatable: Optional[RepeatableCommand] = None

    def append(self, entry: HistoryEntry) -> None:
        """Append an entry, keeping timestamp order and skipping exact duplicates."""
        if entry in self.entries:
            return
        self.entries.append(entry)
        self.entries.sort(key=lambda e: e.time)

    def last_activity(self) -> int:
        times = [e.time for e in self.entries[-1:]]
        if self.repeatable is not None:
            times.append(self.repeatable.time)
        return max(times) if times else self.last_updated

    def is_empty(self) -> bool:
        return not self.entries and self.repeatable is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "scope": self.scope,
            "lastUpdated": self.last_updated,
            "entries": [e.to_dict() for e in self.entries],
        }
        if self.repeatable is not None:
            data["repeatable"] = self.repeatable.to_dict()
        return data


def parse_ledger(data: Any) -> Parsed[HistoryLedger]:
    """Validate a decoded ledger."""
    if not isinstance(data, dict):
        return Parsed.failure("Ledger is not an object")
    scope = data.get("scope")
    last_updated = data.get("lastUpdated")
    raw_entries = data.get("entries")
    if not isinstance(scope, str) or not _is_int(last_updated) or not isinstance(raw_entries, list):
        return Parsed.failure("Ledger is missing scope, lastUpdated or entries")

    entries = []
    for raw in raw_entries:
        if not (
            isinstance(raw, dict)
            and _is_int(raw.get("time"))
            and raw.get("role") in (ROLE_USER, ROLE_ASSISTANT)
            and isinstance(raw.get("text"), str)
        ):
            return Parsed.failure(f"Malformed history entry: {raw!r}")
        entries.append(HistoryEntry(time=raw["time"], role=raw["role"], text=raw["text"]))

    repeatable = None
    raw_repeatable = data.get("repeatable")
    if raw_repeatable is not None:
        if not (
            isinstance(raw_repeatable, dict)
            and _is_int(raw_repeatable.get("time"))
            and isinstance(raw_repeatable.get("command"), str)
            and isinstance(raw_repeatable.get("arguments"), str)
        ):
            return Parsed.failure("Malformed repeatable command")
        repeatable = RepeatableCommand(
            time=raw_repeatable["time"],
            command=raw_repeatable["command"],
            arguments=raw_repeatable["arguments"],
        )

    return Parsed.success(
        HistoryLedger(scope=scope, last_updated=last_updated, entries=entries, repeatable=repeatable)
    )


def prune_entries(entries: List[HistoryEntry], now: int, window_millis: float) -> int:
    """
    Remove the oldest entries whose age exceeds the window, in place.

    Scanning stops at the first entry within the window. Returns the number
    of entries removed.
    """
    count = 0
    for entry in entries:
        if now - entry.time > window_millis:
            count += 1
        else:
            break
    del entries[:count]
    return count


def ledger_key(scope: str) -> str:
    return HISTORY_PREFIX + scope


class HistoryStore:
    """Loads, prunes and persists history ledgers."""

    def __init__(self, properties: Properties, history_minutes: Callable[[], float], clock: Callable[[], int]):
        self.properties = properties
        self.history_minutes = history_minutes
        self.clock = clock

    @property
    def window_millis(self) -> float:
        return self.history_minutes() * MILLIS_PER_MINUTE

    def get_history(self, scope: str, incoming: Optional[HistoryEntry] = None) -> HistoryLedger:
        """
        Return the pruned ledger for a scope, with the incoming message appended.

        Pass no incoming entry to get the history alone. Nothing is persisted;
        call save_history() when done.
        """
        now = self.clock()
        ledger = self._load(scope)
        if ledger is None:
            ledger = HistoryLedger(scope=scope, last_updated=now)
        self.prune(ledger, now)
        if incoming is not None:
            ledger.append(incoming)
        return ledger

    def prune(self, ledger: HistoryLedger, now: Optional[int] = None) -> None:
        now = self.clock() if now is None else now
        removed = prune_entries(ledger.entries, now, self.window_millis)
        if removed:
            logger.debug(f"Pruned {removed} history entries from {ledger.scope}")
        if ledger.repeatable is not None and now - ledger.repeatable.time > self.window_millis:
            ledger.repeatable = None

    def save_history(self, ledger: HistoryLedger) -> None:
        """
        Persist a ledger, dropping its oldest entries while it is too large to store.

        Raises a persistence error if not even the newest entry fits.
        """
        self.prune_all(skip_scope=ledger.scope)
        ledger.last_updated = self.clock()
        key = ledger_key(ledger.scope)

        if ledger.is_empty():
            self.properties.delete(key)
            return

        while True:
            try:
                self.properties.set_string(key, json.dumps(ledger.to_dict(), separators=(",", ":")))
                return
            except PropertyValueTooLargeError as e:
                # Never store a ledger emptied by shrinking
                if len(ledger.entries) <= 1:
                    raise ChatError(ErrorKind.PERSISTENCE, "Failed to save history", e)
                ledger.entries.pop(0)
                logger.info(
                    f"History for {ledger.scope} too large, dropped oldest entry "
                    f"({len(ledger.entries)} left)"
                )
            except PropertyStoreError as e:
                raise ChatError(ErrorKind.PERSISTENCE, "Failed to save history", e)

    def clear_history(self, scope: str) -> HistoryLedger:
        ledger = HistoryLedger(scope=scope, last_updated=self.clock())
        self.save_history(ledger)
        return ledger

    def remove_histories_for_scope(self, parent_scope: str) -> int:
        """Delete the ledger of a scope and of every thread nested in it."""
        parent_key = ledger_key(parent_scope)
        removed = 0
        for key in self.properties.keys_with_prefix(parent_key):
            if key == parent_key or key.startswith(parent_key + "/"):
                self.properties.delete(key)
                removed += 1
        logger.info(f"Removed {removed} history ledgers for {parent_scope}")
        return removed

    def prune_all(self, skip_scope: Optional[str] = None) -> int:
        """Delete stale and corrupt ledgers of all scopes."""
        now = self.clock()
        window = self.window_millis
        skip_key = ledger_key(skip_scope) if skip_scope is not None else None
        deleted = 0
        for key in self.properties.keys_with_prefix(HISTORY_PREFIX):
            if key == skip_key:
                continue
            parsed = self._parse(key)
            if not parsed.ok:
                logger.warning(f"Deleting corrupt history {key}: {parsed.error}")
            elif now - parsed.value.last_activity() <= window:
                continue
            self.properties.delete(key)
            deleted += 1
        return deleted

    def _load(self, scope: str) -> Optional[HistoryLedger]:
        key = ledger_key(scope)
        if self.properties.get_string(key) is None:
            return None
        parsed = self._parse(key)
        if not parsed.ok:
            logger.warning(f"Ignoring corrupt history {key}: {parsed.error}")
            return None
        return parsed.value

    def _parse(self, key: str) -> Parsed[HistoryLedger]:
        raw = self.properties.get_string(key)
        if raw is None:
            return Parsed.failure("Missing")
        try:
            data = json.loads(raw)
        except ValueError as e:
            return Parsed.failure(f"Invalid JSON: {e}")
        return parse_ledger(data)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
