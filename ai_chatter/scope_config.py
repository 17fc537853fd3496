"""
Per-scope configuration overrides, all kept in one `_config` property.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .errors import ChatError
from .properties import Properties

logger = logging.getLogger(__name__)

CONFIG_KEY = "_config"

MILLIS_PER_DAY = 24 * 60 * 60 * 1000


@dataclass
class ScopeConfiguration:
    scope: str
    last_used: int
    instructions: Optional[str] = None
    temperature: Optional[float] = None

    def is_default(self) -> bool:
        return self.instructions is None and self.temperature is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"lastUsed": self.last_used}
        if self.instructions is not None:
            data["instructions"] = self.instructions
        if self.temperature is not None:
            data["temperature"] = self.temperature
        return data

    @classmethod
    def from_dict(cls, scope: str, data: Any) -> Optional["ScopeConfiguration"]:
        if not isinstance(data, dict):
            return None
        last_used = data.get("lastUsed")
        instructions = data.get("instructions")
        temperature = data.get("temperature")
        if not isinstance(last_used, int) or isinstance(last_used, bool):
            return None
        if instructions is not None and not isinstance(instructions, str):
            return None
        if temperature is not None and (isinstance(temperature, bool) or not isinstance(temperature, (int, float))):
            return None
        return cls(scope=scope, last_used=last_used, instructions=instructions, temperature=temperature)


class ScopeConfigStore:
    """Reads and updates the configuration map of all scopes."""

    def __init__(self, properties: Properties, clock: Callable[[], int]):
        self.properties = properties
        self.clock = clock

    def get_configuration(self, scope: str) -> Optional[ScopeConfiguration]:
        configs = self._load()
        config = configs.get(scope)
        if config is None:
            return None
        now = self.clock()
        if now - config.last_used > MILLIS_PER_DAY:
            config.last_used = now
            self._save(configs)
        return config

    def get_instructions(self, scope: str) -> Optional[str]:
        config = self.get_configuration(scope)
        return config.instructions if config else None

    def get_temperature(self, scope: str) -> Optional[float]:
        config = self.get_configuration(scope)
        return config.temperature if config else None

    def update_configuration(
        self, scope: str, mutator: Callable[[ScopeConfiguration], None]
    ) -> Optional[ScopeConfiguration]:
        """
        Apply a mutation to the configuration of a scope and persist it.

        A configuration left with nothing overridden is removed. Returns the
        resulting configuration, or None if it was removed.
        """
        configs = self._load()
        now = self.clock()
        config = configs.get(scope) or ScopeConfiguration(scope=scope, last_used=now)
        mutator(config)
        config.last_used = now
        if config.is_default():
            configs.pop(scope, None)
            result = None
        else:
            configs[scope] = config
            result = config
        self._save(configs)
        return result

    def remove_configuration_for_scope(self, scope: str, include_threads: bool = False) -> int:
        configs = self._load()
        doomed = [
            s for s in configs
            if s == scope or (include_threads and s.startswith(scope + "/"))
        ]
        for s in doomed:
            del configs[s]
        if doomed:
            self._save(configs)
        return len(doomed)

    def _load(self) -> Dict[str, ScopeConfiguration]:
        try:
            data = self.properties.get_json(CONFIG_KEY)
        except ChatError as e:
            logger.warning(f"Ignoring unreadable scope configuration map: {e.message}")
            return {}
        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed scope configuration map {CONFIG_KEY}")
            return {}
        configs = {}
        for scope, raw in data.items():
            config = ScopeConfiguration.from_dict(scope, raw)
            if config is None:
                logger.warning(f"Ignoring malformed configuration for {scope}")
                continue
            configs[scope] = config
        return configs

    def _save(self, configs: Dict[str, ScopeConfiguration]) -> None:
        if configs:
            self.properties.set_json(CONFIG_KEY, {s: c.to_dict() for s, c in configs.items()})
        else:
            self.properties.delete(CONFIG_KEY)
