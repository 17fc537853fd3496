"""
AIChatter — core event handler.

The chatter owns:
- Per-event context construction (properties, stores, API client)
- Command dispatch and the default chat completion path
- Converting every failure into a single user-facing error response

The adapter (e.g., SlackAdapter) owns the human interface.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .commands import CommandDispatcher
from .completion import complete_history
from .context import ChatContext
from .errors import ChatError, format_error_chain, user_message
from .events import MessageEvent, SpaceEvent
from .moderation import check_moderation
from .openai_client import OpenAIClient
from .properties import PropertyStore
from .responses import BotResponse, text_response
from .settings import DEFAULT_HISTORY_MINUTES

logger = logging.getLogger(__name__)


@dataclass
class ChatterConfig:
    """Process configuration for a chatter.

    Required:
        bot_name: Bot display name
        version: Version string

    Optional:
        history_minutes: Retention window used when HISTORY_MINUTES is not set
        status_channel: Channel ID for online/offline status messages
    """

    bot_name: str
    version: str
    history_minutes: float = DEFAULT_HISTORY_MINUTES
    status_channel: Optional[str] = None


class AIChatter:
    """
    Handles inbound chat events against a property store.

        store = JsonFilePropertyStore("properties.json")
        AIChatter(config=ChatterConfig(bot_name="AI Chatter", version="1.0.0"), store=store).start()
    """

    def __init__(
        self,
        config: ChatterConfig,
        store: PropertyStore,
        adapter=None,
        client_factory: Optional[Callable[[str], OpenAIClient]] = None,
        clock: Optional[Callable[[], int]] = None,
        dispatcher: Optional[CommandDispatcher] = None,
    ):
        self.config = config
        self.store = store
        self.client_factory = client_factory
        self.clock = clock
        self.dispatcher = dispatcher or CommandDispatcher()

        # Default to Slack adapter (lazy import avoids requiring tokens at import time)
        if adapter is not None:
            self.adapter = adapter
        else:
            from .slack_adapter import SlackAdapter

            self.adapter = SlackAdapter()

    def new_context(self) -> ChatContext:
        return ChatContext(
            self.store,
            clock=self.clock,
            client_factory=self.client_factory,
            default_history_minutes=self.config.history_minutes,
        )

    def handle_message(self, event: MessageEvent) -> Optional[BotResponse]:
        """
        Respond to a chat message. Called by the adapter.

        Returns None when the bot should stay silent.
        """
        with self.new_context() as context:
            try:
                return self._respond(context, event)
            except Exception as e:
                return self.error_response(e)

    def handle_added(self, event: SpaceEvent) -> Optional[BotResponse]:
        """Respond to being added to a space."""
        logger.info(f"Added to {event.space}")
        with self.new_context() as context:
            try:
                return text_response(context.settings.introduction)
            except Exception as e:
                return self.error_response(e)

    def handle_removed(self, event: SpaceEvent) -> None:
        """Forget everything stored for a space the bot was removed from."""
        with self.new_context() as context:
            try:
                context.histories.remove_histories_for_scope(event.space)
                context.configurations.remove_configuration_for_scope(event.space, include_threads=True)
                logger.info(f"Removed from {event.space}, state purged")
            except Exception as e:
                logger.error(f"Failed to purge state for {event.space}:\n{format_error_chain(e)}", exc_info=True)

    def _respond(self, context: ChatContext, event: MessageEvent) -> Optional[BotResponse]:
        if not event.text or not event.text.strip():
            return None

        response = self.dispatcher.check_for_command(context, event)
        if response is not None:
            return response

        check_moderation(context, event.text)

        histories = context.histories
        ledger = histories.get_history(event.scope_key, event.to_history_entry())
        ledger.repeatable = None
        try:
            response = complete_history(context, ledger, event.sender)
        except Exception:
            # Keep at least the input message in history
            histories.save_history(ledger)
            raise
        histories.save_history(ledger)
        return response

    def error_response(self, err: Exception) -> BotResponse:
        """Log an error and convert it into the response shown to the user."""
        if isinstance(err, ChatError) and err.user_visible:
            logger.info(f"Chat error: {format_error_chain(err)}")
        else:
            logger.error(f"Error processing event:\n{format_error_chain(err)}", exc_info=err)
        return text_response(user_message(err))

    def start(self, **adapter_kwargs):
        """Start the chatter via its adapter."""
        logger.info(f"Starting {self.config.bot_name} v{self.config.version}...")
        self.adapter.start(self, **adapter_kwargs)
