"""
SlackAdapter — Slack interface for the chatter.

Handles the Socket Mode connection, maps Slack events to inbound chat
events and posts the responses back. Channel mentions are threaded (each
thread keeps its own history); direct messages share one history per DM.
"""

import logging
import os
import re
import signal
import sys
from typing import Optional

from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler
from slack_sdk.errors import SlackApiError

from .events import MessageEvent, SpaceEvent
from .history import ConversationScope

logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(r"<@[A-Z0-9]+>")


def strip_mentions(text: str) -> str:
    return MENTION_PATTERN.sub("", text or "").strip()


def slack_ts_to_millis(ts: Optional[str]) -> int:
    return int(float(ts or 0) * 1000)


class SlackAdapter:
    """Slack Socket Mode adapter. Routes events to an AIChatter."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        app_token: Optional[str] = None,
    ):
        self.bot_token = bot_token or os.environ.get("SLACK_BOT_TOKEN")
        self.app_token = app_token or os.environ.get("SLACK_APP_TOKEN")

        if not self.bot_token or not self.app_token:
            raise ValueError("Missing SLACK_BOT_TOKEN or SLACK_APP_TOKEN")

        self.chatter = None
        self.app = None
        self._bot_user_id: Optional[str] = None

    def start(self, chatter, register_signals: bool = True):
        """Start Slack Socket Mode, routing events to the chatter."""
        self.chatter = chatter
        self.app = App(token=self.bot_token)
        self._register_handlers()

        if register_signals:
            signal.signal(signal.SIGTERM, self._shutdown_handler)
            signal.signal(signal.SIGINT, self._shutdown_handler)

        self._post_status(
            f":white_check_mark: {chatter.config.bot_name} v{chatter.config.version} is online!"
        )

        handler = SocketModeHandler(self.app, self.app_token)
        handler.start()

    def _register_handlers(self):
        """Register Slack event handlers."""

        @self.app.event("app_mention")
        def handle_mention(event, say):
            self._handle_mention(event, say)

        @self.app.event("message")
        def handle_message(event, say):
            self._handle_dm(event, say)

        @self.app.event("member_joined_channel")
        def handle_joined(event, say, client):
            self._handle_joined(event, say, client)

        @self.app.event("channel_left")
        def handle_channel_left(event):
            self._handle_left(event)

        @self.app.event("group_left")
        def handle_group_left(event):
            self._handle_left(event)

    def _handle_mention(self, event, say):
        """Handle @mentions of the bot in channels."""
        channel = event.get("channel")
        thread_ts = event.get("thread_ts") or event.get("ts")
        message = MessageEvent(
            scope=ConversationScope(space=channel, thread=thread_ts, threaded=True),
            sender=event.get("user", ""),
            text=strip_mentions(event.get("text", "")),
            one_to_one=False,
            time=slack_ts_to_millis(event.get("ts")),
        )
        self._reply(message, say, thread_ts=thread_ts)

    def _handle_dm(self, event, say):
        """Handle direct messages."""
        if event.get("channel_type") != "im":
            return
        if event.get("bot_id") or event.get("subtype"):
            return

        message = MessageEvent(
            scope=ConversationScope(space=event.get("channel")),
            sender=event.get("user", ""),
            text=event.get("text", ""),
            one_to_one=True,
            time=slack_ts_to_millis(event.get("ts")),
        )
        self._reply(message, say)

    def _handle_joined(self, event, say, client):
        """Introduce the bot when it joins a channel."""
        if event.get("user") != self._get_bot_user_id(client):
            return
        response = self.chatter.handle_added(SpaceEvent(space=event.get("channel")))
        if response is not None:
            say(response.to_text())

    def _handle_left(self, event):
        """Purge state when the bot leaves or is removed from a channel."""
        self.chatter.handle_removed(SpaceEvent(space=event.get("channel")))

    def _reply(self, message: MessageEvent, say, thread_ts: Optional[str] = None):
        try:
            response = self.chatter.handle_message(message)
        except Exception as e:
            logger.error(f"Error processing message: {e}", exc_info=True)
            say("Sorry, I encountered an error.", thread_ts=thread_ts)
            return
        if response is None:
            return
        text = response.to_text()
        if text:
            say(text, thread_ts=thread_ts)

    def _get_bot_user_id(self, client) -> Optional[str]:
        # Cache bot user ID on first use
        if self._bot_user_id is None:
            auth_info = client.auth_test()
            self._bot_user_id = auth_info.get("user_id", "")
        return self._bot_user_id

    def _post_status(self, message: str):
        """Post to status channel if configured."""
        if not (self.chatter and self.chatter.config.status_channel and self.app):
            return
        try:
            self.app.client.chat_postMessage(channel=self.chatter.config.status_channel, text=message)
        except SlackApiError as e:
            logger.error(f"Failed to post status: {e.response.get('error')}")

    def _shutdown_handler(self, signum, frame):
        """Graceful shutdown."""
        logger.info("Shutdown signal received...")
        self._post_status(
            f":warning: {self.chatter.config.bot_name} v{self.chatter.config.version}"
            " is shutting down..."
        )
        sys.exit(0)
