"""
Slash commands: grammar, argument parsing, authorization and dispatch.

A message is a command if, once trimmed, it starts with "/". It must then
be "/<name>" optionally followed by whitespace and free-form arguments,
otherwise it is rejected rather than passed on to chat completion.

Commands never touch persisted state directly: history goes through the
HistoryStore and per-scope overrides through the ScopeConfigStore.
"""

import logging
import re
import shlex
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from .completion import complete_history, request_simple_completion
from .context import ChatContext
from .errors import ChatError, ErrorKind, command_error
from .events import MessageEvent
from .history import ROLE_ASSISTANT, RepeatableCommand
from .images import generate_images, image_response, parse_image_arguments
from .moderation import check_moderation
from .responses import BotResponse, code_response, text_response
from .settings import PROTECTED_PROPERTIES, SECRET_PROPERTIES, is_internal_property

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "/"
COMMAND_PATTERN = re.compile(r"/([A-Za-z_]\w*)(?:\s+(.*))?", re.DOTALL)
PROPERTY_ASSIGNMENT = re.compile(r"([A-Za-z_]\w*)(?:\s+(.*))?", re.DOTALL)
KEYWORD_ARGUMENT = re.compile(r"([A-Za-z_]\w*)=(.*)", re.DOTALL)

INVALID_ARGS_MSG = "Invalid command arguments"

MAX_TEMPERATURE = 2.0

CommandHandler = Callable[[ChatContext, MessageEvent, Optional[str]], BotResponse]


@dataclass(frozen=True)
class ParsedCommand:
    name: str
    argument: Optional[str] = None


@dataclass(frozen=True)
class Command:
    name: str
    handler: CommandHandler
    usage: str
    description: str
    admin: bool = False


def parse_command(text: Optional[str]) -> Optional[ParsedCommand]:
    """
    Split a message into command name and argument.

    Returns None for text that is not a command at all.
    """
    if not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed.startswith(COMMAND_PREFIX):
        return None
    match = COMMAND_PATTERN.fullmatch(trimmed)
    if not match:
        raise command_error('Unrecognized command format, try "/help"')
    return ParsedCommand(name=match.group(1), argument=match.group(2))


def parse_arguments(arg: Optional[str]) -> Tuple[List[str], Dict[str, str]]:
    """Split arguments into positional values and key=value options."""
    if not arg or not arg.strip():
        return [], {}
    try:
        tokens = shlex.split(arg)
    except ValueError as e:
        raise ChatError(ErrorKind.INVALID_ARGUMENTS, f"{INVALID_ARGS_MSG}: {e}")
    positional: List[str] = []
    keyword: Dict[str, str] = {}
    for token in tokens:
        match = KEYWORD_ARGUMENT.fullmatch(token)
        if match:
            keyword[match.group(1)] = match.group(2)
        else:
            positional.append(token)
    return positional, keyword


def check_admin(context: ChatContext, event: MessageEvent) -> None:
    if not event.one_to_one:
        raise ChatError(
            ErrorKind.UNAUTHORIZED,
            "This command is only available in a direct messaging chat between an admin and the bot",
        )
    if not context.settings.is_admin(event.sender):
        raise ChatError(ErrorKind.UNAUTHORIZED, f"Unauthorized for this command: {event.sender}")


def _no_arguments(arg: Optional[str]) -> None:
    if arg is not None and arg.strip():
        raise ChatError(ErrorKind.INVALID_ARGUMENTS, INVALID_ARGS_MSG)


def _optional_text(arg: Optional[str]) -> Optional[str]:
    text = arg.strip() if arg else ""
    return text or None


class CommandDispatcher:
    """Routes parsed commands to their handlers."""

    def __init__(self, commands: Optional[List[Command]] = None):
        self.commands: Dict[str, Command] = {}
        for command in commands if commands is not None else self.default_commands():
            self.commands[command.name] = command

    def default_commands(self) -> List[Command]:
        return [
            Command("help", self.command_help, "/help", "show this help text"),
            Command("intro", self.command_intro, "/intro", "introduce the bot"),
            Command("image", self.command_image, "/image [n=N] [WxH] <prompt>", "create images based on the prompt"),
            Command("again", self.command_again, "/again", "repeat the last image or chat completion"),
            Command("instruct", self.command_instruct, "/instruct [<text>]", "set or clear instructions for this chat"),
            Command("config", self.command_config, "/config [temperature=T]", "show or change settings of this chat"),
            Command("history", self.command_history, "/history [clear]", "show or clear chat history"),
            Command("init", self.command_init, "/init [<text>]", "set or clear the initialization sequence", admin=True),
            Command("show", self.command_show, "/show [<property>...]", "show all or specified properties", admin=True),
            Command("set", self.command_set, "/set <property> [<value>]", "set or delete the specified property", admin=True),
        ]

    def check_for_command(self, context: ChatContext, event: MessageEvent) -> Optional[BotResponse]:
        """Execute the command in a message, or return None if it holds none."""
        parsed = parse_command(event.text)
        if parsed is None:
            return None
        command = self.commands.get(parsed.name)
        if command is None:
            raise command_error(f"Unrecognized command: {parsed.name}")
        if command.admin:
            check_admin(context, event)
        logger.info(f"Command /{command.name} from {event.sender} in {event.scope_key}")
        return command.handler(context, event, parsed.argument)

    def help_text(self, admin: bool) -> str:
        def rows(commands: List[Command]) -> List[str]:
            width = max(len(c.usage) for c in commands)
            return [f"  {c.usage.ljust(width)}  {c.description}" for c in commands]

        lines = ["Usage:", "  /command [arguments...]", "", "Commands:"]
        lines.extend(rows([c for c in self.commands.values() if not c.admin]))
        admin_commands = [c for c in self.commands.values() if c.admin]
        if admin and admin_commands:
            lines.extend(["", "Admin commands (direct message only):"])
            lines.extend(rows(admin_commands))
        return "*Usage instructions*\n\n```\n" + "\n".join(lines) + "\n```"

    # Handlers

    def command_help(self, context: ChatContext, event: MessageEvent, arg: Optional[str]) -> BotResponse:
        _no_arguments(arg)
        return text_response(self.help_text(context.settings.is_admin(event.sender)))

    def command_intro(self, context: ChatContext, event: MessageEvent, arg: Optional[str]) -> BotResponse:
        _no_arguments(arg)
        text = context.settings.introduction
        try:
            completion = request_simple_completion(
                context, event.scope_key, context.settings.introduction_prompt, event.sender
            )
            text += "\n\n" + completion.text
        except Exception as e:
            logger.warning(f"Introduction completion failed: {e}", exc_info=True)
        return text_response(text)

    def command_image(self, context: ChatContext, event: MessageEvent, arg: Optional[str]) -> BotResponse:
        request = parse_image_arguments(arg)
        check_moderation(context, request.prompt)

        ledger = context.histories.get_history(event.scope_key)
        ledger.repeatable = RepeatableCommand(time=event.time, command="image", arguments=arg.strip())
        context.histories.save_history(ledger)

        urls = generate_images(context, request, event.sender)
        return image_response(request, urls)

    def command_again(self, context: ChatContext, event: MessageEvent, arg: Optional[str]) -> BotResponse:
        _no_arguments(arg)
        histories = context.histories
        ledger = histories.get_history(event.scope_key)

        repeatable = ledger.repeatable
        if repeatable is not None and repeatable.command == "image":
            request = parse_image_arguments(repeatable.arguments)
            ledger.repeatable = replace(repeatable, time=event.time)
            histories.save_history(ledger)
            urls = generate_images(context, request, event.sender)
            return image_response(request, urls)

        while ledger.entries and ledger.entries[-1].role == ROLE_ASSISTANT:
            ledger.entries.pop()
        if not ledger.entries:
            raise ChatError(ErrorKind.NOTHING_TO_REPEAT, "There is nothing to repeat")

        try:
            response = complete_history(context, ledger, event.sender)
        except Exception:
            histories.save_history(ledger)
            raise
        histories.save_history(ledger)
        return response

    def command_instruct(self, context: ChatContext, event: MessageEvent, arg: Optional[str]) -> BotResponse:
        instructions = _optional_text(arg)
        if instructions:
            check_moderation(context, instructions)

        def mutate(config):
            config.instructions = instructions

        context.configurations.update_configuration(event.scope_key, mutate)
        if instructions:
            return text_response("Instructions set for this chat.")
        return text_response("Instructions cleared for this chat.")

    def command_config(self, context: ChatContext, event: MessageEvent, arg: Optional[str]) -> BotResponse:
        positional, keyword = parse_arguments(arg)
        if positional:
            raise ChatError(ErrorKind.INVALID_ARGUMENTS, INVALID_ARGS_MSG)
        unknown = sorted(set(keyword) - {"temperature"})
        if unknown:
            raise ChatError(ErrorKind.INVALID_ARGUMENTS, f"Unknown option: {unknown[0]}")

        configurations = context.configurations
        if "temperature" in keyword:
            temperature = _parse_temperature(keyword["temperature"])

            def mutate(config):
                config.temperature = temperature

            config = configurations.update_configuration(event.scope_key, mutate)
        else:
            config = configurations.get_configuration(event.scope_key)

        if config is None:
            return code_response("No settings overridden for this chat")
        lines = []
        if config.instructions is not None:
            lines.append(f"instructions: {config.instructions}")
        if config.temperature is not None:
            lines.append(f"temperature: {config.temperature:g}")
        return code_response("\n".join(lines))

    def command_history(self, context: ChatContext, event: MessageEvent, arg: Optional[str]) -> BotResponse:
        option = _optional_text(arg)
        if option == "clear":
            context.histories.clear_history(event.scope_key)
            return text_response("History cleared.")
        if option is not None:
            raise ChatError(ErrorKind.INVALID_ARGUMENTS, INVALID_ARGS_MSG)

        ledger = context.histories.get_history(event.scope_key)
        lines = []
        instructions = context.configurations.get_instructions(event.scope_key)
        if instructions:
            lines.extend([f"Instructions: {instructions}", ""])
        for entry in ledger.entries:
            lines.append(f"{_format_time(entry.time)} {entry.role}: {entry.text}")
        if not ledger.entries:
            lines.append("History is empty")
        return code_response("\n".join(lines))

    def command_init(self, context: ChatContext, event: MessageEvent, arg: Optional[str]) -> BotResponse:
        text = _optional_text(arg)
        context.settings.set_init_sequence(text)
        if text:
            return code_response(f"Initialization sequence:\nuser: {text}")
        return code_response("Initialization sequence cleared")

    def command_show(self, context: ChatContext, event: MessageEvent, arg: Optional[str]) -> BotResponse:
        requested = sorted(set(arg.split())) if arg else []
        properties = context.properties
        keys = properties.keys()

        lines = []
        shown = set()
        for key in sorted(keys):
            if key in SECRET_PROPERTIES or is_internal_property(key):
                continue
            if requested and key not in requested:
                continue
            lines.append(f"{key}: {properties.get_string(key)}")
            shown.add(key)
        for key in requested:
            if key in shown:
                continue
            # Secrets are hidden even when unset
            if key in keys or key in SECRET_PROPERTIES:
                lines.append(f"{key} is hidden")
            else:
                lines.append(f"{key} is undefined")
        return code_response("\n".join(lines))

    def command_set(self, context: ChatContext, event: MessageEvent, arg: Optional[str]) -> BotResponse:
        match = PROPERTY_ASSIGNMENT.fullmatch(arg.strip()) if arg else None
        if not match:
            raise ChatError(ErrorKind.INVALID_ARGUMENTS, INVALID_ARGS_MSG)
        key = match.group(1)
        if key in PROTECTED_PROPERTIES or is_internal_property(key):
            raise ChatError(ErrorKind.UNAUTHORIZED, "This property can not be set via chat")

        value = _optional_text(match.group(2))
        if value:
            context.properties.set_string(key, value)
            logger.info(f"Property {key} set by {event.sender}")
            return code_response(f"{key}: {value}")
        context.properties.delete(key)
        logger.info(f"Property {key} deleted by {event.sender}")
        return code_response(f"{key} is undefined")


def _parse_temperature(value: str) -> Optional[float]:
    if value in ("", "default"):
        return None
    try:
        temperature = float(value)
    except ValueError:
        raise ChatError(ErrorKind.INVALID_ARGUMENTS, f"Temperature must be a number: {value}")
    if not 0.0 <= temperature <= MAX_TEMPERATURE:
        raise ChatError(
            ErrorKind.INVALID_ARGUMENTS, f"Temperature must be between 0 and {MAX_TEMPERATURE:g}"
        )
    return temperature


def _format_time(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
