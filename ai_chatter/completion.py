"""
Chat completion: request assembly, response validation and formatting.

The request messages are, in order: the global initialization sequence,
the scope's instructions (if any) as one system message, and the history
entries one to one.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .context import ChatContext
from .errors import ChatError, ErrorKind
from .history import ROLE_ASSISTANT, ROLE_USER, HistoryEntry, HistoryLedger
from .moderation import check_moderation
from .parsing import Parsed
from .responses import BotResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class Completion:
    text: str
    usage: Optional[TokenUsage] = None


def build_completion_messages(
    init: List[Dict[str, str]],
    instructions: Optional[str],
    entries: List[HistoryEntry],
) -> List[Dict[str, str]]:
    messages = [dict(m) for m in init]
    if instructions:
        messages.append({"role": "system", "content": instructions})
    messages.extend({"role": e.role, "content": e.text} for e in entries)
    return messages


def parse_completion_response(data: Any) -> Parsed[Completion]:
    if not isinstance(data, dict):
        return Parsed.failure("Response is not a chat completion object")
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return Parsed.failure("No completion choices available")
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content.strip():
        return Parsed.failure("No completion content available")

    return Parsed.success(Completion(text=content.strip(), usage=_parse_usage(data.get("usage"))))


def _parse_usage(raw: Any) -> Optional[TokenUsage]:
    """Token counts, or None when the usage block is absent or malformed."""
    if not isinstance(raw, dict):
        return None
    counts = [raw.get(k) for k in ("prompt_tokens", "completion_tokens", "total_tokens")]
    if not all(isinstance(c, int) and not isinstance(c, bool) for c in counts):
        return None
    return TokenUsage(*counts)


def request_completion(
    context: ChatContext,
    scope: str,
    entries: List[HistoryEntry],
    user: Optional[str] = None,
) -> Completion:
    """Request a completion for the given history and moderate the result."""
    settings = context.settings
    config = context.configurations.get_configuration(scope)
    messages = build_completion_messages(
        settings.init_sequence, config.instructions if config else None, entries
    )
    payload: Dict[str, Any] = {"model": settings.model, "messages": messages}
    if config is not None and config.temperature is not None:
        payload["temperature"] = config.temperature
    if user:
        payload["user"] = user

    start = time.time()
    data = context.openai.post(
        settings.chat_completion_url,
        payload,
        service="chat completion",
        log_payloads=settings.log_chat_completion,
    )
    duration_ms = round((time.time() - start) * 1000)

    parsed = parse_completion_response(data)
    if not parsed.ok:
        raise ChatError(
            ErrorKind.UPSTREAM,
            "Error while performing chat completion",
            ChatError(ErrorKind.UPSTREAM, parsed.error),
        )
    completion = parsed.value

    usage = completion.usage
    if usage is not None:
        logger.info(
            f"Chat completion: {usage.prompt_tokens}p + {usage.completion_tokens}c",
            extra={
                "model": settings.model,
                "tokens_in": usage.prompt_tokens,
                "tokens_out": usage.completion_tokens,
                "duration_ms": duration_ms,
                "scope": scope,
            },
        )

    check_moderation(context, completion.text)
    return completion


def complete_history(context: ChatContext, ledger: HistoryLedger, user: Optional[str] = None) -> BotResponse:
    """
    Request a completion for a ledger and append it as an assistant entry.

    The caller is responsible for saving the ledger.
    """
    completion = request_completion(context, ledger.scope, ledger.entries, user)
    ledger.append(HistoryEntry(time=context.clock(), role=ROLE_ASSISTANT, text=completion.text))
    return completion_response(context, completion)


def request_simple_completion(
    context: ChatContext, scope: str, prompt: str, user: Optional[str] = None
) -> Completion:
    entry = HistoryEntry(time=context.clock(), role=ROLE_USER, text=prompt)
    return request_completion(context, scope, [entry], user)


def completion_response(context: ChatContext, completion: Completion) -> BotResponse:
    response = BotResponse(text=completion.text)
    if completion.usage is not None and context.settings.show_tokens:
        response.add_section("tokens", "Token usage", format_token_usage(completion.usage, context.settings.token_price))
    return response


def format_token_usage(usage: TokenUsage, token_price: Optional[float] = None) -> str:
    text = (
        f"Prompt tokens: {usage.prompt_tokens}\n"
        f"Completion tokens: {usage.completion_tokens}\n"
        f"Total tokens: {usage.total_tokens}"
    )
    if token_price is not None:
        text += f"\nTotal cost: ${token_price * usage.total_tokens:.6f}"
    return text
