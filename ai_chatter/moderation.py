"""
Content moderation check, applied to user input and to completions alike.
"""

import logging
from typing import Any, List

from .context import ChatContext
from .errors import ChatError, ErrorKind
from .parsing import Parsed

logger = logging.getLogger(__name__)

FLAGGED_MESSAGE = "Content was flagged by moderation"


def parse_moderation_response(data: Any) -> Parsed[List[bool]]:
    """Return the flagged value of every result."""
    results = data.get("results") if isinstance(data, dict) else None
    if not isinstance(results, list) or not results:
        return Parsed.failure("Response is not a moderation result")
    flags = []
    for result in results:
        flagged = result.get("flagged") if isinstance(result, dict) else None
        if not isinstance(flagged, bool):
            return Parsed.failure(f"Moderation result without a flagged value: {result!r}")
        flags.append(flagged)
    return Parsed.success(flags)


def check_moderation(context: ChatContext, text: str) -> None:
    """Raise a flagged-content error if any moderation result flags the text."""
    settings = context.settings
    data = context.openai.post(
        settings.moderation_url,
        {"input": text},
        service="moderation",
        log_payloads=settings.log_moderation,
    )
    parsed = parse_moderation_response(data)
    if not parsed.ok:
        raise ChatError(
            ErrorKind.UPSTREAM,
            "Error while doing moderation",
            ChatError(ErrorKind.UPSTREAM, parsed.error),
        )
    if any(parsed.value):
        logger.info("Content flagged by moderation")
        raise ChatError(ErrorKind.MODERATION_FLAGGED, FLAGGED_MESSAGE)
