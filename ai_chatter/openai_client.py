"""
OpenAI API client — one JSON POST helper shared by completion, image and moderation.

Handles:
- Bearer authentication
- Optional request/response payload logging per service
- Converting transport failures, error statuses and non-JSON bodies into
  upstream chat errors with the cause attached
"""

import json
import logging
import time
from typing import Any, Dict

import httpx

from .errors import ChatError, ErrorKind

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class OpenAIClient:
    """Minimal OpenAI API client."""

    def __init__(self, api_key: str, timeout: float = DEFAULT_TIMEOUT):
        self.api_key = api_key
        self.client = httpx.Client(timeout=timeout)

    def post(self, url: str, payload: Dict[str, Any], service: str, log_payloads: bool = False) -> Any:
        """POST a JSON payload and return the decoded JSON response."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if log_payloads:
            logger.info(f"{service} request:\n{json.dumps(payload, indent=2)}")

        start = time.time()
        try:
            response = self.client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise ChatError(ErrorKind.UPSTREAM, f"Failed to reach the {service} API", e)
        duration_ms = round((time.time() - start) * 1000)

        if not 200 <= response.status_code < 300:
            raise ChatError(
                ErrorKind.UPSTREAM,
                f"Received an error response from the {service} API",
                ChatError(ErrorKind.UPSTREAM, f"HTTP response code {response.status_code}"),
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ChatError(ErrorKind.UPSTREAM, f"Response from the {service} API is not JSON", e)

        logger.debug(f"{service} call took {duration_ms} ms", extra={"duration_ms": duration_ms})
        if log_payloads:
            logger.info(f"{service} response:\n{json.dumps(data, indent=2)}")
        return data

    def close(self) -> None:
        self.client.close()
