"""
Image generation: `/image` argument parsing, size snapping and the API call.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from .context import ChatContext
from .errors import ChatError, ErrorKind
from .parsing import Parsed
from .responses import BotResponse

logger = logging.getLogger(__name__)

SUPPORTED_SIZES: List[Tuple[int, int]] = [(256, 256), (512, 512), (1024, 1024)]
MAX_IMAGES = 10

COUNT_TOKEN = re.compile(r"n=(\d+)")
SIZE_TOKEN = re.compile(r"(\d+)x(\d+)")
WHITESPACE = re.compile(r"\s+")

INVALID_ARGS_MSG = "Invalid command arguments"


@dataclass(frozen=True)
class ImageRequest:
    prompt: str
    count: int
    size: str


def format_size(size: Tuple[int, int]) -> str:
    return f"{size[0]}x{size[1]}"


def snap_image_size(width: int, height: int) -> str:
    """The smallest supported size covering the request, else the largest one."""
    covering = [s for s in SUPPORTED_SIZES if s[0] >= width and s[1] >= height]
    if covering:
        return format_size(min(covering, key=lambda s: s[0] * s[1]))
    return format_size(max(SUPPORTED_SIZES, key=lambda s: s[0] * s[1]))


def default_image_size(count: int) -> str:
    if count > 4:
        return format_size(SUPPORTED_SIZES[0])
    if count > 1:
        return format_size(SUPPORTED_SIZES[1])
    return format_size(SUPPORTED_SIZES[2])


def parse_image_arguments(arg: Optional[str]) -> ImageRequest:
    """
    Parse `[n=<count>] [<width>x<height>] <prompt>`.

    The count and size options may come in either order before the prompt;
    each is taken at most once. Whatever follows is the prompt, which must
    not be empty.
    """
    rest = (arg or "").strip()
    count: Optional[int] = None
    size: Optional[str] = None
    while rest:
        parts = WHITESPACE.split(rest, maxsplit=1)
        token = parts[0]
        remainder = parts[1] if len(parts) > 1 else ""
        count_match = COUNT_TOKEN.fullmatch(token) if count is None else None
        size_match = SIZE_TOKEN.fullmatch(token) if size is None else None
        if count_match:
            count = min(max(int(count_match.group(1)), 1), MAX_IMAGES)
        elif size_match:
            size = snap_image_size(int(size_match.group(1)), int(size_match.group(2)))
        else:
            break
        rest = remainder.strip()

    if not rest:
        raise ChatError(ErrorKind.INVALID_ARGUMENTS, INVALID_ARGS_MSG)
    count = count or 1
    return ImageRequest(prompt=rest, count=count, size=size or default_image_size(count))


def parse_image_response(data: Any) -> Parsed[List[str]]:
    images = data.get("data") if isinstance(data, dict) else None
    if not isinstance(images, list):
        return Parsed.failure("Response is not an image generation result")
    urls = []
    for image in images:
        url = image.get("url") if isinstance(image, dict) else None
        if not isinstance(url, str) or not url:
            return Parsed.failure(f"Image result without a URL: {image!r}")
        urls.append(url)
    return Parsed.success(urls)


def generate_images(context: ChatContext, request: ImageRequest, user: Optional[str] = None) -> List[str]:
    """Request image generation and return the image URLs."""
    settings = context.settings
    payload = {"prompt": request.prompt, "n": request.count, "size": request.size}
    if user:
        payload["user"] = user
    data = context.openai.post(
        settings.image_generation_url,
        payload,
        service="image generation",
        log_payloads=settings.log_image,
    )
    parsed = parse_image_response(data)
    if not parsed.ok:
        raise ChatError(
            ErrorKind.UPSTREAM,
            "Error while doing image generation",
            ChatError(ErrorKind.UPSTREAM, parsed.error),
        )
    logger.info(f"Generated {len(parsed.value)} images of size {request.size}")
    return parsed.value


def image_response(request: ImageRequest, urls: List[str]) -> BotResponse:
    return BotResponse(
        text=f'Generated images: "{request.prompt}"',
    ).add_section("images", "Generated images", f'"{request.prompt}"', urls)
