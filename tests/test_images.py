"""Tests for ai_chatter.images"""

import pytest

from ai_chatter.errors import ChatError, ErrorKind
from ai_chatter.images import (
    ImageRequest,
    default_image_size,
    generate_images,
    image_response,
    parse_image_arguments,
    parse_image_response,
    snap_image_size,
)


class TestParseImageArguments:
    def test_count_size_and_prompt(self):
        assert parse_image_arguments("n=3 256x256 a cat") == ImageRequest("a cat", 3, "256x256")

    def test_size_before_count(self):
        assert parse_image_arguments("300x200 n=2 a dog") == ImageRequest("a dog", 2, "512x512")

    def test_prompt_only_uses_defaults(self):
        assert parse_image_arguments("  a red balloon ") == ImageRequest("a red balloon", 1, "1024x1024")

    def test_multiline_prompt(self):
        request = parse_image_arguments("n=2 a cat\nwearing a hat")
        assert request.prompt == "a cat\nwearing a hat"

    def test_count_is_clamped(self):
        assert parse_image_arguments("n=50 stars").count == 10
        assert parse_image_arguments("n=0 stars").count == 1

    def test_options_after_prompt_stay_in_prompt(self):
        request = parse_image_arguments("a 2x4 lego brick")
        assert request.prompt == "a 2x4 lego brick"
        assert request.size == "1024x1024"

    def test_repeated_option_becomes_prompt(self):
        request = parse_image_arguments("n=2 n=3 dots")
        assert request.count == 2
        assert request.prompt == "n=3 dots"

    @pytest.mark.parametrize("arg", [None, "", "   ", "n=3", "256x256", "n=3 256x256", "512x512 n=2  "])
    def test_missing_prompt_is_argument_error(self, arg):
        with pytest.raises(ChatError) as exc_info:
            parse_image_arguments(arg)
        assert exc_info.value.kind is ErrorKind.INVALID_ARGUMENTS
        assert exc_info.value.is_a(ErrorKind.COMMAND)


class TestImageSizes:
    @pytest.mark.parametrize("width,height,expected", [
        (1, 1, "256x256"),
        (256, 256, "256x256"),
        (257, 100, "512x512"),
        (512, 512, "512x512"),
        (100, 1000, "1024x1024"),
        (2000, 2000, "1024x1024"),
    ])
    def test_snap(self, width, height, expected):
        assert snap_image_size(width, height) == expected

    @pytest.mark.parametrize("count,expected", [(1, "1024x1024"), (2, "512x512"), (4, "512x512"), (5, "256x256")])
    def test_default_by_count(self, count, expected):
        assert default_image_size(count) == expected


class TestGenerateImages:
    def test_request_and_urls(self, context, fake_openai):
        urls = generate_images(context, ImageRequest("a cat", 2, "512x512"), user="users/alice")

        assert urls == ["https://images.test/0.png", "https://images.test/1.png"]
        assert fake_openai.image_payloads() == [
            {"prompt": "a cat", "n": 2, "size": "512x512", "user": "users/alice"}
        ]

    def test_malformed_response(self):
        assert not parse_image_response({"data": [{"b64_json": "..."}]}).ok
        assert not parse_image_response({"created": 1}).ok

    def test_response_section(self):
        response = image_response(ImageRequest("a cat", 1, "1024x1024"), ["https://x/1.png"])
        section = response.section("images")
        assert section.text == '"a cat"'
        assert section.image_urls == ["https://x/1.png"]
        assert "https://x/1.png" in response.to_text()
