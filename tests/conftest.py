"""Shared fixtures: property store, clock, mocked OpenAI API and event factory."""

from unittest.mock import MagicMock

import pytest

from ai_chatter.context import ChatContext
from ai_chatter.events import MessageEvent
from ai_chatter.history import ConversationScope
from ai_chatter.openai_client import OpenAIClient
from ai_chatter.properties import InMemoryPropertyStore

NOW = 1_700_000_000_000
MINUTE = 60 * 1000

ADMIN = "users/admin"
USER = "users/alice"


class Clock:
    """Settable millisecond clock."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += int(minutes * MINUTE)


def mock_response(data, status_code=200):
    """Create a mock httpx response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = data
    return resp


class FakeOpenAI:
    """Answers mocked httpx posts by URL and records every request payload."""

    def __init__(self):
        self.completions = []
        self.default_completion = "Hello!"
        self.flagged = set()
        self.completion_status = 200
        self.requests = []

    def post(self, url, headers=None, json=None):
        self.requests.append((url, json))
        if url.endswith("/moderations"):
            return mock_response({"results": [{"flagged": json["input"] in self.flagged}]})
        if url.endswith("/chat/completions"):
            if self.completion_status != 200:
                return mock_response({"error": {"message": "boom"}}, self.completion_status)
            text = self.completions.pop(0) if self.completions else self.default_completion
            return mock_response({
                "object": "chat.completion",
                "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
                "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
            })
        if url.endswith("/images/generations"):
            return mock_response({
                "created": 1,
                "data": [{"url": f"https://images.test/{i}.png"} for i in range(json["n"])],
            })
        raise AssertionError(f"Unexpected URL {url}")

    def payloads(self, suffix):
        return [payload for url, payload in self.requests if url.endswith(suffix)]

    def completion_payloads(self):
        return self.payloads("/chat/completions")

    def image_payloads(self):
        return self.payloads("/images/generations")

    def moderated_inputs(self):
        return [p["input"] for p in self.payloads("/moderations")]


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store():
    return InMemoryPropertyStore({
        "OPENAI_API_KEY": "sk-test",
        "ADMINS": f"{ADMIN}, users/bob",
    })


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def client_factory(fake_openai):
    """OpenAI clients whose httpx client is replaced with the fake API."""

    def factory(api_key):
        client = OpenAIClient(api_key=api_key)
        client.client = MagicMock()
        client.client.post.side_effect = fake_openai.post
        return client

    return factory


@pytest.fixture
def context(store, clock, client_factory):
    return ChatContext(store, clock=clock, client_factory=client_factory)


@pytest.fixture
def make_event(clock):
    """Build message events; defaults to a group space message from a regular user."""

    def make(
        text,
        sender=USER,
        one_to_one=False,
        space="spaces/A",
        thread=None,
        threaded=False,
        time=None,
    ):
        return MessageEvent(
            scope=ConversationScope(space=space, thread=thread, threaded=threaded),
            sender=sender,
            text=text,
            one_to_one=one_to_one,
            time=clock() if time is None else time,
        )

    return make
