"""Tests for ai_chatter.errors"""

from ai_chatter.errors import (
    GENERIC_ERROR_MESSAGE,
    ChatError,
    ErrorKind,
    format_error_chain,
    user_message,
)


class TestErrorKinds:
    def test_unauthorized_is_a_command_error(self):
        err = ChatError(ErrorKind.UNAUTHORIZED, "nope")
        assert err.is_a(ErrorKind.UNAUTHORIZED)
        assert err.is_a(ErrorKind.COMMAND)
        assert not err.is_a(ErrorKind.INVALID_ARGUMENTS)

    def test_command_error_is_not_unauthorized(self):
        err = ChatError(ErrorKind.COMMAND, "bad")
        assert not err.is_a(ErrorKind.UNAUTHORIZED)

    def test_user_visible_kinds(self):
        assert ChatError(ErrorKind.INVALID_ARGUMENTS, "x").user_visible
        assert ChatError(ErrorKind.NOTHING_TO_REPEAT, "x").user_visible
        assert ChatError(ErrorKind.MODERATION_FLAGGED, "x").user_visible
        assert not ChatError(ErrorKind.UPSTREAM, "x").user_visible
        assert not ChatError(ErrorKind.CONFIGURATION, "x").user_visible
        assert not ChatError(ErrorKind.PERSISTENCE, "x").user_visible

    def test_cause_is_chained(self):
        cause = ValueError("inner")
        err = ChatError(ErrorKind.UPSTREAM, "outer", cause)
        assert err.cause is cause
        assert err.__cause__ is cause


class TestFormatErrorChain:
    def test_single_error(self):
        assert format_error_chain(ChatError(ErrorKind.COMMAND, "bad")) == "[command] bad"

    def test_nested_causes(self):
        err = ChatError(
            ErrorKind.UPSTREAM,
            "Error while performing chat completion",
            ChatError(ErrorKind.UPSTREAM, "HTTP response code 500", RuntimeError("socket closed")),
        )
        assert format_error_chain(err) == (
            "[upstream] Error while performing chat completion\n"
            "Caused by: [upstream] HTTP response code 500\n"
            "Caused by: RuntimeError: socket closed"
        )

    def test_plain_exception_with_python_cause(self):
        try:
            try:
                raise KeyError("k")
            except KeyError as e:
                raise RuntimeError("wrapped") from e
        except RuntimeError as err:
            text = format_error_chain(err)
        assert text.splitlines() == ["RuntimeError: wrapped", "Caused by: KeyError: 'k'"]


class TestUserMessage:
    def test_visible_error_message(self):
        assert user_message(ChatError(ErrorKind.UNAUTHORIZED, "Unauthorized")) == "ERROR: Unauthorized"

    def test_internal_errors_are_generic(self):
        assert user_message(ChatError(ErrorKind.CONFIGURATION, "Missing key")) == (
            f"ERROR: {GENERIC_ERROR_MESSAGE}"
        )
        assert user_message(RuntimeError("boom")) == f"ERROR: {GENERIC_ERROR_MESSAGE}"
