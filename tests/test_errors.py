"""Provider failure classification and user-facing messages."""

import pytest

from coachbot.config.prompt_templates import USER_ERROR_MESSAGES
from coachbot.src.core.errors import GenerationFailed, FailureKind, classify_provider_error, is_retryable, user_message_for


class TestClassification:
    @pytest.mark.parametrize(
        "exc, kind",
        [
            (RuntimeError("429 Resource has been exhausted"), FailureKind.RATE_LIMITED),
            (RuntimeError("429 You exceeded your current quota"), FailureKind.QUOTA),
            (RuntimeError("403 API key not valid"), FailureKind.AUTH),
            (ConnectionError("reset by peer"), FailureKind.NETWORK),
            (TimeoutError(), FailureKind.NETWORK),
            (RuntimeError("empty response from model"), FailureKind.INVALID_RESPONSE),
            (ValueError("something odd"), FailureKind.GENERIC),
        ],
    )
    def test_kinds(self, exc, kind):
        assert classify_provider_error(exc) is kind

    def test_coach_error_keeps_its_kind(self):
        exc = GenerationFailed("boom", FailureKind.QUOTA)
        assert classify_provider_error(exc) is FailureKind.QUOTA


class TestUserMessages:
    def test_raw_provider_text_never_leaks(self):
        message = user_message_for(RuntimeError("403 secret-token-abc rejected"))
        assert message == USER_ERROR_MESSAGES["auth"]
        assert "secret-token-abc" not in message

    def test_generic_fallback(self):
        assert user_message_for(KeyError("x")) == USER_ERROR_MESSAGES["generic"]


class TestRetryable:
    def test_network_and_rate_limit_are_retryable(self):
        assert is_retryable(ConnectionError())
        assert is_retryable(RuntimeError("429 too many requests"))

    def test_auth_is_not_retryable(self):
        assert not is_retryable(RuntimeError("401 unauthorized"))
