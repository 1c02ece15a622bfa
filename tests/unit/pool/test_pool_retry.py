"""
Unit tests for retry configuration, backoff and error classification.
"""

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy.exc import DBAPIError, ProgrammingError

from ragsync.pool import RetryConfig, calculate_backoff, is_connection_error


class TestRetryConfig:
    def test_defaults(self):
        config = RetryConfig()
        assert config.max_retries == 3
        assert config.initial_delay == 1.0
        assert config.max_delay == 10.0
        assert config.exponential_base == 2.0
        assert config.jitter == 0.0

    @pytest.mark.parametrize(
        "kwargs,message",
        [
            ({"max_retries": 0}, "max_retries must be >= 1, got 0."),
            ({"initial_delay": -1.0}, "initial_delay must be >= 0, got -1.0."),
            ({"initial_delay": 5.0, "max_delay": 1.0}, "max_delay (1.0) must be >= initial_delay"),
            ({"exponential_base": 1.0}, "exponential_base must be > 1.0, got 1.0."),
            ({"jitter": 1.5}, "jitter must be between 0.0 and 1.0, got 1.5."),
        ],
    )
    def test_invalid_values(self, kwargs, message):
        with pytest.raises(ValueError) as exc_info:
            RetryConfig(**kwargs)
        assert message in str(exc_info.value)

    def test_frozen(self):
        config = RetryConfig()
        with pytest.raises(AttributeError):
            config.max_retries = 10  # type: ignore[misc]


class TestCalculateBackoff:
    def test_default_schedule_is_capped(self):
        config = RetryConfig()
        assert [calculate_backoff(n, config) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_custom_base(self):
        config = RetryConfig(initial_delay=0.5, max_delay=100.0, exponential_base=3.0)
        assert calculate_backoff(3, config) == 4.5

    def test_jitter_stays_within_range(self):
        config = RetryConfig(initial_delay=2.0, jitter=0.5)
        with patch("ragsync.pool.retry.random.uniform", return_value=-1.0) as uniform:
            assert calculate_backoff(1, config) == 1.0
        uniform.assert_called_once_with(-1.0, 1.0)

    def test_zero_delay(self):
        config = RetryConfig(initial_delay=0.0, max_delay=0.0)
        assert calculate_backoff(4, config) == 0.0


class TestIsConnectionError:
    @pytest.mark.parametrize(
        "error",
        [
            ConnectionResetError("peer went away"),
            TimeoutError(),
            asyncio.TimeoutError(),
            RuntimeError("Connection terminated unexpectedly"),
            RuntimeError("server closed the connection unexpectedly"),
            OSError("connection refused"),
        ],
    )
    def test_connection_errors(self, error):
        assert is_connection_error(error)

    @pytest.mark.parametrize(
        "error",
        [
            ValueError("invalid input syntax for type integer"),
            RuntimeError('relation "entities" does not exist'),
            None,
        ],
    )
    def test_other_errors(self, error):
        assert not is_connection_error(error)

    def test_follows_sqlalchemy_orig(self):
        wrapped = DBAPIError("SELECT 1", {}, RuntimeError("connection lost"))
        assert is_connection_error(wrapped)

    def test_invalidated_connection(self):
        wrapped = DBAPIError("SELECT 1", {}, RuntimeError("?"), connection_invalidated=True)
        assert is_connection_error(wrapped)

    def test_query_errors_are_not_retried(self):
        wrapped = ProgrammingError("SELEC 1", {}, RuntimeError("syntax error at or near"))
        assert not is_connection_error(wrapped)

    def test_follows_cause_chain(self):
        try:
            try:
                raise ConnectionResetError("reset")
            except ConnectionResetError as inner:
                raise RuntimeError("query failed") from inner
        except RuntimeError as outer:
            assert is_connection_error(outer)
