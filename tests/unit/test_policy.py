"""
Unit tests for backoff and failure classification.
"""

from datetime import datetime, timedelta, timezone

import pytest

from invite_jobs.errors import RetryableJobError, TerminalJobError
from invite_jobs.policy import (
    clamp_batch_size,
    classify_failure,
    compute_backoff,
    compute_backoff_ms,
    is_terminal_error,
    to_naive_utc,
)


class TestBackoff:
    """Tests for compute_backoff."""

    @pytest.mark.parametrize(
        ("attempts", "expected"),
        [
            (1, timedelta(minutes=1)),
            (2, timedelta(minutes=2)),
            (3, timedelta(minutes=4)),
            (6, timedelta(minutes=32)),
            (7, timedelta(hours=1)),
            (20, timedelta(hours=1)),
        ],
    )
    def test_doubles_and_caps(self, attempts: int, expected: timedelta):
        assert compute_backoff(attempts) == expected

    def test_zero_attempts_treated_as_first(self):
        assert compute_backoff(0) == timedelta(minutes=1)
        assert compute_backoff(-3) == timedelta(minutes=1)

    def test_huge_attempt_counts_stay_capped(self):
        assert compute_backoff(10_000) == timedelta(hours=1)

    def test_milliseconds(self):
        assert compute_backoff_ms(1) == 60_000
        assert compute_backoff_ms(3) == 240_000
        assert compute_backoff_ms(7) == 3_600_000

    def test_custom_base_and_cap(self):
        delay = compute_backoff(3, base=timedelta(seconds=5), cap=timedelta(seconds=15))
        assert delay == timedelta(seconds=15)


class TestTerminalClassification:
    """Tests for the terminal-error prefix convention."""

    @pytest.mark.parametrize(
        "message",
        [
            "CONFIG_MISSING: Panel API not configured",
            "NOT_IMPLEMENTED: Unknown job type: foo",
            "VALIDATION_ERROR: Missing owner",
            "VALIDATION_ERROR",
        ],
    )
    def test_tagged_messages_are_terminal(self, message: str):
        assert is_terminal_error(message) is True

    @pytest.mark.parametrize(
        "message",
        [
            "",
            "Network timeout",
            "validation_error: lowercase",
            "Error: VALIDATION_ERROR inside",
        ],
    )
    def test_other_messages_are_retryable(self, message: str):
        assert is_terminal_error(message) is False

    def test_classify_tagged_errors_by_type(self):
        assert classify_failure(TerminalJobError.validation_error("Missing owner")) == (
            "VALIDATION_ERROR: Missing owner",
            True,
        )
        # Type wins over a message that looks terminal
        assert classify_failure(RetryableJobError("CONFIG_MISSING later")) == (
            "CONFIG_MISSING later",
            False,
        )

    def test_classify_plain_exceptions_by_prefix(self):
        assert classify_failure(RuntimeError("NOT_IMPLEMENTED: nope")) == (
            "NOT_IMPLEMENTED: nope",
            True,
        )
        assert classify_failure(RuntimeError("boom")) == ("boom", False)

    def test_classify_empty_message_uses_class_name(self):
        assert classify_failure(RuntimeError()) == ("RuntimeError", False)


class TestHelpers:
    """Tests for the small clock and batch helpers."""

    @pytest.mark.parametrize(
        ("requested", "expected"),
        [(None, 10), (0, 1), (-5, 1), (1, 1), (25, 25), (50, 50), (500, 50)],
    )
    def test_clamp_batch_size(self, requested, expected: int):
        assert clamp_batch_size(requested) == expected

    def test_to_naive_utc_converts_aware_values(self):
        aware = datetime(2026, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_naive_utc(aware) == datetime(2026, 1, 1, 10, 0)

    def test_to_naive_utc_keeps_naive_values(self):
        naive = datetime(2026, 1, 1, 12, 0)
        assert to_naive_utc(naive) is naive
