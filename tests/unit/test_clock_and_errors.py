"""Tests for the injectable clock and the typed exception hierarchy."""

from datetime import datetime, timedelta, timezone

import pytest

from office_kernel.domain.clock import DeterministicClock, SystemClock
from office_kernel import exceptions
from office_kernel.exceptions import (
    RETRYABLE_ERRORS,
    AccessDeniedError,
    AuthorizationError,
    OfficeKernelError,
    ScopeViolationError,
    SequenceExhaustedError,
    TransientStorageError,
)


class TestDeterministicClock:

    def test_does_not_move_on_its_own(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now()
        assert clock.monotonic() == 0.0

    def test_advance_moves_both_readings(self):
        start = datetime(2025, 4, 6, tzinfo=timezone.utc)
        clock = DeterministicClock(start)
        clock.advance(90)
        assert clock.now() == start + timedelta(seconds=90)
        assert clock.monotonic() == 90

    def test_set_time_leaves_monotonic_alone(self):
        clock = DeterministicClock()
        clock.advance(5)
        clock.set_time(datetime(2030, 1, 1, tzinfo=timezone.utc))
        assert clock.now() == datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert clock.monotonic() == 5

    def test_cannot_go_backwards(self):
        with pytest.raises(ValueError):
            DeterministicClock().advance(-1)

    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo is not None


class TestExceptionHierarchy:

    def test_every_error_has_a_unique_code(self):
        classes = [
            obj
            for obj in vars(exceptions).values()
            if isinstance(obj, type) and issubclass(obj, OfficeKernelError)
        ]
        codes = [cls.code for cls in classes]
        assert len(codes) == len(set(codes))
        assert all(code.isupper() for code in codes)

    def test_scope_violation_is_not_access_denied(self):
        assert issubclass(ScopeViolationError, AuthorizationError)
        assert not issubclass(ScopeViolationError, AccessDeniedError)

    def test_structured_attributes(self):
        exc = SequenceExhaustedError("e-1", "JSM", 26)
        assert exc.code == "SEQUENCE_EXHAUSTED"
        assert exc.base_code == "JSM"
        assert exc.attempts == 26
        assert "JSM" in str(exc)

    def test_only_transient_failures_are_retryable(self):
        assert RETRYABLE_ERRORS == (TransientStorageError,)
        assert TransientStorageError.code == "TRANSIENT_STORAGE_FAILURE"
