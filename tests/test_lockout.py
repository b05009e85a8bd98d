"""
Tests for the sliding-window AttemptLog.
"""
from credvault.vault.lockout import AttemptLog

from conftest import FakeClock


def _log(clock, **kwargs):
    return AttemptLog(clock=clock, **kwargs)


class TestAttemptLog:

    def test_fresh_log_allows_all_attempts(self):
        status = _log(FakeClock()).check()
        assert status.allowed is True
        assert status.remaining_attempts == 5
        assert status.lockout_minutes is None

    def test_failures_reduce_remaining(self):
        log = _log(FakeClock())
        log.record(False)
        log.record(False)
        assert log.check().remaining_attempts == 3

    def test_successes_do_not_count(self):
        log = _log(FakeClock())
        for _ in range(10):
            log.record(True)
        assert log.check().remaining_attempts == 5

    def test_lockout_after_max_failures(self):
        clock = FakeClock()
        log = _log(clock)
        for _ in range(5):
            log.record(False)
            clock.advance(10)
        status = log.check()
        assert status.allowed is False
        assert status.remaining_attempts == 0
        # oldest failure was 50s ago: 850s of lockout left
        assert status.lockout_minutes == 15

    def test_lockout_minutes_count_down(self):
        clock = FakeClock()
        log = _log(clock)
        for _ in range(5):
            log.record(False)
        clock.advance(10 * 60)
        assert log.check().lockout_minutes == 5

    def test_window_expiry_releases_lockout(self):
        clock = FakeClock()
        log = _log(clock)
        for _ in range(5):
            log.record(False)
        clock.advance(15 * 60)
        status = log.check()
        assert status.allowed is True
        assert status.remaining_attempts == 5
        assert len(log) == 0

    def test_partial_expiry(self):
        clock = FakeClock()
        log = _log(clock)
        for _ in range(5):
            log.record(False)
            clock.advance(60)
        # first failure is now 15 minutes old and drops out
        clock.advance(10 * 60)
        status = log.check()
        assert status.allowed is True
        assert status.remaining_attempts == 1

    def test_custom_threshold_and_window(self):
        clock = FakeClock()
        log = _log(clock, max_attempts=2, window=60.0)
        log.record(False)
        log.record(False)
        assert log.check().allowed is False
        clock.advance(61)
        assert log.check().allowed is True

    def test_reset(self):
        log = _log(FakeClock())
        log.record(False)
        log.reset()
        assert len(log) == 0
