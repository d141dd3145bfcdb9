from datetime import datetime, timedelta

from testseries.services import expiry

START = datetime(2026, 1, 5, 9, 0, 0)


class TestEvaluate:
    def test_before_deadline_is_not_expired(self):
        result = expiry.evaluate(START, 30, START + timedelta(minutes=10))
        assert result.expired is False
        assert result.effective_end_time == START + timedelta(minutes=30)

    def test_exactly_at_deadline_is_not_expired(self):
        result = expiry.evaluate(START, 30, START + timedelta(minutes=30))
        assert result.expired is False

    def test_after_deadline_is_expired_with_scheduled_end(self):
        result = expiry.evaluate(START, 1, START + timedelta(minutes=2))
        assert result.expired is True
        assert result.effective_end_time == START + timedelta(minutes=1)


class TestClampedEndTime:
    def test_submit_before_deadline_uses_now(self):
        now = START + timedelta(minutes=5)
        assert expiry.clamped_end_time(START, 30, now) == now

    def test_submit_after_deadline_uses_deadline(self):
        now = START + timedelta(hours=2)
        assert expiry.clamped_end_time(START, 30, now) == START + timedelta(minutes=30)
