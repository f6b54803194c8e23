from datetime import datetime, timedelta, timezone

from tax_appeal_comps.enrichment import MonthlyQuotaCounter
from tax_appeal_comps.enrichment.quota import month_key


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_month_key_is_utc():
    central = timezone(timedelta(hours=-6))
    assert month_key(datetime(2025, 1, 31, 20, 0, tzinfo=central)) == "2025-02"
    assert month_key(datetime(2025, 1, 31, 20, 0)) == "2025-01"


def test_acquire_stops_at_ceiling_without_increment():
    counter = MonthlyQuotaCounter(ceiling=2, clock=Clock(datetime(2025, 3, 5, tzinfo=timezone.utc)))
    assert counter.try_acquire()
    assert counter.try_acquire()
    assert not counter.try_acquire()
    assert counter.used == 2
    assert counter.remaining() == 0
    assert counter.exhausted()


def test_counter_resets_when_month_changes():
    clock = Clock(datetime(2025, 3, 31, 23, 59, tzinfo=timezone.utc))
    counter = MonthlyQuotaCounter(ceiling=1, clock=clock)
    assert counter.try_acquire()
    assert not counter.try_acquire()

    clock.now = datetime(2025, 4, 1, 0, 0, tzinfo=timezone.utc)
    assert counter.remaining() == 1
    assert counter.try_acquire()


def test_snapshot():
    counter = MonthlyQuotaCounter(clock=Clock(datetime(2025, 7, 1, tzinfo=timezone.utc)))
    counter.try_acquire()
    assert counter.snapshot() == {"month": "2025-07", "used": 1, "ceiling": 25, "remaining": 24}


def test_zero_ceiling_is_always_exhausted():
    counter = MonthlyQuotaCounter(ceiling=0)
    assert counter.exhausted()
    assert not counter.try_acquire()
