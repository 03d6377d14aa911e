from datetime import datetime, timezone

import pytest

from friction_router.core.rate_limiter import (
    AdmissionController,
    AdmissionReason,
    CounterRecord,
    WindowCounter,
)
from friction_router.models.auth import VerifiedIdentity
from tests.conftest import FailingStore, FakeClock


@pytest.fixture
def controller(store, clock) -> AdmissionController:
    return AdmissionController(store, clock=clock, daily_limit=200)


def user(uid: str = "1001") -> VerifiedIdentity:
    return VerifiedIdentity(user_id=uid, email=f"{uid}@example.com")


class TestCounterRecord:
    def test_serialize_parse(self):
        record = CounterRecord(count=3, window_start_ms=1700000000000)
        assert record.serialize() == "3|1700000000000"
        assert CounterRecord.parse("3|1700000000000") == record

    @pytest.mark.parametrize("raw", [None, "", "garbage", "1|2|3", "x|100", "-1|100"])
    def test_unreadable_values_are_absent(self, raw):
        assert CounterRecord.parse(raw) is None


class TestWindowCounter:
    def test_first_hit_starts_window(self, store, clock):
        result = WindowCounter(store).bump("u:1:burst", 10, clock.now_ms())
        assert result.count == 1
        assert result.retry_after_seconds == 10
        assert store.get("u:1:burst") == f"1|{clock.now_ms()}"

    def test_retry_after_counts_down_from_window_start(self, store, clock):
        counter = WindowCounter(store)
        counter.bump("k", 10, clock.now_ms())
        clock.advance(2.5)
        result = counter.bump("k", 10, clock.now_ms())
        assert result.count == 2
        assert result.retry_after_seconds == 8

    def test_stale_record_restarts_window(self, store, clock):
        counter = WindowCounter(store)
        start = clock.now_ms()
        counter.bump("k", 10, start)
        # Unexpired in the store but past its window.
        store.put("k", f"7|{start}", ttl_seconds=3600)
        clock.advance(11)
        result = counter.bump("k", 10, clock.now_ms())
        assert result.count == 1
        assert result.window_start_ms == clock.now_ms()

    def test_retry_after_never_below_one(self, store, clock):
        counter = WindowCounter(store)
        counter.bump("k", 10, clock.now_ms())
        clock.advance(9.999)
        assert counter.bump("k", 10, clock.now_ms()).retry_after_seconds == 1

    def test_fixed_end_reports_remaining(self, store, clock):
        counter = WindowCounter(store)
        counter.bump("d", 500, clock.now_ms(), fixed_end=True)
        clock.advance(100)
        result = counter.bump("d", 400, clock.now_ms(), fixed_end=True)
        assert result.count == 2
        assert result.retry_after_seconds == 400


class TestAdmissionController:
    def test_sixth_request_in_burst_window_is_denied(self, controller, clock):
        for _ in range(5):
            assert controller.check_admission(user(), "203.0.113.7").allowed
            clock.advance(0.4)

        decision = controller.check_admission(user(), "203.0.113.7")
        assert not decision.allowed
        assert decision.reason == AdmissionReason.USER_BURST
        assert 1 <= decision.retry_after_seconds <= 10
        assert decision.retry_after_seconds == 8

    def test_waiting_retry_after_succeeds(self, controller, clock):
        for _ in range(5):
            controller.check_admission(user(), "203.0.113.7")
        decision = controller.check_admission(user(), "203.0.113.7")
        clock.advance(decision.retry_after_seconds)
        assert controller.check_admission(user(), "203.0.113.7").allowed

    def test_ip_burst_spans_users(self, controller):
        for i in range(10):
            assert controller.check_admission(user(f"u{i}"), "198.51.100.1").allowed
        decision = controller.check_admission(user("u-next"), "198.51.100.1")
        assert decision.reason == AdmissionReason.IP_BURST

    def test_user_burst_checked_before_ip(self, controller, store):
        store.put("ip:198.51.100.1:burst", f"50|{controller.clock.now_ms()}", ttl_seconds=10)
        store.put("u:1001:burst", f"5|{controller.clock.now_ms()}", ttl_seconds=10)
        decision = controller.check_admission(user(), "198.51.100.1")
        assert decision.reason == AdmissionReason.USER_BURST

    def test_daily_limit_allows_exactly_limit(self, store, clock):
        controller = AdmissionController(store, clock=clock, user_burst_limit=100, ip_burst_limit=100, daily_limit=3)
        results = [controller.check_admission(user(), "203.0.113.7") for _ in range(4)]
        assert [d.allowed for d in results] == [True, True, True, False]
        assert results[-1].reason == AdmissionReason.DAILY_LIMIT
        # 13:00 Sydney time: eleven hours until midnight.
        assert results[-1].retry_after_seconds == 11 * 3600

    def test_daily_limit_resets_at_local_midnight(self, store, clock):
        controller = AdmissionController(store, clock=clock, user_burst_limit=100, ip_burst_limit=100, daily_limit=1)
        assert controller.check_admission(user(), "ip").allowed
        assert not controller.check_admission(user(), "ip").allowed
        clock.advance(11 * 3600)
        assert controller.check_admission(user(), "ip").allowed

    def test_per_user_override(self, controller, store):
        store.put("limit:1001:daily", "0")
        decision = controller.check_admission(user(), "203.0.113.7")
        assert decision.reason == AdmissionReason.DAILY_LIMIT
        assert controller.daily_limit_for("1002") == 200

    def test_malformed_override_uses_default(self, controller, store):
        store.put("limit:1001:daily", "lots")
        assert controller.daily_limit_for("1001") == 200

    def test_fails_closed_when_store_unreachable(self, clock):
        controller = AdmissionController(FailingStore(), clock=clock, store_retry_after_seconds=5)
        decision = controller.check_admission(user(), "203.0.113.7")
        assert not decision.allowed
        assert decision.reason == AdmissionReason.STORE_UNAVAILABLE
        assert decision.retry_after_seconds == 5

    def test_fails_closed_when_sql_backend_errors(self, broken_sql_store, clock):
        controller = AdmissionController(broken_sql_store, clock=clock, store_retry_after_seconds=7)
        decision = controller.check_admission(user(), "203.0.113.7")
        assert not decision.allowed
        assert decision.reason == AdmissionReason.STORE_UNAVAILABLE
        assert decision.retry_after_seconds == 7

    def test_denial_exception_carries_retry_after(self, controller):
        for _ in range(6):
            decision = controller.check_admission(user(), "203.0.113.7")
        exc = decision.to_exception()
        assert exc.status_code == 429
        assert exc.retry_after == decision.retry_after_seconds
        assert exc.to_dict()["reason"] == "user_burst"

    def test_near_midnight_daily_retry_is_at_least_a_minute(self, store):
        # 23:59:50 in Sydney.
        clock = FakeClock(datetime(2026, 3, 10, 12, 59, 50, tzinfo=timezone.utc))
        controller = AdmissionController(store, clock=clock, user_burst_limit=100, ip_burst_limit=100, daily_limit=0)
        decision = controller.check_admission(user(), "ip")
        assert decision.reason == AdmissionReason.DAILY_LIMIT
        assert decision.retry_after_seconds == 60
