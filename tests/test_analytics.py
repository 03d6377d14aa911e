import pytest

from friction_router.services.analytics import (
    MAX_TRACKED_USERS_PER_DAY,
    AnalyticsReader,
    DailyAggregate,
    UsageEvent,
    UsageRecorder,
    bucket_count,
    hash_user,
)
from tests.conftest import FailingStore


@pytest.fixture
def recorder(store, clock):
    return UsageRecorder(store, clock=clock, salt="pepper")


@pytest.fixture
def reader(store, clock):
    return AnalyticsReader(store, clock=clock)


@pytest.mark.parametrize(
    "n, label",
    [(0, "0"), (1, "1-10"), (10, "1-10"), (11, "10-50"), (50, "10-50"), (99, "50-100"),
     (101, "100-500"), (500, "100-500"), (501, "500+")],
)
def test_bucket_count(n, label):
    assert bucket_count(n) == label


def test_hash_user_is_salted_and_short():
    assert hash_user("1001", "a") != hash_user("1001", "b")
    assert len(hash_user("1001", "a")) == 16


def test_record_aggregates_day(recorder, reader):
    recorder.record(UsageEvent(user_id="1001", model="gpt"))
    recorder.record(UsageEvent(user_id="1001", model="gemini"))
    recorder.record(UsageEvent(user_id="1002", model="gpt"))

    today = reader.daily_stats(1)[0]
    assert today["date"] == "2026-03-10"
    assert today["messages"] == 3
    assert today["models"] == {"gpt": 2, "gemini": 1}
    assert today["uniqueUsers"] == "1-10"


def test_daily_stats_includes_empty_days(recorder, reader, clock):
    recorder.record(UsageEvent(user_id="1001", model="gpt"))
    clock.advance(86_400)
    days = reader.daily_stats(3)
    assert [d["date"] for d in days] == ["2026-03-11", "2026-03-10", "2026-03-09"]
    assert [d["messages"] for d in days] == [0, 1, 0]


def test_user_activity_is_anonymized(recorder, reader, clock):
    recorder.record(UsageEvent(user_id="1001", model="gpt"))
    clock.advance(86_400)
    recorder.record(UsageEvent(user_id="1001", model="gpt"))
    recorder.record(UsageEvent(user_id="1002", model="gpt"))

    users, total = reader.user_list(limit=10)
    assert total == "1-10"
    by_id = {u["id"]: u for u in users}
    first = by_id[hash_user("1001", "pepper")]
    assert first == {"id": hash_user("1001", "pepper"), "firstSeen": "2026-03-10", "lastSeen": "2026-03-11", "messages": 2}
    assert "1001" not in by_id


def test_unique_users_capped(store, clock):
    store.put_json("stats:day:2026-03-10", {
        "messageCount": 5,
        "modelCounts": {},
        "uniqueUserHashes": [f"h{i}" for i in range(MAX_TRACKED_USERS_PER_DAY)],
    })
    UsageRecorder(store, clock=clock).record(UsageEvent(user_id="new", model="gpt"))
    aggregate = DailyAggregate.from_dict(store.get_json("stats:day:2026-03-10"))
    assert aggregate.message_count == 6
    assert len(aggregate.unique_user_hashes) == MAX_TRACKED_USERS_PER_DAY


def test_corrupt_aggregate_starts_over(store, recorder):
    store.put("stats:day:2026-03-10", "not json")
    recorder.record(UsageEvent(user_id="1001", model="gpt"))
    assert store.get_json("stats:day:2026-03-10")["messageCount"] == 1


def test_recording_never_raises(clock):
    UsageRecorder(FailingStore(), clock=clock).record(UsageEvent(user_id="1001", model="gpt"))


def test_admin_endpoints(client, auth_headers, store, clock):
    UsageRecorder(store, clock=clock).record(UsageEvent(user_id="1001", model="gpt"))

    stats = client.get("/api/admin/stats?days=2", headers=auth_headers("admin-token"))
    assert stats.status_code == 200
    assert stats.json()["days"][0]["messages"] == 1
    assert len(stats.json()["days"]) == 2

    users = client.get("/api/admin/users", headers=auth_headers("admin-token"))
    assert users.status_code == 200
    assert users.json()["approximateTotal"] == "1-10"


def test_admin_endpoints_refuse_non_admin(client, auth_headers):
    assert client.get("/api/admin/stats", headers=auth_headers()).status_code == 403
    assert client.get("/api/admin/users").status_code == 401


def test_admin_stats_rejects_bad_days(client, auth_headers):
    response = client.get("/api/admin/stats?days=0", headers=auth_headers("admin-token"))
    assert response.status_code == 400
