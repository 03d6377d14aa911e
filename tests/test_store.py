import pytest

from friction_router.store import MEMORY_URL, create_store
from friction_router.store.memory import MemoryKeyValueStore
from friction_router.store.sql import SQLKeyValueStore


@pytest.fixture(params=["memory", "sqlite"])
def kv(request, clock):
    if request.param == "memory":
        store = create_store(MEMORY_URL, clock=clock)
    else:
        store = create_store("sqlite:///:memory:", clock=clock)
    yield store
    store.close()


def test_factory_selects_backend(clock):
    assert isinstance(create_store(MEMORY_URL, clock=clock), MemoryKeyValueStore)
    sql = create_store("sqlite:///:memory:", clock=clock)
    assert isinstance(sql, SQLKeyValueStore)
    sql.close()


def test_get_missing_returns_none(kv):
    assert kv.get("nope") is None


def test_put_overwrites(kv):
    kv.put("a", "1")
    kv.put("a", "2")
    assert kv.get("a") == "2"


def test_values_expire_with_clock(kv, clock):
    kv.put("short", "x", ttl_seconds=10)
    kv.put("forever", "y")
    clock.advance(9)
    assert kv.get("short") == "x"
    clock.advance(1)
    assert kv.get("short") is None
    assert kv.get("forever") == "y"


def test_list_prefix_sorted_and_capped(kv):
    for key in ["user:c", "user:a", "user:b", "stats:day:2026-03-10"]:
        kv.put(key, "{}")
    assert kv.list("user:") == ["user:a", "user:b", "user:c"]
    assert kv.list("user:", limit=2) == ["user:a", "user:b"]


def test_list_skips_expired(kv, clock):
    kv.put("user:old", "{}", ttl_seconds=5)
    kv.put("user:new", "{}", ttl_seconds=500)
    clock.advance(6)
    assert kv.list("user:") == ["user:new"]


def test_list_prefix_is_literal(kv):
    kv.put("a_b:1", "x")
    kv.put("axb:1", "x")
    assert kv.list("a_b:") == ["a_b:1"]


def test_json_helpers(kv):
    kv.put_json("doc", {"messageCount": 2})
    assert kv.get_json("doc") == {"messageCount": 2}
    kv.put("broken", "{not json")
    assert kv.get_json("broken") is None


def test_rejects_non_positive_ttl(kv):
    with pytest.raises(ValueError):
        kv.put("k", "v", ttl_seconds=0)


def test_sql_purge_expired(clock):
    store = SQLKeyValueStore("sqlite:///:memory:", clock=clock)
    store.put("gone", "x", ttl_seconds=1)
    store.put("kept", "y")
    clock.advance(2)
    assert store.purge_expired() == 1
    assert store.get("kept") == "y"
    assert store.check_connection() is True
    store.close()
