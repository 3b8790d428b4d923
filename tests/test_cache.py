from app.database import AsyncSessionLocal
from app.models.tasks import Category
from app.utils.cache import CATEGORIES, TAGS, UserScopedCache, query_cache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entries_are_per_user_and_kind():
    cache = UserScopedCache(ttl_seconds=30)
    cache.set(1, CATEGORIES, ["a"])
    cache.set(2, CATEGORIES, ["b"])
    cache.set(1, TAGS, ["t"])

    assert cache.get(1, CATEGORIES) == ["a"]
    assert cache.get(2, CATEGORIES) == ["b"]
    assert cache.get(2, TAGS) is None


def test_entries_expire():
    clock = FakeClock()
    cache = UserScopedCache(ttl_seconds=30, clock=clock)
    cache.set(1, CATEGORIES, ["a"])
    clock.now = 29
    assert cache.get(1, CATEGORIES) == ["a"]
    clock.now = 31
    assert cache.get(1, CATEGORIES) is None
    assert len(cache) == 0


def test_invalidation():
    cache = UserScopedCache(ttl_seconds=30)
    cache.set(1, CATEGORIES, ["a"])
    cache.set(1, TAGS, ["t"])
    cache.set(2, TAGS, ["u"])

    cache.invalidate(1, TAGS)
    assert cache.get(1, TAGS) is None
    assert cache.get(1, CATEGORIES) == ["a"]

    cache.invalidate_user(1)
    assert cache.get(1, CATEGORIES) is None
    assert cache.get(2, TAGS) == ["u"]


def test_zero_ttl_disables_cache():
    cache = UserScopedCache(ttl_seconds=0)
    cache.set(1, CATEGORIES, ["a"])
    assert cache.get(1, CATEGORIES) is None
    assert len(cache) == 0


async def test_category_listing_is_invalidated_on_mutation(client, alice):
    assert (await client.get("/categories", headers=alice.headers)).json()["categories"] == []
    await client.post("/categories", json={"name": "Work", "color": "#000000"}, headers=alice.headers)
    names = [c["name"] for c in (await client.get("/categories", headers=alice.headers)).json()["categories"]]
    assert names == ["Work"]


async def test_listing_sees_rows_committed_elsewhere(client, alice):
    # Another worker writing the row is indistinguishable from a separate session here
    assert not query_cache.enabled
    assert (await client.get("/categories", headers=alice.headers)).json()["categories"] == []

    async with AsyncSessionLocal() as other:
        other.add(Category(user_id=alice.user_id, name="Work", color="#000000"))
        await other.commit()

    names = [c["name"] for c in (await client.get("/categories", headers=alice.headers)).json()["categories"]]
    assert names == ["Work"]


async def test_enabled_cache_serves_listing_until_invalidated(client, alice, monkeypatch):
    monkeypatch.setattr(query_cache, "ttl_seconds", 60)
    await client.get("/tags", headers=alice.headers)
    assert query_cache.get(alice.user_id, TAGS) == []

    await client.post("/tags", json={"name": "urgent", "color": "#000000"}, headers=alice.headers)
    assert query_cache.get(alice.user_id, TAGS) is None
    names = [t["name"] for t in (await client.get("/tags", headers=alice.headers)).json()["tags"]]
    assert names == ["urgent"]
