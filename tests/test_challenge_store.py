import challenge_store
from challenge_store import MemoryChallengeStore, RedisChallengeStore, create_challenge_store


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def get(self, key):
        self.ops.append(("get", key))

    def delete(self, key):
        self.ops.append(("delete", key))

    def execute(self):
        results = []
        for op, key in self.ops:
            if op == "get":
                results.append(self.client.data.get(key))
            else:
                results.append(1 if self.client.data.pop(key, None) is not None else 0)
        return results


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    def set(self, key, value, ex=None):
        self.data[key] = value.encode("utf-8")
        self.ttls[key] = ex

    def get(self, key):
        return self.data.get(key)

    def pipeline(self):
        return FakePipeline(self)


class TestMemoryStore:
    def test_put_get_pop(self):
        store = MemoryChallengeStore(clock=FakeClock())
        store.put("k", "v", 10)
        assert store.get("k") == "v"
        assert store.pop("k") == "v"
        assert store.pop("k") is None
        assert store.get("k") is None

    def test_expiry(self):
        clock = FakeClock()
        store = MemoryChallengeStore(clock=clock)
        store.put("k", "v", 10)
        clock.now = 9.9
        assert store.get("k") == "v"
        clock.now = 10
        assert store.get("k") is None
        assert store.pop("k") is None

    def test_sweep_drops_only_expired(self):
        clock = FakeClock()
        store = MemoryChallengeStore(clock=clock, sweep_interval=1000)
        store.put("short", "a", 5)
        store.put("long", "b", 50)
        clock.now = 6
        assert store.sweep() == 1
        assert len(store) == 1
        assert store.get("long") == "b"

    def test_put_sweeps_lazily(self):
        clock = FakeClock()
        store = MemoryChallengeStore(clock=clock, sweep_interval=60)
        for i in range(5):
            store.put(f"old{i}", "x", 1)
        clock.now = 61
        store.put("fresh", "y", 10)
        assert len(store) == 1


class TestRedisStore:
    def test_put_sets_ttl_and_prefix(self):
        client = FakeRedis()
        store = RedisChallengeStore(client)
        store.put("42:0xabc", "nonce", 600)
        assert client.ttls == {"niner:challenge:42:0xabc": 600}
        assert store.get("42:0xabc") == "nonce"

    def test_pop_is_single_use(self):
        client = FakeRedis()
        store = RedisChallengeStore(client, prefix="t:")
        store.put("k", "v")
        assert store.pop("k") == "v"
        assert store.pop("k") is None
        assert client.data == {}

    def test_sweep_is_a_no_op(self):
        assert RedisChallengeStore(FakeRedis()).sweep() == 0


def test_factory_picks_backend(monkeypatch):
    assert isinstance(create_challenge_store(None), MemoryChallengeStore)

    seen = []
    monkeypatch.setattr(challenge_store.redis, "from_url", lambda url: seen.append(url) or FakeRedis())
    store = create_challenge_store("redis://localhost:6379/0")
    assert isinstance(store, RedisChallengeStore)
    assert seen == ["redis://localhost:6379/0"]
