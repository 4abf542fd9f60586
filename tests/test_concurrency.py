# tests/test_concurrency.py
"""Tests for registry behaviour under concurrent callers."""

import threading
import time

import pytest

from artmarket import AssetRegistry, InMemoryLedger, NotForSale, RegistryStore
from artmarket.activities import ActivityFeed, ActivityStore
from artmarket.registry import AssetLocks, GLOBAL, PER_ASSET


class SlowLedger(InMemoryLedger):
    """Ledger that pauses inside every transfer to widen race windows."""

    def transfer(self, to, amount):
        time.sleep(0.05)
        return super().transfer(to, amount)


def run_together(*targets):
    """Start all targets at once and wait for them."""
    barrier = threading.Barrier(len(targets))
    results = [None] * len(targets)

    def wrap(i, target):
        barrier.wait()
        try:
            results[i] = target()
        except Exception as e:
            results[i] = e

    threads = [threading.Thread(target=wrap, args=(i, t)) for i, t in enumerate(targets)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results


@pytest.mark.parametrize("lock_mode", [PER_ASSET, GLOBAL])
class TestPurchaseRace:
    """Two buyers racing for one listing."""

    def test_exactly_one_buyer_wins(self, lock_mode):
        ledger = SlowLedger()
        registry = AssetRegistry(ledger, lock_mode=lock_mode)
        asset_id = registry.create("alice", "m")
        registry.list("alice", asset_id, 100)

        results = run_together(
            lambda: registry.purchase("bob", asset_id, 100),
            lambda: registry.purchase("carol", asset_id, 120),
        )

        errors = [r for r in results if isinstance(r, Exception)]
        receipts = [r for r in results if not isinstance(r, Exception)]
        assert len(receipts) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], NotForSale)

        winner = receipts[0].buyer
        asset = registry.get(asset_id)
        assert asset.owner == winner
        assert asset.for_sale is False
        assert ledger.balance_of("alice") == 100

    def test_delist_racing_purchase_stays_consistent(self, lock_mode):
        registry = AssetRegistry(SlowLedger(), lock_mode=lock_mode)
        asset_id = registry.create("alice", "m")
        registry.list("alice", asset_id, 100)

        run_together(
            lambda: registry.purchase("bob", asset_id, 100),
            lambda: registry.delist("alice", asset_id),
        )

        asset = registry.get(asset_id)
        assert asset.for_sale is False
        assert asset.price == 0
        assert asset.owner in ("alice", "bob")


class TestConcurrentCreate:
    """Concurrent minting."""

    def test_ids_unique_and_dense(self):
        registry = AssetRegistry(InMemoryLedger())
        ids = []
        lock = threading.Lock()

        def mint():
            for _ in range(50):
                asset_id = registry.create("alice", "m")
                with lock:
                    ids.append(asset_id)

        threads = [threading.Thread(target=mint) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(ids) == list(range(1, 401))
        assert registry.count() == 400


class TestIsolation:
    """Operations on different assets do not block each other."""

    def test_other_asset_not_blocked_during_settlement(self):
        started = threading.Event()
        release = threading.Event()

        class BlockingLedger(InMemoryLedger):
            def transfer(self, to, amount):
                started.set()
                release.wait(timeout=5)
                return super().transfer(to, amount)

        registry = AssetRegistry(BlockingLedger())
        first = registry.create("alice", "a")
        second = registry.create("alice", "b")
        registry.list("alice", first, 10)

        buyer = threading.Thread(target=registry.purchase, args=("bob", first, 10))
        buyer.start()
        assert started.wait(timeout=5)

        # first is locked mid-settlement; second must still be usable
        registry.list("alice", second, 20)
        assert registry.get(second).price == 20

        release.set()
        buyer.join(timeout=5)
        assert registry.get(first).owner == "bob"


class TestSubscribersReadingRegistry:
    """Subscribers may read the registry while other threads change it."""

    @pytest.mark.parametrize("lock_mode", [PER_ASSET, GLOBAL])
    def test_listings_from_subscriber(self, lock_mode):
        feed = ActivityFeed()
        registry = AssetRegistry(InMemoryLedger(), feed=feed, lock_mode=lock_mode)
        first = registry.create("alice", "a")
        second = registry.create("alice", "b")
        seen = []

        def on_activity(activity):
            if activity.activity_type == "List":
                time.sleep(0.05)
                seen.append(len(registry.listings()))

        feed.subscribe(on_activity)
        threads = [
            threading.Thread(target=registry.list, args=("alice", first, 10)),
            threading.Thread(target=registry.list, args=("alice", second, 20)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert not any(t.is_alive() for t in threads)
        assert len(seen) == 2
        assert len(registry.listings()) == 2

    def test_snapshot_from_subscriber(self, tmp_path):
        store = ActivityStore()
        feed = ActivityFeed(store=store)
        registry = AssetRegistry(InMemoryLedger(), feed=feed)
        state = RegistryStore(tmp_path / "registry.json")
        feed.subscribe(lambda activity: state.save(registry))

        ids = [registry.create("alice", f"m{i}") for i in range(4)]
        threads = [
            threading.Thread(target=registry.list, args=("alice", asset_id, 5))
            for asset_id in ids
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert not any(t.is_alive() for t in threads)
        assert len(store) == 8
        assert len(state.load().listings()) == 4


class TestAssetLocks:
    """Tests for the lock table."""

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            AssetLocks("optimistic")

    def test_unregistered_id_yields_false(self):
        locks = AssetLocks()
        with locks.hold(1) as held:
            assert held is False

    def test_register_once(self):
        locks = AssetLocks()
        assert locks.register(1) is locks.register(1)
        assert len(locks) == 1

    def test_global_mode_shares_lock(self):
        locks = AssetLocks(GLOBAL)
        assert locks.register(1) is locks.register(2)
