# tests/test_config.py
"""Tests for YAML configuration and registry wiring."""

import logging
import tempfile
from pathlib import Path

import pytest

from artmarket import MarketConfig, RegistryStore, build_registry, configure_logging
from artmarket.activitypub import load_or_create_actor, verify_activity_origin
from artmarket.registry import GLOBAL, PER_ASSET


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestMarketConfig:
    """Tests for parsing."""

    def test_defaults(self):
        config = MarketConfig.from_yaml("")
        assert config.lock_mode == PER_ASSET
        assert config.state_path is None
        assert config.activity_dir is None
        assert config.sign_activities is False
        assert config.log_level == "INFO"

    def test_full(self):
        config = MarketConfig.from_yaml(
            """
registry:
  lock_mode: global
  state_path: ./state/registry.json
activities:
  store_dir: ./state/activities
  sign: true
  actor: gallery
  key_dir: ./state/keys
ledger:
  balances:
    alice: 5
logging:
  level: debug
"""
        )
        assert config.lock_mode == GLOBAL
        assert config.state_path == Path("./state/registry.json")
        assert config.activity_dir == Path("./state/activities")
        assert config.sign_activities is True
        assert config.actor == "gallery"
        assert config.balances == {"alice": 5}
        assert config.log_level == "DEBUG"

    def test_unknown_lock_mode(self):
        with pytest.raises(ValueError):
            MarketConfig.from_yaml("registry:\n  lock_mode: optimistic\n")

    def test_sign_requires_key_dir(self):
        with pytest.raises(ValueError):
            MarketConfig.from_yaml("activities:\n  sign: true\n")

    def test_from_file(self, temp_dir):
        path = temp_dir / "market.yaml"
        path.write_text("registry:\n  lock_mode: global\n")
        assert MarketConfig.from_file(path).lock_mode == GLOBAL


class TestBuildRegistry:
    """Tests for wiring a registry from config."""

    def test_in_memory(self):
        registry = build_registry(MarketConfig())
        asset_id = registry.create("alice", "m")
        registry.list("alice", asset_id, 10)
        registry.purchase("bob", asset_id, 10)

        assert registry.settlement.balance_of("alice") == 10
        assert [a.activity_type for a in registry.feed.store.list()] == [
            "Create", "List", "Sale",
        ]

    def test_opening_balances(self):
        registry = build_registry(MarketConfig(balances={"alice": 7}))
        assert registry.settlement.balance_of("alice") == 7

    def test_restores_state(self, temp_dir):
        config = MarketConfig(state_path=temp_dir / "registry.json")
        first = build_registry(config)
        first.create("alice", "m")
        RegistryStore(config.state_path).save(first)

        second = build_registry(config)
        assert second.count() == 1
        assert second.get(1).owner == "alice"

    def test_signed_activities(self, temp_dir):
        config = MarketConfig(
            sign_activities=True,
            actor="market",
            key_dir=temp_dir / "keys",
            activity_dir=temp_dir / "activities",
        )
        registry = build_registry(config)
        registry.create("alice", "m")

        actor = load_or_create_actor(temp_dir / "keys", "market")
        (activity,) = registry.feed.store.list()
        assert verify_activity_origin(activity, actor)

    def test_lock_mode_applied(self):
        registry = build_registry(MarketConfig(lock_mode=GLOBAL))
        assert registry.lock_mode == GLOBAL


def test_configure_logging():
    configure_logging("debug")
    assert logging.getLogger("artmarket").level == logging.DEBUG
    configure_logging("INFO")
    assert logging.getLogger("artmarket").level == logging.INFO
