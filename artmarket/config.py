# artmarket/config.py
"""
YAML configuration for a market registry.

Example config:

    registry:
      lock_mode: per_asset
      state_path: ./state/registry.json
    activities:
      store_dir: ./state/activities
      sign: true
      actor: market
      key_dir: ./state/keys
    ledger:
      balances:
        alice: 0
    logging:
      level: INFO
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .activities import ActivityFeed, ActivityStore
from .activitypub import Actor, load_or_create_actor, make_signer
from .registry import AssetRegistry, LOCK_MODES, PER_ASSET
from .settlement import InMemoryLedger
from .store import RegistryStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class MarketConfig:
    """
    Parsed market configuration.

    Attributes:
        lock_mode: "per_asset" or "global"
        state_path: JSON snapshot file restored on startup (None: in-memory only)
        activity_dir: Directory of the activity log (None: in-memory log)
        sign_activities: Whether emitted activities are signed
        actor: Username of the signing actor
        key_dir: Directory holding the signing key (<actor>.pem)
        balances: Opening balances of the in-memory ledger
        log_level: Level name for the artmarket logger
    """
    lock_mode: str = PER_ASSET
    state_path: Optional[Path] = None
    activity_dir: Optional[Path] = None
    sign_activities: bool = False
    actor: str = "market"
    key_dir: Optional[Path] = None
    balances: Dict[str, int] = field(default_factory=dict)
    log_level: str = "INFO"

    def __post_init__(self):
        if self.lock_mode not in LOCK_MODES:
            raise ValueError(
                f"Unknown lock_mode {self.lock_mode!r} (expected one of {LOCK_MODES})"
            )
        if self.sign_activities and self.key_dir is None:
            raise ValueError("activities.key_dir is required when sign is enabled")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MarketConfig":
        data = data or {}
        registry = data.get("registry", {}) or {}
        activities = data.get("activities", {}) or {}
        ledger = data.get("ledger", {}) or {}
        log = data.get("logging", {}) or {}

        def _path(value: Any) -> Optional[Path]:
            return Path(value) if value else None

        return cls(
            lock_mode=registry.get("lock_mode", PER_ASSET),
            state_path=_path(registry.get("state_path")),
            activity_dir=_path(activities.get("store_dir")),
            sign_activities=bool(activities.get("sign", False)),
            actor=activities.get("actor", "market"),
            key_dir=_path(activities.get("key_dir")),
            balances={str(k): int(v) for k, v in (ledger.get("balances") or {}).items()},
            log_level=str(log.get("level", "INFO")).upper(),
        )

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "MarketConfig":
        """Parse configuration from a YAML string."""
        return cls.from_dict(yaml.safe_load(yaml_content))

    @classmethod
    def from_file(cls, path: Path | str) -> "MarketConfig":
        """Load configuration from a YAML file."""
        with open(path, "r") as f:
            return cls.from_yaml(f.read())


def configure_logging(level: str = "INFO") -> None:
    """Install a stream handler and set the artmarket logger level."""
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger("artmarket").setLevel(getattr(logging, level.upper(), logging.INFO))


def load_actor(config: MarketConfig) -> Optional[Actor]:
    """Signing actor for the config, created on first use."""
    if not config.sign_activities:
        return None
    return load_or_create_actor(config.key_dir, config.actor)


def build_registry(config: MarketConfig) -> AssetRegistry:
    """
    Build a wired registry from configuration.

    Restores state from config.state_path when the file exists.
    """
    store = ActivityStore(config.activity_dir)
    actor = load_actor(config)
    feed = ActivityFeed(store=store, signer=make_signer(actor) if actor else None)
    ledger = InMemoryLedger(balances=config.balances)

    if config.state_path is not None:
        registry = RegistryStore(config.state_path).load(
            settlement=ledger, feed=feed, lock_mode=config.lock_mode
        )
    else:
        registry = AssetRegistry(settlement=ledger, feed=feed, lock_mode=config.lock_mode)

    logger.info(
        f"Market registry ready: {registry.count()} assets, lock_mode={config.lock_mode}, "
        f"signed={actor is not None}"
    )
    return registry
