# artmarket/store.py
"""
JSON persistence for registry state.

Structure:
    registry.json
        {"version": "1.0", "next_id": N, "assets": {"<id>": {...}, ...}}

Snapshots are validated on load, so a restored registry satisfies the same
invariants as one built up by live operations.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Hashable, Optional, Union

from .activities import ActivityFeed
from .errors import CorruptSnapshot
from .registry import AssetRegistry, PER_ASSET
from .settlement import Settlement

logger = logging.getLogger(__name__)


class RegistryStore:
    """
    Saves and restores an AssetRegistry to a JSON file.

    Usage:
        store = RegistryStore("/var/lib/market/registry.json")
        registry = store.load(settlement=ledger)
        ...
        store.save(registry)
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, registry: AssetRegistry) -> None:
        """Write a consistent snapshot, replacing the file atomically."""
        data = registry.snapshot()
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved {data['next_id'] - 1} assets to {self.path}")

    def load(
        self,
        settlement: Union[Settlement, Callable[[Hashable, int], bool]] = None,
        feed: Optional[ActivityFeed] = None,
        lock_mode: str = PER_ASSET,
    ) -> AssetRegistry:
        """
        Restore a registry, or return an empty one if no file exists yet.

        Raises:
            CorruptSnapshot: The file is unreadable or breaks an invariant
        """
        if not self.path.exists():
            logger.info(f"No registry state at {self.path}, starting empty")
            return AssetRegistry(settlement=settlement, feed=feed, lock_mode=lock_mode)

        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise CorruptSnapshot(f"invalid JSON in {self.path} ({e})") from e

        if not isinstance(data, dict):
            raise CorruptSnapshot(f"expected an object in {self.path}")

        return AssetRegistry.from_snapshot(
            data, settlement=settlement, feed=feed, lock_mode=lock_mode
        )
