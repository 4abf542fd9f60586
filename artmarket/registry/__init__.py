# artmarket/registry/__init__.py
"""
Asset registry.

The registry is the single state machine of the market: it maps asset ids
to asset records and runs the create / list / purchase / delist lifecycle.

Example:
    registry = AssetRegistry(InMemoryLedger())
    asset_id = registry.create("alice", "ipfs://x")
    registry.list("alice", asset_id, 100)
    receipt = registry.purchase("bob", asset_id, 150)
"""

from .locks import AssetLocks, GLOBAL, LOCK_MODES, PER_ASSET
from .registry import Asset, AssetRegistry

__all__ = ["Asset", "AssetRegistry", "AssetLocks", "LOCK_MODES", "PER_ASSET", "GLOBAL"]
