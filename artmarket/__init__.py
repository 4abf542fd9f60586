# artmarket - Asset registry and fixed-price exchange ledger
#
# Tracks ownership of sequentially numbered digital assets, lets holders list
# them at a fixed price, and settles purchases atomically: ownership moves to
# the buyer, the seller is paid and any overpayment is refunded, or nothing
# changes at all.
#
# Core concepts:
# - Asset: A minted item with creator, owner, price and sale flag
# - AssetRegistry: The state machine running create/list/purchase/delist
# - Settlement: The value-transfer primitive purchases pay through
# - Activity: A notification emitted for every committed change

from .errors import (
    MarketError,
    NotFound,
    NotOwner,
    InvalidPrice,
    InvalidIdentity,
    NotForSale,
    NotListed,
    InsufficientPayment,
    SelfPurchase,
    SettlementFailure,
    CorruptSnapshot,
)
from .settlement import Settlement, CallableSettlement, InMemoryLedger, SaleReceipt
from .activities import Activity, ActivityStore, ActivityFeed
from .registry import Asset, AssetRegistry
from .store import RegistryStore
from .config import MarketConfig, build_registry, configure_logging

__all__ = [
    # Core
    "Asset",
    "AssetRegistry",
    "Settlement",
    "CallableSettlement",
    "InMemoryLedger",
    "SaleReceipt",
    "Activity",
    "ActivityStore",
    "ActivityFeed",
    "RegistryStore",
    "MarketConfig",
    "build_registry",
    "configure_logging",
    # Errors
    "MarketError",
    "NotFound",
    "NotOwner",
    "InvalidPrice",
    "InvalidIdentity",
    "NotForSale",
    "NotListed",
    "InsufficientPayment",
    "SelfPurchase",
    "SettlementFailure",
    "CorruptSnapshot",
]

__version__ = "0.1.0"
