# artmarket/registry/registry.py
"""
Asset registry and exchange ledger.

The registry tracks ownership of sequentially numbered assets and runs
their sale lifecycle:
- create: mint an unlisted asset owned by its creator
- list: put an owned asset up for sale at a fixed price
- purchase: buy a listed asset, paying the seller and refunding overpayment
- delist: withdraw a listing

Every mutating operation is all-or-nothing. A purchase changes ownership
first and settles funds second; if settlement fails the ownership change is
rolled back before the error reaches the caller.
"""

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Union

from ..activities import Activity, ActivityFeed
from ..errors import (
    CorruptSnapshot,
    InsufficientPayment,
    InvalidIdentity,
    InvalidPrice,
    NotForSale,
    NotFound,
    NotListed,
    NotOwner,
    SelfPurchase,
    SettlementFailure,
)
from ..settlement import CallableSettlement, InMemoryLedger, SaleReceipt, Settlement
from .locks import PER_ASSET, AssetLocks

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0"


@dataclass
class Asset:
    """
    A minted asset.

    Attributes:
        id: Sequential identifier, starting at 1
        creator: Identity that minted the asset (write-once)
        owner: Current holder
        metadata: Opaque descriptive string, e.g. a content-address URI (write-once)
        price: Asking price while for_sale, otherwise 0
        for_sale: Whether the asset can be purchased
        created_at: Timestamp of mint
    """
    id: int
    creator: Hashable
    owner: Hashable
    metadata: str = ""
    price: int = 0
    for_sale: bool = False
    created_at: float = field(default_factory=time.time)

    def copy(self) -> "Asset":
        return dataclasses.replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "creator": self.creator,
            "owner": self.owner,
            "metadata": self.metadata,
            "price": self.price,
            "for_sale": self.for_sale,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Asset":
        return cls(
            id=data["id"],
            creator=data["creator"],
            owner=data["owner"],
            metadata=data.get("metadata", ""),
            price=data.get("price", 0),
            for_sale=data.get("for_sale", False),
            created_at=data.get("created_at", time.time()),
        )


def _is_amount(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_identity(identity: Hashable) -> None:
    if identity is None or identity == "":
        raise InvalidIdentity(identity)


class AssetRegistry:
    """
    In-memory registry of assets and their listings.

    Usage:
        ledger = InMemoryLedger()
        registry = AssetRegistry(ledger)
        asset_id = registry.create("alice", "ipfs://x")
        registry.list("alice", asset_id, 100)
        registry.purchase("bob", asset_id, 150)  # alice +100, bob refunded 50
    """

    def __init__(
        self,
        settlement: Union[Settlement, Callable[[Hashable, int], bool]] = None,
        feed: Optional[ActivityFeed] = None,
        lock_mode: str = PER_ASSET,
    ):
        """
        Initialize an empty registry.

        Args:
            settlement: Value-transfer primitive used by purchase. A plain
                transfer(to, amount) callable is wrapped; None uses a fresh
                InMemoryLedger.
            feed: Notification sink for lifecycle activities
            lock_mode: "per_asset" or "global"
        """
        if settlement is None:
            settlement = InMemoryLedger()
        elif not isinstance(settlement, Settlement):
            settlement = CallableSettlement(settlement)
        self.settlement = settlement
        self.feed = feed
        self._locks = AssetLocks(lock_mode)
        self._id_lock = threading.RLock()
        self._assets: Dict[int, Asset] = {}
        self._next_id = 1

    @property
    def lock_mode(self) -> str:
        return self._locks.mode

    @property
    def next_id(self) -> int:
        return self._next_id

    def _publish(self, activity: Activity) -> None:
        """Queue a notification; called while the asset is still locked."""
        if self.feed is not None:
            self.feed.publish(activity)

    def _flush(self) -> None:
        """Deliver queued notifications; called with no registry lock held."""
        if self.feed is not None:
            self.feed.flush()

    def _require(self, asset_id: int) -> Asset:
        asset = self._assets.get(asset_id)
        if asset is None:
            logger.debug(f"Rejected request for unknown asset {asset_id}")
            raise NotFound(asset_id)
        return asset

    def _require_owner(self, asset: Asset, requester: Hashable) -> None:
        if asset.owner != requester:
            logger.debug(f"Rejected {requester!r}: not owner of asset {asset.id}")
            raise NotOwner(asset.id, requester)

    # -- lifecycle ---------------------------------------------------------

    def create(self, requester: Hashable, metadata: str = "") -> int:
        """
        Mint a new asset owned by the requester.

        Args:
            requester: Identity of the creator
            metadata: Opaque descriptive string (empty allowed)

        Returns:
            The new asset id
        """
        _check_identity(requester)
        if not isinstance(metadata, str):
            raise TypeError(f"metadata must be a string, got {type(metadata).__name__}")

        with self._id_lock:
            asset_id = self._next_id
            self._locks.register(asset_id)
            # Queued before the asset is visible, so its Create precedes
            # any other activity for it.
            self._publish(Activity.create(asset_id, requester))
            self._assets[asset_id] = Asset(
                id=asset_id,
                creator=requester,
                owner=requester,
                metadata=metadata,
            )
            self._next_id += 1
        logger.info(f"Minted asset {asset_id} for {requester!r}")
        self._flush()
        return asset_id

    def list(self, requester: Hashable, asset_id: int, price: int) -> None:
        """
        Put an owned asset up for sale.

        Re-listing a listed asset changes its price.

        Raises:
            NotFound: Unknown asset id
            NotOwner: Requester does not own the asset
            InvalidPrice: Price is not a positive integer
        """
        _check_identity(requester)
        with self._locks.hold(asset_id):
            asset = self._require(asset_id)
            self._require_owner(asset, requester)
            if not _is_amount(price) or price <= 0:
                logger.debug(f"Rejected listing of asset {asset_id} at {price!r}")
                raise InvalidPrice(price, asset_id=asset_id)

            asset.price = price
            asset.for_sale = True
            logger.info(f"Listed asset {asset_id} at {price}")
            self._publish(Activity.listing(asset_id, requester, price))
        self._flush()

    def purchase(
        self, requester: Hashable, asset_id: int, tendered_amount: int
    ) -> SaleReceipt:
        """
        Buy a listed asset.

        The seller receives exactly the asking price and any excess is
        refunded to the buyer, both through the settlement primitive.

        Args:
            requester: Identity of the buyer
            asset_id: Asset to buy
            tendered_amount: Funds offered by the buyer

        Returns:
            SaleReceipt describing the committed sale

        Raises:
            NotFound: Unknown asset id
            NotForSale: Asset is not listed
            SelfPurchase: Requester already owns the asset
            InsufficientPayment: Tendered amount is below the price
            SettlementFailure: A transfer leg failed; nothing was changed
        """
        _check_identity(requester)
        if not _is_amount(tendered_amount):
            raise TypeError(
                f"tendered_amount must be an integer, got {type(tendered_amount).__name__}"
            )

        with self._locks.hold(asset_id):
            asset = self._require(asset_id)
            if not asset.for_sale:
                logger.debug(f"Rejected purchase of unlisted asset {asset_id}")
                raise NotForSale(asset_id)
            if asset.owner == requester:
                logger.debug(f"Rejected self-purchase of asset {asset_id}")
                raise SelfPurchase(asset_id, requester)
            if tendered_amount < asset.price:
                logger.debug(
                    f"Rejected purchase of asset {asset_id}: "
                    f"{tendered_amount} < {asset.price}"
                )
                raise InsufficientPayment(asset_id, asset.price, tendered_amount)

            seller = asset.owner
            sale_price = asset.price
            refund = tendered_amount - sale_price

            asset.owner = requester
            asset.for_sale = False
            asset.price = 0

            committed = False
            try:
                self._settle(asset_id, seller, sale_price, requester, refund)
                committed = True
            finally:
                if not committed:
                    asset.owner = seller
                    asset.price = sale_price
                    asset.for_sale = True
                    logger.error(f"Rolled back sale of asset {asset_id} to {requester!r}")

            logger.info(
                f"Sold asset {asset_id}: {seller!r} -> {requester!r} for {sale_price}"
            )
            self._publish(Activity.sale(asset_id, seller, requester, sale_price))
        self._flush()

        return SaleReceipt(
            asset_id=asset_id,
            seller=seller,
            buyer=requester,
            price=sale_price,
            refund=refund,
        )

    def _settle(
        self,
        asset_id: int,
        seller: Hashable,
        sale_price: int,
        buyer: Hashable,
        refund: int,
    ) -> None:
        """Pay the seller, then refund the buyer, as one settlement batch."""
        try:
            with self.settlement.batch() as tx:
                if not tx.transfer(seller, sale_price):
                    raise SettlementFailure(asset_id, seller, sale_price)
                if refund > 0 and not tx.transfer(buyer, refund):
                    raise SettlementFailure(asset_id, buyer, refund)
        except SettlementFailure as e:
            logger.warning(str(e))
            raise
        except Exception as e:
            logger.warning(f"Settlement for asset {asset_id} raised: {e}")
            raise SettlementFailure(asset_id, reason=str(e)) from e

    def delist(self, requester: Hashable, asset_id: int) -> None:
        """
        Withdraw a listing.

        Raises:
            NotFound: Unknown asset id
            NotOwner: Requester does not own the asset
            NotListed: Asset is not listed
        """
        _check_identity(requester)
        with self._locks.hold(asset_id):
            asset = self._require(asset_id)
            self._require_owner(asset, requester)
            if not asset.for_sale:
                logger.debug(f"Rejected delisting of unlisted asset {asset_id}")
                raise NotListed(asset_id)

            asset.for_sale = False
            asset.price = 0
            logger.info(f"Delisted asset {asset_id}")
            self._publish(Activity.delisting(asset_id, requester))
        self._flush()

    # -- reads -------------------------------------------------------------

    def get(self, asset_id: int) -> Asset:
        """Get a copy of an asset. Raises NotFound for ids never issued."""
        with self._locks.hold(asset_id):
            return self._require(asset_id).copy()

    def count(self) -> int:
        """Number of assets ever created."""
        return self._next_id - 1

    def _all(self) -> List[Asset]:
        with self._id_lock:
            ids = list(self._assets)
        assets = []
        for asset_id in ids:
            with self._locks.hold(asset_id):
                assets.append(self._assets[asset_id].copy())
        return assets

    def listings(self) -> List[Asset]:
        """Assets currently for sale, in id order."""
        return [a for a in self._all() if a.for_sale]

    def owned_by(self, identity: Hashable) -> List[Asset]:
        """Assets held by an identity, in id order."""
        return [a for a in self._all() if a.owner == identity]

    def __contains__(self, asset_id: int) -> bool:
        return asset_id in self._assets

    def __len__(self) -> int:
        return self.count()

    def __iter__(self) -> Iterator[Asset]:
        return iter(self._all())

    # -- snapshots ---------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Consistent serializable copy of the whole registry."""
        with self._id_lock, self._locks.hold_all():
            return {
                "version": SNAPSHOT_VERSION,
                "next_id": self._next_id,
                "assets": {
                    str(asset_id): asset.to_dict()
                    for asset_id, asset in self._assets.items()
                },
            }

    @classmethod
    def from_snapshot(
        cls,
        data: Dict[str, Any],
        settlement: Union[Settlement, Callable[[Hashable, int], bool]] = None,
        feed: Optional[ActivityFeed] = None,
        lock_mode: str = PER_ASSET,
    ) -> "AssetRegistry":
        """
        Rebuild a registry from snapshot().

        Raises:
            CorruptSnapshot: The data breaks a registry invariant
        """
        registry = cls(settlement=settlement, feed=feed, lock_mode=lock_mode)

        try:
            next_id = data["next_id"]
            raw_assets = data.get("assets", {})
            assets = {int(key): Asset.from_dict(value) for key, value in raw_assets.items()}
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CorruptSnapshot(f"unreadable data ({e})") from e

        if not _is_amount(next_id) or next_id < 1:
            raise CorruptSnapshot(f"invalid next_id {next_id!r}")
        if sorted(assets) != list(range(1, next_id)):
            raise CorruptSnapshot(
                f"asset ids must be exactly 1..{next_id - 1}, got {len(assets)} assets"
            )

        for key in sorted(assets):
            asset = assets[key]
            if asset.id != key:
                raise CorruptSnapshot(f"asset stored under {key} has id {asset.id}")
            if asset.owner is None or asset.owner == "":
                raise CorruptSnapshot(f"asset {key} has no owner")
            if asset.creator is None or asset.creator == "":
                raise CorruptSnapshot(f"asset {key} has no creator")
            if not _is_amount(asset.price) or asset.price < 0:
                raise CorruptSnapshot(f"asset {key} has invalid price {asset.price!r}")
            if asset.for_sale != (asset.price > 0):
                raise CorruptSnapshot(
                    f"asset {key} for_sale={asset.for_sale} with price {asset.price}"
                )
            registry._locks.register(key)
            registry._assets[key] = asset

        registry._next_id = next_id
        logger.info(f"Restored registry with {len(assets)} assets")
        return registry
