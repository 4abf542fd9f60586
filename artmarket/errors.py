# artmarket/errors.py
"""
Typed errors for the asset market.

Every error carries a machine-readable ``code`` and the structured data that
caused it, so callers catch by type and report by code instead of parsing
messages.

    MarketError
    +-- NotFound
    +-- NotOwner
    +-- InvalidPrice
    +-- InvalidIdentity
    +-- NotForSale
    |   +-- NotListed
    +-- InsufficientPayment
    +-- SelfPurchase
    +-- SettlementFailure
    +-- CorruptSnapshot
"""

from typing import Any, Optional


class MarketError(Exception):
    """Base class for every error raised by a registry operation."""

    code: str = "MARKET_ERROR"

    def __init__(self, message: str, asset_id: Optional[int] = None):
        super().__init__(message)
        self.asset_id = asset_id


class NotFound(MarketError):
    """The asset id was never issued."""

    code = "ASSET_NOT_FOUND"

    def __init__(self, asset_id: Any):
        super().__init__(f"Asset {asset_id} not found", asset_id=asset_id)


class NotOwner(MarketError):
    """The requester is not the asset's current owner."""

    code = "NOT_OWNER"

    def __init__(self, asset_id: int, requester: Any):
        super().__init__(
            f"{requester!r} does not own asset {asset_id}", asset_id=asset_id
        )
        self.requester = requester


class InvalidPrice(MarketError, ValueError):
    code = "INVALID_PRICE"

    def __init__(self, price: Any, asset_id: Optional[int] = None):
        super().__init__(
            f"Listing price must be a positive integer, got {price!r}",
            asset_id=asset_id,
        )
        self.price = price


class InvalidIdentity(MarketError, ValueError):
    code = "INVALID_IDENTITY"

    def __init__(self, identity: Any):
        super().__init__(f"Invalid requester identity: {identity!r}")
        self.identity = identity


class NotForSale(MarketError):
    """The asset is not currently listed."""

    code = "NOT_FOR_SALE"

    def __init__(self, asset_id: int):
        super().__init__(f"Asset {asset_id} is not for sale", asset_id=asset_id)


class NotListed(NotForSale):
    """Delist attempted on an asset that is not listed."""

    code = "NOT_LISTED"


class InsufficientPayment(MarketError):
    code = "INSUFFICIENT_PAYMENT"

    def __init__(self, asset_id: int, price: int, tendered: int):
        super().__init__(
            f"Asset {asset_id} costs {price}, only {tendered} tendered",
            asset_id=asset_id,
        )
        self.price = price
        self.tendered = tendered


class SelfPurchase(MarketError):
    code = "SELF_PURCHASE"

    def __init__(self, asset_id: int, requester: Any):
        super().__init__(
            f"{requester!r} already owns asset {asset_id}", asset_id=asset_id
        )
        self.requester = requester


class SettlementFailure(MarketError):
    """
    The value-transfer primitive reported failure on a leg of a purchase.

    Attributes:
        recipient: Identity the failed leg was paying
        amount: Amount of the failed leg
    """

    code = "SETTLEMENT_FAILURE"

    def __init__(
        self,
        asset_id: int,
        recipient: Any = None,
        amount: Optional[int] = None,
        reason: str = "",
    ):
        message = f"Settlement failed for asset {asset_id}"
        if recipient is not None:
            message += f" paying {amount} to {recipient!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message, asset_id=asset_id)
        self.recipient = recipient
        self.amount = amount


class CorruptSnapshot(MarketError, ValueError):
    """A persisted registry snapshot violates a registry invariant."""

    code = "CORRUPT_SNAPSHOT"

    def __init__(self, reason: str):
        super().__init__(f"Corrupt registry snapshot: {reason}")
        self.reason = reason
