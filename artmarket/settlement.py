# artmarket/settlement.py
"""
Value-transfer primitives used to settle purchases.

The registry never moves funds itself. A purchase pays the seller and refunds
any overpayment through a Settlement, and treats any non-success as terminal
for that transaction. Settlements are never retried.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

# transfer(to, amount) -> success
TransferFn = Callable[[Hashable, int], bool]


@dataclass(frozen=True)
class SaleReceipt:
    """Outcome of a committed purchase."""
    asset_id: int
    seller: Hashable
    buyer: Hashable
    price: int
    refund: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "seller": self.seller,
            "buyer": self.buyer,
            "price": self.price,
            "refund": self.refund,
        }


class Settlement(ABC):
    """
    Base class for value-transfer primitives.

    Subclasses implement transfer(). Primitives able to stage several legs
    and apply them together override batch(); the default batch passes each
    leg straight through.
    """

    @abstractmethod
    def transfer(self, to: Hashable, amount: int) -> bool:
        """
        Move amount to the given identity.

        Returns:
            True if the transfer completed, False otherwise
        """
        pass

    @contextmanager
    def batch(self) -> Iterator["Settlement"]:
        """
        Scope for the legs of one purchase.

        Legs issued inside the scope are committed when it exits normally
        and discarded when it exits with an exception, for primitives that
        support staging.
        """
        yield self


class CallableSettlement(Settlement):
    """
    Adapts a plain transfer(to, amount) callable.

    A plain callable cannot stage legs: if the refund leg fails after the
    seller was paid, the seller payment stands and only the registry state
    is rolled back.
    """

    def __init__(self, transfer_fn: TransferFn):
        self._transfer_fn = transfer_fn

    def transfer(self, to: Hashable, amount: int) -> bool:
        return bool(self._transfer_fn(to, amount))


class InMemoryLedger(Settlement):
    """
    Balance sheet of payouts held in memory.

    Every transfer credits the recipient from the market's escrow; the buyer's
    tender is assumed to have been collected by the caller. Transfers inside
    batch() are staged per thread and applied together on clean exit.

    Args:
        balances: Opening balances per identity
        fail_when: Optional predicate (to, amount) -> bool; a True result
            makes that transfer report failure
    """

    def __init__(
        self,
        balances: Optional[Dict[Hashable, int]] = None,
        fail_when: Optional[Callable[[Hashable, int], bool]] = None,
    ):
        self._balances: Dict[Hashable, int] = dict(balances or {})
        self._fail_when = fail_when
        self._lock = threading.Lock()
        self._local = threading.local()
        self.transfers: List[Tuple[Hashable, int]] = []

    def _staged(self) -> Optional[List[Tuple[Hashable, int]]]:
        return getattr(self._local, "staged", None)

    def transfer(self, to: Hashable, amount: int) -> bool:
        if amount <= 0:
            logger.warning(f"Rejected transfer of {amount} to {to!r}")
            return False
        if self._fail_when and self._fail_when(to, amount):
            logger.warning(f"Transfer of {amount} to {to!r} failed")
            return False

        staged = self._staged()
        if staged is not None:
            staged.append((to, amount))
        else:
            self._apply([(to, amount)])
        return True

    @contextmanager
    def batch(self) -> Iterator["InMemoryLedger"]:
        if self._staged() is not None:
            # Nested scope joins the outer one
            yield self
            return

        self._local.staged = []
        try:
            yield self
        except BaseException:
            logger.debug(f"Discarding {len(self._local.staged)} staged transfers")
            self._local.staged = None
            raise
        staged, self._local.staged = self._local.staged, None
        self._apply(staged)

    def _apply(self, legs: List[Tuple[Hashable, int]]) -> None:
        with self._lock:
            for to, amount in legs:
                self._balances[to] = self._balances.get(to, 0) + amount
                self.transfers.append((to, amount))

    def balance_of(self, identity: Hashable) -> int:
        """Current balance of an identity (0 if never credited)."""
        with self._lock:
            return self._balances.get(identity, 0)

    def balances(self) -> Dict[Hashable, int]:
        with self._lock:
            return dict(self._balances)
