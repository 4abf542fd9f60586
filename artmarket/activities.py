# artmarket/activities.py
"""
Lifecycle notifications emitted by the asset registry.

Each committed registry change produces one Activity:
- Create: an asset was minted (asset_id, creator)
- List: an asset was put up for sale (asset_id, price)
- Sale: a listed asset was bought (asset_id, seller, buyer, price)
- Delist: a listing was withdrawn (asset_id)

Activities are fire-and-forget. The registry hands them to an ActivityFeed,
which signs, stores and fans them out to subscribers; a failure anywhere in
the feed is logged and never reaches the registry operation.
"""

import json
import logging
import os
import tempfile
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Hashable, List, Optional

logger = logging.getLogger(__name__)

DOMAIN = "market.local"

CREATE = "Create"
LIST = "List"
SALE = "Sale"
DELIST = "Delist"

ACTIVITY_TYPES = (CREATE, LIST, SALE, DELIST)

Subscriber = Callable[["Activity"], None]
Signer = Callable[["Activity"], "Activity"]


def _generate_id() -> str:
    return str(uuid.uuid4())


def _now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass
class Activity:
    """
    A record of one committed registry change.

    Attributes:
        activity_id: Unique identifier
        activity_type: Create, List, Sale or Delist
        asset_id: Asset the change applies to
        actor: Identity whose request caused the change
        data: Payload fields of the notification
        published: ISO timestamp
        signature: Cryptographic signature (added after signing)
    """
    activity_id: str
    activity_type: str
    asset_id: int
    actor: Hashable
    data: Dict[str, Any] = field(default_factory=dict)
    published: str = field(default_factory=_now)
    signature: Optional[Dict[str, Any]] = None

    @classmethod
    def create(cls, asset_id: int, creator: Hashable) -> "Activity":
        return cls(
            activity_id=_generate_id(),
            activity_type=CREATE,
            asset_id=asset_id,
            actor=creator,
            data={"creator": creator},
        )

    @classmethod
    def listing(cls, asset_id: int, owner: Hashable, price: int) -> "Activity":
        return cls(
            activity_id=_generate_id(),
            activity_type=LIST,
            asset_id=asset_id,
            actor=owner,
            data={"price": price},
        )

    @classmethod
    def sale(
        cls, asset_id: int, seller: Hashable, buyer: Hashable, price: int
    ) -> "Activity":
        return cls(
            activity_id=_generate_id(),
            activity_type=SALE,
            asset_id=asset_id,
            actor=buyer,
            data={"seller": seller, "buyer": buyer, "price": price},
        )

    @classmethod
    def delisting(cls, asset_id: int, owner: Hashable) -> "Activity":
        return cls(
            activity_id=_generate_id(),
            activity_type=DELIST,
            asset_id=asset_id,
            actor=owner,
        )

    def to_activitypub(self, domain: str = DOMAIN) -> Dict[str, Any]:
        """Return ActivityPub JSON-LD representation."""
        activity = {
            "@context": "https://www.w3.org/ns/activitystreams",
            "type": self.activity_type,
            "id": f"https://{domain}/activities/{self.activity_id}",
            "actor": str(self.actor),
            "object": {
                "type": "Asset",
                "id": f"https://{domain}/assets/{self.asset_id}",
                **self.data,
            },
            "published": self.published,
        }
        if self.signature:
            activity["signature"] = self.signature
        return activity

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage."""
        return {
            "activity_id": self.activity_id,
            "activity_type": self.activity_type,
            "asset_id": self.asset_id,
            "actor": self.actor,
            "data": self.data,
            "published": self.published,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        """Deserialize from storage."""
        return cls(
            activity_id=data["activity_id"],
            activity_type=data["activity_type"],
            asset_id=data["asset_id"],
            actor=data["actor"],
            data=data.get("data", {}),
            published=data.get("published", ""),
            signature=data.get("signature"),
        )


class ActivityStore:
    """
    Append-only log of activities.

    Kept in memory; when store_dir is given the log is also written to
    store_dir/activities.json after every append, replacing the file
    atomically.
    """

    def __init__(self, store_dir: Path | str = None):
        self.store_dir = Path(store_dir) if store_dir else None
        self._activities: List[Activity] = []
        self._lock = threading.Lock()
        if self.store_dir is not None:
            self.store_dir.mkdir(parents=True, exist_ok=True)
            self._load()

    def _log_path(self) -> Path:
        return self.store_dir / "activities.json"

    def _load(self):
        """Load activities from disk."""
        log_path = self._log_path()
        if log_path.exists():
            try:
                with open(log_path) as f:
                    data = json.load(f)
                self._activities = [
                    Activity.from_dict(a) for a in data.get("activities", [])
                ]
            except (json.JSONDecodeError, KeyError) as e:
                logger.warning(f"Failed to load activities: {e}")
                self._activities = []

    def _save(self):
        """Save activities to disk."""
        data = {
            "version": "1.0",
            "activities": [a.to_dict() for a in self._activities],
        }
        fd, tmp_name = tempfile.mkstemp(
            dir=self.store_dir, prefix=".activities.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self._log_path())
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def add(self, activity: Activity) -> None:
        """Append an activity to the log."""
        with self._lock:
            self._activities.append(activity)
            if self.store_dir is not None:
                self._save()

    def get(self, activity_id: str) -> Optional[Activity]:
        for a in self._activities:
            if a.activity_id == activity_id:
                return a
        return None

    def list(self) -> List[Activity]:
        """List all activities, oldest first."""
        return list(self._activities)

    def find_by_asset(self, asset_id: int) -> List[Activity]:
        return [a for a in self._activities if a.asset_id == asset_id]

    def find_by_type(self, activity_type: str) -> List[Activity]:
        return [a for a in self._activities if a.activity_type == activity_type]

    def history(self, asset_id: int) -> List[Hashable]:
        """
        Ownership chain of an asset.

        Starts with the creator and appends each buyer in sale order.
        Empty if the log holds no Create activity for the asset.
        """
        owners = []
        for a in self.find_by_asset(asset_id):
            if a.activity_type == CREATE:
                owners = [a.data["creator"]]
            elif a.activity_type == SALE and owners:
                owners.append(a.data["buyer"])
        return owners

    def __len__(self) -> int:
        return len(self._activities)


class ActivityFeed:
    """
    Notification sink handed to the registry.

    The registry queues activities with publish() while it still holds the
    asset lock, so the queue order is the commit order. flush() then
    delivers them with no registry lock held: each activity is signed (if a
    signer is set), appended to the store (if any) and passed to every
    subscriber. Errors at every step are logged and dropped.

    One thread delivers at a time. A flush() that finds delivery already
    running returns at once and leaves its activities to that thread, so a
    subscriber may call back into the registry without blocking.
    """

    def __init__(
        self,
        store: Optional[ActivityStore] = None,
        signer: Optional[Signer] = None,
    ):
        self.store = store
        self._signer = signer
        self._subscribers: List[Subscriber] = []
        self._pending: Deque[Activity] = deque()
        self._queue_lock = threading.Lock()
        self._dispatch_lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> None:
        """Register a callback invoked with every emitted activity."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> bool:
        if callback not in self._subscribers:
            return False
        self._subscribers.remove(callback)
        return True

    def publish(self, activity: Activity) -> None:
        """Queue an activity for delivery."""
        with self._queue_lock:
            self._pending.append(activity)

    def flush(self) -> None:
        """Deliver queued activities in order."""
        while self._dispatch_lock.acquire(blocking=False):
            try:
                while True:
                    with self._queue_lock:
                        if not self._pending:
                            break
                        activity = self._pending.popleft()
                    self._deliver(activity)
            finally:
                self._dispatch_lock.release()
            # Another thread may have queued after the drain and given up
            # on the lock we were holding.
            with self._queue_lock:
                if not self._pending:
                    return

    def emit(self, activity: Activity) -> Activity:
        """Queue and deliver an activity."""
        self.publish(activity)
        self.flush()
        return activity

    def _deliver(self, activity: Activity) -> None:
        if self._signer is not None:
            try:
                self._signer(activity)
            except Exception as e:
                logger.warning(f"Signing {activity.activity_type} activity failed: {e}")

        if self.store is not None:
            try:
                self.store.add(activity)
            except Exception as e:
                logger.warning(f"Storing activity {activity.activity_id} failed: {e}")

        for callback in list(self._subscribers):
            try:
                callback(activity)
            except Exception as e:
                logger.warning(f"Activity subscriber error: {e}")

        logger.debug(f"Emitted {activity.activity_type} for asset {activity.asset_id}")
