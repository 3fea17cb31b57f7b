"""In-process room store implementation."""

import copy
import logging
import threading
import uuid

from core.config import UNIQUE_KEYS, CASCADES
from core.errors import NotFound, UniqueViolation
from core.interfaces import ChangeCallback, RoomStore, Subscription
from core.utils import to_iso, utc_now

logger = logging.getLogger(__name__)


def matches(row: dict, filters: dict) -> bool:
    return all(row.get(key) == value for key, value in filters.items())


class ChangeFeed:
    """Subscriber registry; delivers full rows after each committed write."""

    def __init__(self):
        self._subscribers: dict[int, tuple[str, dict, ChangeCallback]] = {}
        self._next_id = 0
        self._lock = threading.Lock()

    def subscribe(self, collection: str, filters: dict, callback: ChangeCallback) -> Subscription:
        with self._lock:
            key = self._next_id
            self._next_id += 1
            self._subscribers[key] = (collection, dict(filters or {}), callback)
        return Subscription(lambda: self._remove(key))

    def _remove(self, key: int) -> None:
        with self._lock:
            self._subscribers.pop(key, None)

    def publish(self, collection: str, event: str, row: dict) -> None:
        with self._lock:
            targets = [cb for coll, filters, cb in self._subscribers.values()
                       if coll == collection and matches(row, filters)]
        for callback in targets:
            try:
                callback(event, copy.deepcopy(row))
            except Exception as e:
                logger.error(f"Change subscriber failed on {collection} {event}: {e}")


class InMemoryRoomStore(RoomStore):
    """Room store kept in process memory.

    Enforces the unique keys and cascades from core.config, applies
    increments and conditional updates under one lock, and notifies
    subscribers after the lock is released.
    """

    def __init__(self, unique_keys: dict | None = None, cascades: dict | None = None):
        self.unique_keys = UNIQUE_KEYS if unique_keys is None else unique_keys
        self.cascades = CASCADES if cascades is None else cascades
        self._tables: dict[str, dict[str, dict]] = {}
        self._lock = threading.RLock()
        self.feed = ChangeFeed()

    def _table(self, collection: str) -> dict[str, dict]:
        return self._tables.setdefault(collection, {})

    def _row(self, collection: str, row_id: str) -> dict:
        row = self._table(collection).get(row_id)
        if row is None:
            raise NotFound(f"{collection} row {row_id} not found")
        return row

    def _check_unique(self, collection: str, candidate: dict, row_id: str | None = None) -> None:
        for fields in self.unique_keys.get(collection, []):
            key = tuple(candidate.get(f) for f in fields)
            for other_id, other in self._table(collection).items():
                if other_id != row_id and tuple(other.get(f) for f in fields) == key:
                    raise UniqueViolation(collection, fields)

    def get(self, collection: str, row_id: str) -> dict:
        with self._lock:
            return copy.deepcopy(self._row(collection, row_id))

    def find(self, collection: str, **filters) -> list[dict]:
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._table(collection).values() if matches(r, filters)]
        rows.sort(key=lambda r: r.get('created_at') or '')
        return rows

    def insert(self, collection: str, fields: dict) -> str:
        now = to_iso(utc_now())
        with self._lock:
            row = copy.deepcopy(fields)
            row['id'] = row.get('id') or str(uuid.uuid4())
            row.setdefault('created_at', now)
            row['updated_at'] = now
            self._check_unique(collection, row)
            self._table(collection)[row['id']] = row
            snapshot = copy.deepcopy(row)
        self.feed.publish(collection, 'insert', snapshot)
        return snapshot['id']

    def _apply(self, collection: str, row: dict, fields: dict) -> dict:
        candidate = {**row, **copy.deepcopy(fields), 'updated_at': to_iso(utc_now())}
        self._check_unique(collection, candidate, row['id'])
        row.clear()
        row.update(candidate)
        return copy.deepcopy(row)

    def update(self, collection: str, row_id: str, fields: dict) -> None:
        with self._lock:
            snapshot = self._apply(collection, self._row(collection, row_id), fields)
        self.feed.publish(collection, 'update', snapshot)

    def compare_and_update(self, collection: str, row_id: str, fields: dict,
                           expected: dict) -> bool:
        with self._lock:
            row = self._row(collection, row_id)
            if not matches(row, expected):
                return False
            snapshot = self._apply(collection, row, fields)
        self.feed.publish(collection, 'update', snapshot)
        return True

    def atomic_increment(self, collection: str, row_id: str, field: str, delta: int) -> int:
        with self._lock:
            row = self._row(collection, row_id)
            value = int(row.get(field) or 0) + delta
            snapshot = self._apply(collection, row, {field: value})
        self.feed.publish(collection, 'update', snapshot)
        return value

    def delete(self, collection: str, row_id: str) -> bool:
        removed = []
        with self._lock:
            row = self._table(collection).pop(row_id, None)
            if row is None:
                return False
            removed.append((collection, row))
            for child, key in self.cascades.get(collection, []):
                table = self._table(child)
                for child_id in [cid for cid, r in table.items() if r.get(key) == row_id]:
                    removed.append((child, table.pop(child_id)))
        for coll, r in removed:
            self.feed.publish(coll, 'delete', r)
        return True

    def subscribe(self, collection: str, filters: dict, callback: ChangeCallback) -> Subscription:
        return self.feed.subscribe(collection, filters, callback)
