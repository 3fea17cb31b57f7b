"""Local room caches kept current by the store's change feed."""

import logging
import threading
from typing import Callable

from .config import VERSUS_ROOMS, REVERSE_ROOMS, REVERSE_PLAYERS
from .interfaces import RoomStore, Subscription
from .reverse import ReversePlayer, ReverseRoom, merge_reverse_snapshot
from .versus import VersusRoom, merge_versus_snapshot

logger = logging.getLogger(__name__)


class RoomMirror:
    """One player's view of a single room.

    Every pushed row replaces the cached snapshot wholesale after passing
    through the entity's merge policy, which keeps fields the payload
    omits. Listeners are called with the merged snapshot.
    """

    def __init__(self, store: RoomStore, collection: str, room_id: str,
                 decode: Callable[[dict], object], merge: Callable[[object, object], object]):
        self.store = store
        self.collection = collection
        self.room_id = room_id
        self.decode = decode
        self.merge = merge
        self.snapshot = None
        self.deleted = False
        self._listeners: list[Callable] = []
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()

    def add_listener(self, listener: Callable) -> None:
        self._listeners.append(listener)

    def open(self, initial=None):
        """Seed the cache (from `initial` or a fresh read) and subscribe."""
        self.snapshot = initial if initial is not None else self.decode(
            self.store.get(self.collection, self.room_id)
        )
        self._subscriptions.append(
            self.store.subscribe(self.collection, {'id': self.room_id}, self._on_change)
        )
        return self.snapshot

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def _on_change(self, event: str, row: dict) -> None:
        if event == 'delete':
            self.deleted = True
            logger.info(f"Room {self.room_id} was deleted")
            self._notify()
            return
        self.apply(row)

    def apply(self, row: dict):
        incoming = self.decode(row)
        with self._lock:
            self.snapshot = self.merge(self.snapshot, incoming)
        self._notify()
        return self.snapshot

    def _notify(self) -> None:
        for listener in self._listeners:
            listener(self.snapshot)


def versus_mirror(store: RoomStore, room_id: str) -> RoomMirror:
    return RoomMirror(store, VERSUS_ROOMS, room_id, VersusRoom.from_dict, merge_versus_snapshot)


class ReverseMirror(RoomMirror):
    """Reverse rooms also follow their player rows for scores and presence."""

    def __init__(self, store: RoomStore, room_id: str):
        super().__init__(store, REVERSE_ROOMS, room_id,
                         lambda row: ReverseRoom.from_dict(row, []), merge_reverse_snapshot)

    def open(self, initial=None):
        if initial is None:
            row = self.store.get(REVERSE_ROOMS, self.room_id)
            initial = ReverseRoom.from_dict(row, self.store.find(REVERSE_PLAYERS, room_id=self.room_id))
        super().open(initial)
        self._subscriptions.append(
            self.store.subscribe(REVERSE_PLAYERS, {'room_id': self.room_id}, self._on_player_change)
        )
        return self.snapshot

    def _on_player_change(self, event: str, row: dict) -> None:
        player = ReversePlayer.from_dict(row)
        with self._lock:
            if self.snapshot is None:
                return
            players = [p for p in self.snapshot.players if p.id != player.id]
            if event != 'delete':
                players.append(player)
            players.sort(key=lambda p: p.join_order)
            self.snapshot.players = players
        self._notify()
