"""Abstract base classes for dependency injection."""

from abc import ABC, abstractmethod
from typing import Callable

# callback(event, row) where event is 'insert', 'update' or 'delete'
ChangeCallback = Callable[[str, dict], None]


class Subscription:
    """Handle returned by RoomStore.subscribe."""

    def __init__(self, on_close: Callable[[], None]):
        self._on_close = on_close
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._on_close()


class RoomStore(ABC):
    """Durable row store for multiplayer rooms with change notification.

    Rows are plain dicts keyed by an 'id' the store assigns on insert.
    Every committed write notifies subscribers with the full row.
    """

    @abstractmethod
    def get(self, collection: str, row_id: str) -> dict:
        """Return a copy of the row. Raises NotFound."""
        pass

    @abstractmethod
    def find(self, collection: str, **filters) -> list[dict]:
        """Return copies of every row whose fields equal the given filters."""
        pass

    @abstractmethod
    def insert(self, collection: str, fields: dict) -> str:
        """Insert a row and return its id. Raises UniqueViolation."""
        pass

    @abstractmethod
    def update(self, collection: str, row_id: str, fields: dict) -> None:
        """Apply a partial update. Raises NotFound."""
        pass

    @abstractmethod
    def compare_and_update(self, collection: str, row_id: str, fields: dict,
                           expected: dict) -> bool:
        """Apply the update only if every expected field matches.
        Returns True when the update was applied. Raises NotFound."""
        pass

    @abstractmethod
    def atomic_increment(self, collection: str, row_id: str, field: str, delta: int) -> int:
        """Add delta to a numeric field in one step. Returns the new value."""
        pass

    @abstractmethod
    def delete(self, collection: str, row_id: str) -> bool:
        """Delete a row (and its cascaded children). Returns True if it existed."""
        pass

    @abstractmethod
    def subscribe(self, collection: str, filters: dict, callback: ChangeCallback) -> Subscription:
        """Call callback(event, row) for every committed change matching filters."""
        pass


class WordStore(ABC):
    """Abstract base class for the shared word pool, users and progress."""

    @abstractmethod
    def load_config(self) -> dict:
        """Load the persisted scheduler config (raw, not normalized)."""
        pass

    @abstractmethod
    def save_config(self, config: dict) -> None:
        """Persist the scheduler config."""
        pass

    @abstractmethod
    def list_users(self) -> list[dict]:
        """List users as {id, name, created_at} ordered by creation."""
        pass

    @abstractmethod
    def get_user(self, user_id: str) -> dict | None:
        """Get a user or None if not found."""
        pass

    @abstractmethod
    def create_user(self, name: str) -> str:
        """Create a user and a fresh progress row for every word. Returns the id."""
        pass

    @abstractmethod
    def get_words_with_progress(self, user_id: str) -> list[dict]:
        """Return every word joined with the user's progress, ordered by word."""
        pass

    @abstractmethod
    def create_word(self, word: str, hint: str, definition: str,
                    image_url: str | None = None) -> str:
        """Create a word and a fresh progress row for every user. Returns the id."""
        pass

    @abstractmethod
    def update_word(self, word_id: str, word: str, hint: str, definition: str,
                    image_url: str | None = None) -> None:
        """Update word text fields. Raises NotFound."""
        pass

    @abstractmethod
    def delete_word(self, word_id: str) -> bool:
        """Delete a word and its progress rows. Returns True if it existed."""
        pass

    @abstractmethod
    def save_progress(self, user_id: str, word_id: str, progress: dict) -> None:
        """Write a user's progress fields for a word. Raises NotFound."""
        pass
