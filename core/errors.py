"""Exceptions raised by vocab arena components."""


class VocabError(Exception):
    """Base class for all application errors."""


class NotFound(VocabError):
    """A room, user, word or row does not exist."""


class Conflict(VocabError):
    """The requested action does not fit the current state."""


class RoomUnavailable(Conflict):
    """Room is no longer accepting new players."""


class RoomFull(Conflict):
    """All seats in the room are taken."""


class NotYourTurn(Conflict):
    """Player acted while the opponent holds the turn."""


class NotHost(Conflict):
    """Only the room host may perform this action."""


class QuestionClosed(Conflict):
    """Answer targets a question that is not currently open."""


class InsufficientWords(VocabError):
    """Word pool too small for sampling or distractor generation."""


class CreationExhausted(VocabError):
    """Could not produce a unique identifier within the attempt budget."""


class RoomCreationExhausted(CreationExhausted):
    """Every generated room code collided with an existing room."""


class PersistenceFailure(VocabError):
    """A background store write failed."""

    def __init__(self, operation: str, user_id: str, word_id: str, cause: Exception):
        super().__init__(f"{operation} failed for user={user_id} word={word_id}: {cause}")
        self.operation = operation
        self.user_id = user_id
        self.word_id = word_id
        self.cause = cause

    def to_dict(self) -> dict:
        return {
            'operation': self.operation,
            'user_id': self.user_id,
            'word_id': self.word_id,
            'error': f"{type(self.cause).__name__}: {self.cause}",
        }


class UniqueViolation(VocabError):
    """Insert rejected by a unique constraint in the store."""

    def __init__(self, collection: str, fields: tuple):
        super().__init__(f"Duplicate {collection} row for {', '.join(fields)}")
        self.collection = collection
        self.fields = fields
