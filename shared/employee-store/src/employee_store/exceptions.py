"""Exceptions shared by the storage layer."""


class StoreUnavailableError(ConnectionError):
    """A backing store stayed unreachable after one reconnect attempt.

    Raised by the checkpoint store (PostgreSQL) and the employee vector
    store (Qdrant). Subclasses the builtin ConnectionError so callers can
    catch either.

    Attributes:
        store: Short name of the unavailable store ("checkpoints", "qdrant")
    """

    def __init__(self, store: str, message: str):
        super().__init__(f"{store} unavailable: {message}")
        self.store = store
