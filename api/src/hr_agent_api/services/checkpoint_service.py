"""Checkpoint service for conversation state persistence.

This module provides the CheckpointStore class, which saves and restores the
full agent state of a conversation keyed by thread ID, and ThreadLocks, which
gives each thread ID exclusive check-out for the duration of a turn.
"""

import json
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Callable, TypeVar

from langchain_core.messages import messages_from_dict, messages_to_dict
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from employee_store import ConversationCheckpoint, StoreUnavailableError

from ..agents.state import ConversationState, Node

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_disconnect(e: DBAPIError) -> bool:
    """Whether a driver error means the connection is gone."""
    return e.connection_invalidated or isinstance(e, (OperationalError, InterfaceError))


class CheckpointStore:
    """Durable store of conversation state.

    Each save writes the whole state in one transaction, so a concurrent
    load sees either the previous or the new checkpoint, never a mix. A
    connection failure disposes the engine's pool and retries once before
    StoreUnavailableError is raised.

    Example:
        >>> store = CheckpointStore(engine)
        >>> store.save(state)
        >>> store.load(state.thread_id) == state
        True
    """

    def __init__(self, engine: Engine):
        """Initialize the store.

        Args:
            engine: SQLAlchemy engine; tables must exist (see init_database)
        """
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=self.engine)

    @contextmanager
    def _get_session(self) -> Iterator[Session]:
        """Context manager for database sessions.

        Automatically commits on success, rolls back on error, and always
        closes the session.

        Yields:
            SQLAlchemy session
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database transaction failed: {e}", exc_info=True)
            raise
        finally:
            session.close()

    def _run(self, operation: str, fn: Callable[[Session], T]) -> T:
        """Run fn in a transaction, reconnecting once on connection failure.

        Raises:
            StoreUnavailableError: If the retry after reconnecting also fails
        """
        try:
            with self._get_session() as session:
                return fn(session)
        except DBAPIError as e:
            if not _is_disconnect(e):
                raise
            logger.warning(f"Checkpoint {operation} failed, retrying after reconnect: {e}")

        self.engine.dispose()
        try:
            with self._get_session() as session:
                return fn(session)
        except DBAPIError as e:
            if not _is_disconnect(e):
                raise
            raise StoreUnavailableError("checkpoints", str(e.orig or e)) from e

    def load(self, thread_id: str) -> ConversationState | None:
        """Load the checkpoint of a thread.

        Args:
            thread_id: Conversation identifier

        Returns:
            Restored ConversationState, or None if the thread is unknown

        Raises:
            ValueError: If thread_id is empty
            StoreUnavailableError: If the database is unreachable
        """
        if not thread_id or not thread_id.strip():
            raise ValueError("thread_id cannot be empty")

        def _load(session: Session) -> ConversationState | None:
            checkpoint = session.get(ConversationCheckpoint, thread_id)
            if checkpoint is None:
                return None
            return ConversationState(
                thread_id=checkpoint.thread_id,
                messages=messages_from_dict(checkpoint.messages),
                step_count=checkpoint.step_count,
                next_node=Node(checkpoint.next_node),
                truncated=checkpoint.truncated
            )

        state = self._run("load", _load)

        if state is None:
            logger.info(f"Thread {thread_id} not found, starting new conversation")
        else:
            logger.info(f"Loaded checkpoint for thread {thread_id}: {len(state.messages)} messages")
        return state

    def save(self, state: ConversationState) -> None:
        """Write the checkpoint of a thread, replacing any previous one.

        Args:
            state: State to persist

        Raises:
            ValueError: If the state has no thread_id
            StoreUnavailableError: If the database is unreachable
        """
        if not state.thread_id or not state.thread_id.strip():
            raise ValueError("thread_id cannot be empty")

        # Round-trip through JSON so provider metadata can't break the column
        messages = json.loads(json.dumps(messages_to_dict(state.messages), default=str))

        def _save(session: Session) -> None:
            session.merge(ConversationCheckpoint(
                thread_id=state.thread_id,
                messages=messages,
                step_count=state.step_count,
                next_node=state.next_node.value,
                truncated=state.truncated
            ))

        self._run("save", _save)
        logger.info(f"Saved checkpoint for thread {state.thread_id}: {len(messages)} messages")

    def delete(self, thread_id: str) -> bool:
        """Delete the checkpoint of a thread. Idempotent.

        Returns:
            True if a checkpoint was deleted, False if none existed
        """
        if not thread_id or not thread_id.strip():
            raise ValueError("thread_id cannot be empty")

        def _delete(session: Session) -> bool:
            checkpoint = session.get(ConversationCheckpoint, thread_id)
            if checkpoint is None:
                return False
            session.delete(checkpoint)
            return True

        deleted = self._run("delete", _delete)
        if deleted:
            logger.info(f"Cleared thread: {thread_id}")
        else:
            logger.info(f"Thread {thread_id} not found, nothing to clear")
        return deleted

    def ping(self) -> None:
        """Check that the database answers.

        Raises:
            StoreUnavailableError: If the database is unreachable
        """
        self._run("ping", lambda session: session.execute(text("SELECT 1")))


class ThreadLocks:
    """Per-thread-ID mutual exclusion.

    Turns on the same thread ID run one at a time; different threads run in
    parallel. Lock objects are dropped once nobody holds or waits for them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, list[int]]] = {}

    @contextmanager
    def hold(self, thread_id: str) -> Iterator[None]:
        """Hold the lock of thread_id for the duration of the block."""
        with self._guard:
            lock, users = self._locks.setdefault(thread_id, (threading.Lock(), [0]))
            users[0] += 1

        try:
            with lock:
                yield
        finally:
            with self._guard:
                users[0] -= 1
                if users[0] == 0:
                    del self._locks[thread_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
