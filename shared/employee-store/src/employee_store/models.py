"""Database models for conversation checkpoints.

This module defines the SQLAlchemy model that persists agent conversation
state between requests. One row holds the full message history of a thread
plus the position of the state machine when the row was written.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, JSON, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from hr_agent_config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


class ConversationCheckpoint(Base):
    """Checkpoint of one conversation thread.

    Messages are stored in LangChain's ``messages_to_dict`` format so they
    can be restored into typed message objects:
    [
        {"type": "human", "data": {"content": "...", ...}},
        {"type": "ai", "data": {"content": "", "tool_calls": [...], ...}},
        {"type": "tool", "data": {"content": "[...]", "tool_call_id": "..."}},
        ...
    ]

    Attributes:
        thread_id: Conversation identifier supplied by the caller
        messages: JSON list of serialized messages, oldest first
        step_count: Reasoning cycles executed in the last turn
        next_node: State machine position ("end" or "agent")
        truncated: Whether the last turn stopped on the recursion limit
        created_at: Checkpoint creation timestamp
        updated_at: Last update timestamp (auto-updated)
    """

    __tablename__ = "conversation_checkpoints"

    thread_id = Column(
        String,
        primary_key=True,
        doc="Conversation thread identifier"
    )
    messages = Column(
        JSON,
        nullable=False,
        default=list,
        doc="Serialized message history"
    )
    step_count = Column(
        Integer,
        nullable=False,
        default=0,
        doc="Reasoning cycles in the last turn"
    )
    next_node = Column(
        String,
        nullable=False,
        default="end",
        doc="Next state machine node"
    )
    truncated = Column(
        Boolean,
        nullable=False,
        default=False,
        doc="Last turn hit the recursion limit"
    )
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        doc="Checkpoint creation time"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        doc="Last update time"
    )

    __table_args__ = (
        Index('idx_checkpoints_updated', 'updated_at'),
    )

    def __repr__(self) -> str:
        """String representation for debugging.

        Returns:
            Formatted string with thread ID and message count
        """
        msg_count = len(self.messages or [])
        return f"<ConversationCheckpoint(thread_id={self.thread_id}, messages={msg_count})>"


def init_database(engine: Engine | None = None) -> None:
    """Initialize database and create tables.

    Creates all tables defined in SQLAlchemy models. Uses the given engine,
    or builds one from the configured connection string.

    This function is idempotent and safe to run multiple times.

    Args:
        engine: Optional SQLAlchemy engine to create tables on

    Raises:
        SQLAlchemyError: If database connection or table creation fails
    """
    if engine is None:
        settings = get_settings()
        engine = create_engine(settings.database.connection_string)

    logger.info("Initializing database with all tables")

    Base.metadata.create_all(engine)

    from sqlalchemy import inspect
    inspector = inspect(engine)
    tables = inspector.get_table_names()
    logger.info(f"Tables in database: {', '.join(tables)}")
