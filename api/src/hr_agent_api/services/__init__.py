"""Services package for business logic components.

This package contains service classes that encapsulate conversation
persistence and turn execution, shared across the API routers.
"""

from .chat_service import ChatService, TurnResult
from .checkpoint_service import CheckpointStore, ThreadLocks

__all__ = ["ChatService", "CheckpointStore", "ThreadLocks", "TurnResult"]
