"""Chat service for checkpointed agent turns.

This module provides the ChatService class that runs one conversation turn:
check out the thread's state, append the user message, run the agent state
machine and check the resulting state back in.
"""

import logging
from dataclasses import dataclass

from ..agents.graph import TurnController
from ..agents.state import ConversationState, Node
from ..errors import ModelInvocationError, RateLimitExceeded
from .checkpoint_service import CheckpointStore, ThreadLocks

logger = logging.getLogger(__name__)

EMPTY_ANSWER_FALLBACK = (
    "I'm sorry, I couldn't come up with an answer to that. Please try rephrasing your question."
)


@dataclass
class TurnResult:
    """Outcome of one turn.

    Attributes:
        thread_id: Conversation identifier
        response: Final assistant message text
        truncated: Whether the turn stopped on the recursion limit
        message_count: History length after the turn
    """

    thread_id: str
    response: str
    truncated: bool
    message_count: int


class ChatService:
    """Runs conversation turns against persisted state.

    Turns on the same thread are serialized. A turn that fails on the model
    or the rate limiter checkpoints the user message (positioned at the agent
    node) so the next turn retries with full context; partial tool results of
    the failed turn are not persisted.
    """

    def __init__(
        self,
        controller: TurnController,
        checkpoints: CheckpointStore,
        locks: ThreadLocks | None = None
    ):
        self.controller = controller
        self.checkpoints = checkpoints
        self.locks = locks or ThreadLocks()

    def chat(self, thread_id: str, message: str) -> TurnResult:
        """Answer a user message within a conversation.

        Args:
            thread_id: Conversation identifier
            message: User message

        Returns:
            TurnResult with the final assistant answer

        Raises:
            ValueError: If thread_id or message is empty
            ModelInvocationError: If the model call failed
            RateLimitExceeded: If the rate limit budget ran out
            StoreUnavailableError: If the checkpoint store is unreachable
        """
        if not thread_id or not thread_id.strip():
            raise ValueError("thread_id cannot be empty")
        if not message or not message.strip():
            raise ValueError("Message cannot be empty")

        with self.locks.hold(thread_id):
            state = self.checkpoints.load(thread_id) or ConversationState(thread_id=thread_id)
            state = state.start_turn(message)

            try:
                final_state = self.controller.run(state)
            except (ModelInvocationError, RateLimitExceeded) as e:
                logger.warning(f"Turn aborted for thread {thread_id}: {e}")
                self.checkpoints.save(state)
                raise

            self.checkpoints.save(final_state)

        response = final_state.final_answer()
        if not response.strip():
            logger.warning(f"Empty answer for thread {thread_id}, returning fallback")
            response = EMPTY_ANSWER_FALLBACK
        logger.info(
            f"Chat completed for thread {thread_id}: "
            f"messages={len(final_state.messages)}, truncated={final_state.truncated}"
        )

        return TurnResult(
            thread_id=thread_id,
            response=response,
            truncated=final_state.truncated,
            message_count=len(final_state.messages)
        )

    def history(self, thread_id: str) -> ConversationState | None:
        """Load the persisted state of a thread, or None if unknown."""
        return self.checkpoints.load(thread_id)

    def clear(self, thread_id: str) -> bool:
        """Delete a thread's checkpoint. Idempotent."""
        with self.locks.hold(thread_id):
            return self.checkpoints.delete(thread_id)

    @staticmethod
    def is_pending(state: ConversationState) -> bool:
        """Whether the last user message of a thread is still unanswered."""
        return state.next_node == Node.AGENT
