"""Conversation state and message history reducer.

The conversation state is the unit of persistence: one per thread, checked
out of the checkpoint store for a turn and written back when the turn ends.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import Enum

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage


class Node(str, Enum):
    """State machine positions of a turn."""

    AGENT = "agent"
    TOOLS = "tools"
    END = "end"


def append_messages(
    history: Sequence[BaseMessage],
    new_messages: Sequence[BaseMessage]
) -> list[BaseMessage]:
    """Merge new messages into a history.

    Pure concatenation: no deduplication, reordering or pruning, and the
    inputs are never mutated. Associative, with the empty sequence as
    identity, so partial updates from any number of reasoning and tool steps
    compose to the same history.

    Args:
        history: Existing messages, oldest first
        new_messages: Messages produced by a step

    Returns:
        New list with new_messages after history
    """
    return [*history, *new_messages]


@dataclass
class ConversationState:
    """Full state of one conversation thread.

    Attributes:
        thread_id: Caller-supplied conversation identifier
        messages: Message history (human, ai and tool messages), oldest first
        step_count: Reasoning cycles executed in the current turn
        next_node: Node the state machine would run next
        truncated: Whether the last turn stopped on the recursion limit
    """

    thread_id: str
    messages: list[BaseMessage] = field(default_factory=list)
    step_count: int = 0
    next_node: Node = Node.END
    truncated: bool = False

    @property
    def last_message(self) -> BaseMessage | None:
        """Most recent message, if any."""
        return self.messages[-1] if self.messages else None

    def with_messages(self, new_messages: Sequence[BaseMessage]) -> "ConversationState":
        """Return a copy with new_messages appended to the history."""
        return replace(self, messages=append_messages(self.messages, new_messages))

    def start_turn(self, query: str) -> "ConversationState":
        """Append a user message and reset per-turn counters.

        Args:
            query: User message text

        Returns:
            State positioned at the reasoning node

        Raises:
            ValueError: If query is empty or whitespace-only
        """
        if not query or not query.strip():
            raise ValueError("Message cannot be empty")

        return replace(
            self,
            messages=append_messages(self.messages, [HumanMessage(content=query.strip())]),
            step_count=0,
            next_node=Node.AGENT,
            truncated=False
        )

    def final_answer(self) -> str:
        """Text of the latest assistant message.

        Returns:
            Content of the most recent AIMessage, or "" if there is none
        """
        for message in reversed(self.messages):
            if isinstance(message, AIMessage):
                return message_text(message)
        return ""


def message_text(message: BaseMessage) -> str:
    """Flatten message content (string or content blocks) to plain text."""
    content = message.content
    if isinstance(content, str):
        return content
    return "".join(
        block.get("text", "") if isinstance(block, dict) else str(block)
        for block in content
    )
