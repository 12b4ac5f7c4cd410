"""Error taxonomy for the agent workflow.

Only ToolExecutionError is recovered inside a turn. The others end the turn
and are mapped to fixed HTTP responses by the chat router.
"""

from employee_store.exceptions import StoreUnavailableError


class AgentError(Exception):
    """Base class for agent workflow errors."""


class ToolExecutionError(AgentError):
    """A single tool call failed.

    Converted into an error tool-result message; never aborts the turn.
    """

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name


class RecursionLimitExceeded(AgentError):
    """A turn needed more reasoning cycles than the recursion limit allows."""

    def __init__(self, limit: int):
        super().__init__(f"Recursion limit of {limit} cycles reached")
        self.limit = limit


class ModelInvocationError(AgentError):
    """The language model call failed."""


class RateLimitExceeded(AgentError):
    """No rate limiter token became available within the wait budget."""

    def __init__(self, wait_seconds: float):
        super().__init__(f"Rate limit exceeded (next token in {wait_seconds:.1f}s)")
        self.wait_seconds = wait_seconds


__all__ = [
    "AgentError",
    "ModelInvocationError",
    "RateLimitExceeded",
    "RecursionLimitExceeded",
    "StoreUnavailableError",
    "ToolExecutionError",
]
