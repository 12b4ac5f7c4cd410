"""Agent workflow state machine.

This module defines the two-node tool-calling loop that answers a turn:
agent (reasoning) → conditional routing → tools → agent ... → end. The loop
is an explicit finite-state machine over the Node enum with a pure
transition function, bounded by a per-turn recursion limit.
"""

import logging
from concurrent.futures import Executor, wait
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, InvalidToolCall, ToolCall, ToolMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_core.runnables import Runnable
from langchain_core.tools import BaseTool

from hr_agent_config import Settings

from ..errors import ModelInvocationError, RateLimitExceeded, RecursionLimitExceeded
from .rate_limiter import TokenBucketRateLimiter
from .state import ConversationState, Node
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful AI assistant, collaborating with other assistants. "
    "Use the provided tools to progress towards answering the question. "
    "If you are unable to fully answer, that's OK, another assistant with different "
    "tools will help where you left off. Execute what you can to make progress. "
    "If you or any of the other assistants have the final answer or deliverable, "
    "prefix your response with FINAL ANSWER so the team knows to stop. "
    "You have access to the following tools: {tool_names}.\n"
    "{system_message}\n"
    "Current time: {time}."
)

AGENT_PROMPT = ChatPromptTemplate.from_messages([
    ("system", SYSTEM_PROMPT),
    MessagesPlaceholder(variable_name="messages"),
])

TRUNCATION_NOTICE = (
    "I wasn't able to finish answering within the allowed number of steps. "
    "Please try rephrasing or narrowing your question."
)

DEFAULT_SYSTEM_MESSAGE = "You are helpful HR Chatbot Agent."


class Route(str, Enum):
    """Outcome of the routing decision after a reasoning step."""

    CONTINUE = "continue"
    STOP = "stop"


# ========== MODEL ==========


def build_chat_model(settings: Settings) -> BaseChatModel:
    """Get environment-aware chat model.

    Returns Ollama (dev) or OpenAI (prod) based on settings. Model name and
    temperature are fixed configuration.

    Args:
        settings: Application settings

    Returns:
        ChatOllama or ChatOpenAI instance
    """
    if settings.llm.is_local:
        from langchain_ollama import ChatOllama

        logger.info("Using Ollama for LLM")
        return ChatOllama(
            base_url=settings.llm.ollama_base_url,
            model=settings.llm.chat_model_name,
            temperature=settings.llm.temperature
        )

    from langchain_openai import ChatOpenAI

    logger.info("Using OpenAI for LLM")
    return ChatOpenAI(
        api_key=settings.llm.openai_api_key,
        model=settings.llm.chat_model_name,
        temperature=settings.llm.temperature
    )


def bind_agent_tools(model: BaseChatModel, tools: list[BaseTool]) -> Runnable:
    """Bind tools so the model may answer with structured tool calls."""
    return model.bind_tools(tools)


# ========== NODE FUNCTIONS ==========


def agent_node(
    state: ConversationState,
    model: Runnable,
    tool_names: list[str],
    system_message: str = DEFAULT_SYSTEM_MESSAGE,
    rate_limiter: TokenBucketRateLimiter | None = None,
    clock: Callable[[], datetime] | None = None
) -> list[BaseMessage]:
    """Run one reasoning step.

    Formats the system directive, tool names, current time and the whole
    message history into one prompt and invokes the tool-bound model.

    Args:
        state: Current conversation state
        model: Chat model with tools bound
        tool_names: Names of the registered tools
        system_message: Role line for the system directive
        rate_limiter: Limiter charged one token for the model call
        clock: Returns the current time (defaults to UTC now)

    Returns:
        List holding exactly one AIMessage (final answer or tool calls)

    Raises:
        ModelInvocationError: If the model call fails
        RateLimitExceeded: If no rate limit token is available
    """
    now = clock() if clock else datetime.now(timezone.utc)

    prompt_messages = AGENT_PROMPT.format_messages(
        tool_names=", ".join(tool_names),
        system_message=system_message,
        time=now.isoformat(),
        messages=state.messages
    )

    if rate_limiter is not None:
        rate_limiter.consume()

    logger.info(
        f"Invoking model for thread {state.thread_id} "
        f"(step {state.step_count + 1}, {len(state.messages)} messages)"
    )

    try:
        result = model.invoke(prompt_messages)
    except Exception as e:
        logger.error(f"Model invocation failed for thread {state.thread_id}: {e}", exc_info=True)
        raise ModelInvocationError(str(e)) from e

    if not isinstance(result, AIMessage):
        result = AIMessage(content=str(getattr(result, "content", result)))

    return [result]


def _requested_calls(message: BaseMessage | None) -> tuple[list[ToolCall], list[InvalidToolCall]]:
    """Parsed and unparseable tool calls of a message."""
    if not isinstance(message, AIMessage):
        return [], []
    return message.tool_calls, message.invalid_tool_calls


def tools_node(
    state: ConversationState,
    registry: ToolRegistry,
    rate_limiter: TokenBucketRateLimiter | None = None,
    executor: Executor | None = None
) -> list[ToolMessage]:
    """Execute every tool call requested by the latest reasoning message.

    Calls may run concurrently on the executor, but results are returned in
    the order the calls were requested. A failing call yields an error
    ToolMessage and does not affect its siblings. Calls whose arguments the
    model sent as malformed JSON are not run; each gets an error result after
    the parsed calls.

    A token is taken right before each call is dispatched. If the limiter
    runs dry partway through, the calls already dispatched finish before
    RateLimitExceeded propagates.

    Args:
        state: Current state whose last message carries the tool calls
        registry: Tool registry used for dispatch
        rate_limiter: Limiter charged one token per call
        executor: Optional pool for concurrent dispatch

    Returns:
        One ToolMessage per tool call, in request order

    Raises:
        RateLimitExceeded: If no rate limit token is available
    """
    tool_calls, invalid_calls = _requested_calls(state.last_message)

    if not tool_calls and not invalid_calls:
        logger.warning(f"Tools step reached without tool calls for thread {state.thread_id}")
        return []

    logger.info(
        f"Executing {len(tool_calls)} tool call(s): "
        f"{', '.join(call['name'] for call in tool_calls)}"
        + (f" ({len(invalid_calls)} malformed)" if invalid_calls else "")
    )

    if executor is None or len(tool_calls) <= 1:
        results = []
        for call in tool_calls:
            if rate_limiter is not None:
                rate_limiter.consume()
            results.append(registry.execute(call))
    else:
        futures = []
        try:
            for call in tool_calls:
                if rate_limiter is not None:
                    rate_limiter.consume()
                futures.append(executor.submit(registry.execute, call))
        except RateLimitExceeded:
            wait(futures)
            raise
        results = [future.result() for future in futures]

    rejected = [
        registry.reject(call, f"Invalid arguments: {call.get('error') or call.get('args')}")
        for call in invalid_calls
    ]
    return results + rejected


# ========== ROUTING ==========


def should_continue(state: ConversationState) -> Route:
    """Decide whether the turn continues into tool execution.

    Looks only at the latest message. Tool calls with malformed arguments
    count as requests too, so they are answered with an error result.

    Args:
        state: Current conversation state

    Returns:
        Route.CONTINUE if the latest message requests tools, else Route.STOP
    """
    tool_calls, invalid_calls = _requested_calls(state.last_message)

    if tool_calls or invalid_calls:
        return Route.CONTINUE
    return Route.STOP


def next_node(current: Node | None, route: Route | None = None) -> Node:
    """Transition function of the turn state machine.

    START (None) → AGENT; AGENT → TOOLS on CONTINUE, END on STOP;
    TOOLS → AGENT.

    Args:
        current: Node that just ran, or None at the start of a turn
        route: Routing decision, required after AGENT

    Returns:
        Next node

    Raises:
        ValueError: If called for END, or for AGENT without a route
    """
    if current is None:
        return Node.AGENT
    if current == Node.AGENT:
        if route is None:
            raise ValueError("Routing decision required after the agent node")
        return Node.TOOLS if route == Route.CONTINUE else Node.END
    if current == Node.TOOLS:
        return Node.AGENT
    raise ValueError("END is terminal")


def check_recursion_bound(step_count: int, recursion_limit: int) -> None:
    """Raise if another reasoning cycle would exceed the limit.

    Raises:
        RecursionLimitExceeded: If step_count already reached recursion_limit
    """
    if step_count >= recursion_limit:
        raise RecursionLimitExceeded(recursion_limit)


# ========== TURN CONTROLLER ==========


class TurnController:
    """Runs a turn through the agent/tools loop until END.

    The controller owns no conversation state; it receives a state positioned
    at the agent node and returns the state after the turn. When the
    recursion limit is reached the turn ends with a truncation notice as the
    final assistant message and ``truncated`` set.

    Example:
        >>> controller = TurnController(model, registry, recursion_limit=7)
        >>> state = controller.run(ConversationState("t1").start_turn("Who is the HR manager?"))
        >>> state.final_answer()
    """

    def __init__(
        self,
        model: Runnable,
        registry: ToolRegistry,
        recursion_limit: int = 7,
        system_message: str = DEFAULT_SYSTEM_MESSAGE,
        rate_limiter: TokenBucketRateLimiter | None = None,
        executor: Executor | None = None,
        clock: Callable[[], datetime] | None = None
    ):
        if recursion_limit < 1:
            raise ValueError(f"recursion_limit must be at least 1, got {recursion_limit}")

        self.model = model
        self.registry = registry
        self.recursion_limit = recursion_limit
        self.system_message = system_message
        self.rate_limiter = rate_limiter
        self.executor = executor
        self.clock = clock

    def step(self, state: ConversationState) -> ConversationState:
        """Run the node the state is positioned at and advance the position.

        Raises:
            RecursionLimitExceeded: If the agent node would exceed the limit
            ModelInvocationError: If the model call fails
            RateLimitExceeded: If no rate limit token is available
        """
        if state.next_node == Node.AGENT:
            check_recursion_bound(state.step_count, self.recursion_limit)
            new_messages = agent_node(
                state,
                self.model,
                self.registry.names,
                system_message=self.system_message,
                rate_limiter=self.rate_limiter,
                clock=self.clock
            )
            state = replace(state.with_messages(new_messages), step_count=state.step_count + 1)
            route = should_continue(state)

            # Tool results on the last cycle would never reach the model
            if route == Route.CONTINUE and state.step_count >= self.recursion_limit:
                logger.warning(
                    f"Thread {state.thread_id}: recursion limit of {self.recursion_limit} "
                    f"cycles reached with tool calls pending, truncating turn"
                )
                return self._truncate(state)

            return replace(state, next_node=next_node(Node.AGENT, route))

        if state.next_node == Node.TOOLS:
            new_messages = tools_node(
                state,
                self.registry,
                rate_limiter=self.rate_limiter,
                executor=self.executor
            )
            return replace(state.with_messages(new_messages), next_node=next_node(Node.TOOLS))

        return state

    def _truncate(self, state: ConversationState) -> ConversationState:
        """End the turn with the truncation notice.

        Tool calls still pending on the latest message are answered with
        error results first, so the history never holds an unanswered call.
        """
        tool_calls, invalid_calls = _requested_calls(state.last_message)
        skipped = [
            self.registry.reject(call, "Not run, step limit reached")
            for call in [*tool_calls, *invalid_calls]
        ]
        notice = AIMessage(
            content=TRUNCATION_NOTICE,
            response_metadata={"finish_reason": "recursion_limit"}
        )
        return replace(
            state.with_messages([*skipped, notice]),
            next_node=Node.END,
            truncated=True
        )

    def run(self, state: ConversationState) -> ConversationState:
        """Run steps until END or the recursion limit.

        Args:
            state: State positioned at the agent node (see start_turn)

        Returns:
            Final state of the turn, positioned at END
        """
        while state.next_node != Node.END:
            try:
                state = self.step(state)
            except RecursionLimitExceeded as e:
                logger.warning(f"Thread {state.thread_id}: {e}, truncating turn")
                return self._truncate(state)

        logger.info(
            f"Turn completed for thread {state.thread_id} in {state.step_count} step(s)"
        )
        return state
