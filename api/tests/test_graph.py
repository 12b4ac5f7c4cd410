"""Tests for the agent/tools state machine."""

import json
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import StructuredTool

from hr_agent_api.agents.graph import (
    TRUNCATION_NOTICE,
    Route,
    TurnController,
    agent_node,
    check_recursion_bound,
    next_node,
    should_continue,
    tools_node,
)
from hr_agent_api.agents.rate_limiter import TokenBucketRateLimiter
from hr_agent_api.agents.state import ConversationState, Node
from hr_agent_api.agents.tools import ToolRegistry
from hr_agent_api.errors import ModelInvocationError, RateLimitExceeded, RecursionLimitExceeded

FIXED_TIME = datetime(2024, 5, 17, 9, 30, tzinfo=timezone.utc)


def fixed_clock():
    return FIXED_TIME


def frozen_limiter(capacity=20):
    """Fail-fast limiter whose clock never advances."""
    return TokenBucketRateLimiter(
        capacity=capacity,
        window_seconds=60,
        max_wait_seconds=0,
        clock=lambda: 0.0
    )


def malformed_call_message():
    """AIMessage whose only tool call has unparseable JSON arguments."""
    return AIMessage(
        content="",
        invalid_tool_calls=[{
            "name": "employee_lookup",
            "args": '{"query": "Python',
            "id": "call_bad",
            "error": "Unterminated string",
            "type": "invalid_tool_call",
        }]
    )


@pytest.fixture
def started():
    return ConversationState(thread_id="t1").start_turn("Find Python engineers")


class TestRouting:
    """Tests for should_continue and the transition function."""

    def test_tool_calls_continue(self, started, tool_call):
        state = started.with_messages([tool_call()])
        assert should_continue(state) == Route.CONTINUE

    def test_malformed_tool_calls_continue(self, started):
        state = started.with_messages([malformed_call_message()])
        assert should_continue(state) == Route.CONTINUE

    @pytest.mark.parametrize("last", [
        AIMessage(content="FINAL ANSWER: nobody"),
        ToolMessage(content="[]", tool_call_id="call_1"),
        HumanMessage(content="hello"),
    ])
    def test_anything_else_stops(self, started, last):
        assert should_continue(started.with_messages([last])) == Route.STOP

    def test_empty_history_stops(self):
        assert should_continue(ConversationState(thread_id="t1")) == Route.STOP

    def test_transitions(self):
        assert next_node(None) == Node.AGENT
        assert next_node(Node.AGENT, Route.CONTINUE) == Node.TOOLS
        assert next_node(Node.AGENT, Route.STOP) == Node.END
        assert next_node(Node.TOOLS) == Node.AGENT

    def test_agent_requires_route(self):
        with pytest.raises(ValueError):
            next_node(Node.AGENT)

    def test_end_is_terminal(self):
        with pytest.raises(ValueError):
            next_node(Node.END, Route.STOP)

    def test_recursion_bound(self):
        check_recursion_bound(2, 3)
        with pytest.raises(RecursionLimitExceeded) as exc_info:
            check_recursion_bound(3, 3)
        assert exc_info.value.limit == 3


class TestAgentNode:
    """Tests for the reasoning step."""

    def test_prompt_contents(self, started, scripted_model):
        """The prompt carries tool names, the FINAL ANSWER convention, time and full history."""
        model = scripted_model([AIMessage(content="FINAL ANSWER: none")])
        history = started.with_messages([AIMessage(content="earlier")])

        agent_node(history, model, ["employee_lookup"], clock=fixed_clock)

        prompt = model.calls[0]
        system = prompt[0]
        assert isinstance(system, SystemMessage)
        assert "employee_lookup" in system.content
        assert "FINAL ANSWER" in system.content
        assert FIXED_TIME.isoformat() in system.content
        assert "You are helpful HR Chatbot Agent." in system.content
        assert prompt[1:] == history.messages

    def test_returns_single_ai_message(self, started, scripted_model):
        reply = AIMessage(content="FINAL ANSWER: Ada")
        result = agent_node(started, scripted_model([reply]), ["employee_lookup"])
        assert result == [reply]

    def test_coerces_plain_reply(self, started, scripted_model):
        result = agent_node(started, scripted_model(["plain text"]), ["employee_lookup"])
        assert isinstance(result[0], AIMessage)
        assert result[0].content == "plain text"

    def test_model_failure_wrapped(self, started, scripted_model):
        model = scripted_model([RuntimeError("connection reset")])

        with pytest.raises(ModelInvocationError, match="connection reset"):
            agent_node(started, model, ["employee_lookup"])

    def test_consumes_one_token(self, started, scripted_model):
        limiter = frozen_limiter()
        agent_node(started, scripted_model([AIMessage(content="ok")]), [], rate_limiter=limiter)
        assert limiter.available_tokens == pytest.approx(19)

    def test_rate_limited_before_model_call(self, started, scripted_model):
        limiter = frozen_limiter(capacity=1)
        limiter.consume()
        model = scripted_model([AIMessage(content="ok")])

        with pytest.raises(RateLimitExceeded):
            agent_node(started, model, [], rate_limiter=limiter)
        assert model.calls == []


class TestToolsNode:
    """Tests for the tool execution step."""

    @pytest.fixture
    def timed_registry(self):
        """Registry whose tools answer after different delays."""

        def slow_echo(label: str) -> str:
            time.sleep(0.2)
            return f"slow:{label}"

        def fast_echo(label: str) -> str:
            return f"fast:{label}"

        return ToolRegistry([
            StructuredTool.from_function(func=slow_echo, name="slow_echo", description="Slow echo"),
            StructuredTool.from_function(func=fast_echo, name="fast_echo", description="Fast echo"),
        ])

    def test_results_in_request_order(self, started, timed_registry):
        """Later calls finishing first do not reorder the results."""
        request = AIMessage(content="", tool_calls=[
            {"name": "slow_echo", "args": {"label": "a"}, "id": "call_a"},
            {"name": "fast_echo", "args": {"label": "b"}, "id": "call_b"},
            {"name": "fast_echo", "args": {"label": "c"}, "id": "call_c"},
        ])
        state = started.with_messages([request])

        with ThreadPoolExecutor(max_workers=3) as executor:
            results = tools_node(state, timed_registry, executor=executor)

        assert [r.tool_call_id for r in results] == ["call_a", "call_b", "call_c"]
        assert [r.content for r in results] == ["slow:a", "fast:b", "fast:c"]

    def test_failures_are_isolated(self, started, registry):
        """A failing call yields an error result; its sibling still succeeds."""
        request = AIMessage(content="", tool_calls=[
            {"name": "salary_lookup", "args": {}, "id": "call_1"},
            {"name": "employee_lookup", "args": {"query": "Python"}, "id": "call_2"},
        ])

        with ThreadPoolExecutor(max_workers=2) as executor:
            results = tools_node(started.with_messages([request]), registry, executor=executor)

        assert [r.status for r in results] == ["error", "success"]
        assert len(json.loads(results[1].content)) == 3

    def test_no_tool_calls(self, started, registry):
        assert tools_node(started, registry) == []

    def test_consumes_one_token_per_call(self, started, registry):
        limiter = frozen_limiter()
        request = AIMessage(content="", tool_calls=[
            {"name": "employee_lookup", "args": {"query": "Python"}, "id": "call_1"},
            {"name": "employee_lookup", "args": {"query": "Go"}, "id": "call_2"},
        ])

        tools_node(started.with_messages([request]), registry, rate_limiter=limiter)

        assert limiter.available_tokens == pytest.approx(18)

    def test_tokens_taken_per_call(self, started, registry, fake_store):
        """Running out of tokens midway keeps the calls already paid for."""
        limiter = frozen_limiter(capacity=2)
        request = AIMessage(content="", tool_calls=[
            {"name": "employee_lookup", "args": {"query": "Python"}, "id": "call_1"},
            {"name": "employee_lookup", "args": {"query": "Go"}, "id": "call_2"},
            {"name": "employee_lookup", "args": {"query": "Rust"}, "id": "call_3"},
        ])

        with ThreadPoolExecutor(max_workers=3) as executor:
            with pytest.raises(RateLimitExceeded):
                tools_node(
                    started.with_messages([request]),
                    registry,
                    rate_limiter=limiter,
                    executor=executor
                )

        assert sorted(query for query, _ in fake_store.queries) == ["Go", "Python"]

    def test_malformed_call_answered_with_error(self, started, registry, fake_store):
        results = tools_node(started.with_messages([malformed_call_message()]), registry)

        assert len(results) == 1
        assert results[0].tool_call_id == "call_bad"
        assert results[0].status == "error"
        assert results[0].content.startswith("Error: employee_lookup: Invalid arguments:")
        assert "Unterminated string" in results[0].content
        assert fake_store.queries == []

    def test_mixed_valid_and_malformed(self, started, registry, fake_store):
        request = AIMessage(
            content="",
            tool_calls=[{"name": "employee_lookup", "args": {"query": "Python"}, "id": "call_1"}],
            invalid_tool_calls=malformed_call_message().invalid_tool_calls
        )
        limiter = frozen_limiter()

        results = tools_node(started.with_messages([request]), registry, rate_limiter=limiter)

        assert [(r.tool_call_id, r.status) for r in results] == [
            ("call_1", "success"), ("call_bad", "error")
        ]
        assert len(fake_store.queries) == 1
        assert limiter.available_tokens == pytest.approx(19)


class TestTurnController:
    """End-to-end turn scenarios with a scripted model."""

    def test_direct_answer(self, started, registry, scripted_model):
        """A reply without tool calls ends the turn after one step."""
        model = scripted_model([AIMessage(content="FINAL ANSWER: The HR manager is Jane Doe.")])
        controller = TurnController(model, registry)

        final = controller.run(started)

        assert len(final.messages) == 2
        assert final.final_answer() == "FINAL ANSWER: The HR manager is Jane Doe."
        assert final.next_node == Node.END
        assert final.step_count == 1
        assert final.truncated is False

    def test_tool_round_trip(self, started, registry, fake_store, scripted_model, tool_call):
        """A tool call leads to exactly human, ai(tool call), tool, ai."""
        model = scripted_model([
            tool_call(query="Python engineers", n=10),
            AIMessage(content="FINAL ANSWER: Ada and Alan know Python."),
        ])
        controller = TurnController(model, registry)

        final = controller.run(started)

        kinds = [type(m) for m in final.messages]
        assert kinds == [HumanMessage, AIMessage, ToolMessage, AIMessage]
        assert fake_store.queries == [("Python engineers", 10)]
        assert final.messages[2].tool_call_id == "call_1"
        assert final.step_count == 2

        # The second reasoning step sees the tool result
        assert final.messages[2] in model.calls[1]

    def test_recursion_limit_truncates(self, started, registry, fake_store, scripted_model, tool_call):
        """A model that never stops is called exactly recursion_limit times."""
        model = scripted_model([tool_call()])
        controller = TurnController(model, registry, recursion_limit=3)

        final = controller.run(started)

        assert len(model.calls) == 3
        assert final.truncated is True
        assert final.next_node == Node.END
        assert final.final_answer() == TRUNCATION_NOTICE
        assert final.last_message.response_metadata["finish_reason"] == "recursion_limit"
        # human + 2 x (ai, tool) + ai + skipped tool + notice
        assert len(final.messages) == 8

        # Tools requested on the last cycle are answered but never run
        assert len(fake_store.queries) == 2
        skipped = final.messages[-2]
        assert isinstance(skipped, ToolMessage)
        assert skipped.status == "error"
        assert skipped.tool_call_id == final.messages[-3].tool_calls[0]["id"]

    def test_answer_on_last_allowed_cycle(self, started, registry, scripted_model, tool_call):
        model = scripted_model([tool_call(), AIMessage(content="FINAL ANSWER: done")])
        controller = TurnController(model, registry, recursion_limit=2)

        final = controller.run(started)

        assert final.truncated is False
        assert final.final_answer() == "FINAL ANSWER: done"

    def test_malformed_call_then_answer(self, started, registry, scripted_model):
        """The model sees the argument error and can still answer."""
        model = scripted_model([
            malformed_call_message(),
            AIMessage(content="FINAL ANSWER: Please rephrase the search."),
        ])
        controller = TurnController(model, registry)

        final = controller.run(started)

        kinds = [type(m) for m in final.messages]
        assert kinds == [HumanMessage, AIMessage, ToolMessage, AIMessage]
        assert final.messages[2].tool_call_id == "call_bad"
        assert final.messages[2] in model.calls[1]
        assert final.final_answer() == "FINAL ANSWER: Please rephrase the search."

    def test_token_accounting(self, started, registry, scripted_model, tool_call):
        """Two model calls and one tool call cost three tokens."""
        limiter = frozen_limiter()
        model = scripted_model([tool_call(), AIMessage(content="FINAL ANSWER: ok")])
        controller = TurnController(model, registry, rate_limiter=limiter)

        controller.run(started)

        assert limiter.available_tokens == pytest.approx(17)

    def test_rate_limit_propagates(self, started, registry, scripted_model, tool_call):
        limiter = frozen_limiter(capacity=1)
        model = scripted_model([tool_call(), AIMessage(content="FINAL ANSWER: ok")])
        controller = TurnController(model, registry, rate_limiter=limiter)

        with pytest.raises(RateLimitExceeded):
            controller.run(started)
        assert len(model.calls) == 1

    def test_model_error_propagates(self, started, registry, scripted_model):
        controller = TurnController(scripted_model([RuntimeError("boom")]), registry)

        with pytest.raises(ModelInvocationError):
            controller.run(started)

    def test_invalid_limit(self, registry, scripted_model):
        with pytest.raises(ValueError):
            TurnController(scripted_model([]), registry, recursion_limit=0)
