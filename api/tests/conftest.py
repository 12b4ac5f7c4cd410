"""Shared fixtures for API and agent tests."""

import os
import time

import pytest
from langchain_core.documents import Document
from langchain_core.messages import AIMessage
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from employee_store import init_database
from hr_agent_api.agents.graph import TurnController
from hr_agent_api.agents.tools import ToolRegistry, create_employee_lookup_tool
from hr_agent_api.services import ChatService, CheckpointStore

os.environ.setdefault("POSTGRES_PASSWORD", "test_pass")


class ScriptedChatModel:
    """Stand-in for a tool-bound chat model.

    Returns the scripted replies in order, repeating the last one once the
    script runs out. Exceptions in the script are raised instead of returned.
    Every prompt it receives is recorded in ``calls``.
    """

    def __init__(self, replies, delay=0.0):
        self.replies = list(replies)
        self.delay = delay
        self.calls = []

    def invoke(self, messages):
        if self.delay:
            time.sleep(self.delay)
        self.calls.append(list(messages))
        index = min(len(self.calls), len(self.replies)) - 1
        reply = self.replies[index]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeEmployeeStore:
    """Vector store double returning fixed (document, score) pairs."""

    collection_name = "employees"

    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.queries = []

    def similarity_search_with_score(self, query, k=4):
        self.queries.append((query, k))
        if self.error is not None:
            raise self.error
        return self.results[:k]


def tool_call_message(query="Python engineers", n=10, call_id="call_1"):
    """AIMessage requesting one employee_lookup call."""
    return AIMessage(
        content="",
        tool_calls=[{
            "name": "employee_lookup",
            "args": {"query": query, "n": n},
            "id": call_id,
        }]
    )


@pytest.fixture
def engine():
    """In-memory SQLite engine with checkpoint tables."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def checkpoint_store(engine):
    return CheckpointStore(engine)


@pytest.fixture
def employee_results():
    """Three matches in descending score order."""
    return [
        (Document(page_content="Ada Lovelace. Job: Engineer. Skills: Python",
                  metadata={"employee_id": "E1", "first_name": "Ada"}), 0.92),
        (Document(page_content="Alan Turing. Job: Engineer. Skills: Python, Go",
                  metadata={"employee_id": "E2", "first_name": "Alan"}), 0.87),
        (Document(page_content="Grace Hopper. Job: Manager. Skills: COBOL",
                  metadata={"employee_id": "E3", "first_name": "Grace"}), 0.41),
    ]


@pytest.fixture
def fake_store(employee_results):
    return FakeEmployeeStore(employee_results)


@pytest.fixture
def registry(fake_store):
    return ToolRegistry([create_employee_lookup_tool(fake_store)])


@pytest.fixture
def make_service(checkpoint_store, registry):
    """Factory building a ChatService around a scripted model."""

    def _make(replies, recursion_limit=7, **kwargs):
        model = ScriptedChatModel(replies)
        controller = TurnController(
            model=model,
            registry=registry,
            recursion_limit=recursion_limit,
            **kwargs
        )
        return ChatService(controller, checkpoint_store), model

    return _make


@pytest.fixture
def scripted_model():
    return ScriptedChatModel


@pytest.fixture
def store_factory():
    return FakeEmployeeStore


@pytest.fixture
def tool_call():
    return tool_call_message
