"""Agent tools and the tool registry.

Tools are LangChain BaseTool instances registered by name. The registry turns
every call, successful or not, into a ToolMessage so a single bad call never
aborts the turn.
"""

import json
import logging
from collections.abc import Iterable

from langchain_core.messages import InvalidToolCall, ToolCall, ToolMessage
from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, Field, ValidationError

from employee_store import EmployeeVectorStore, StoreUnavailableError

from ..errors import ToolExecutionError

logger = logging.getLogger(__name__)

DEFAULT_RESULT_COUNT = 10

EMPLOYEE_LOOKUP_TOOL_NAME = "employee_lookup"


class EmployeeLookupInput(BaseModel):
    """Arguments of the employee_lookup tool."""

    query: str = Field(..., min_length=1, description="The search query")
    n: int | None = Field(
        default=DEFAULT_RESULT_COUNT,
        gt=0,
        description="Number of results to return"
    )


def create_employee_lookup_tool(store: EmployeeVectorStore) -> BaseTool:
    """Build the employee_lookup tool over a vector store.

    The tool runs a similarity search and returns the matches as a JSON array
    of {"content", "score", "metadata"} objects, highest score first.

    Args:
        store: Employee vector store to search

    Returns:
        StructuredTool named "employee_lookup"
    """

    def employee_lookup(query: str, n: int | None = DEFAULT_RESULT_COUNT) -> str:
        k = n or DEFAULT_RESULT_COUNT
        logger.info(f"Employee lookup tool called: query={query[:50]!r}, n={k}")

        try:
            results = store.similarity_search_with_score(query, k=k)
        except (StoreUnavailableError, ValueError) as e:
            raise ToolExecutionError(EMPLOYEE_LOOKUP_TOOL_NAME, str(e)) from e
        except Exception as e:
            logger.error(f"Employee search failed: {e}", exc_info=True)
            raise ToolExecutionError(EMPLOYEE_LOOKUP_TOOL_NAME, f"search failed: {e}") from e

        if not results:
            logger.warning(
                f"Employee lookup returned no matches for {query!r}; check that the "
                f"collection '{store.collection_name}' was seeded with the same "
                f"vector and payload keys"
            )

        matches = [
            {"content": doc.page_content, "score": score, "metadata": doc.metadata}
            for doc, score in sorted(results, key=lambda pair: pair[1], reverse=True)[:k]
        ]
        return json.dumps(matches, default=str)

    return StructuredTool.from_function(
        func=employee_lookup,
        name=EMPLOYEE_LOOKUP_TOOL_NAME,
        description="Gathers employee details from the HR database",
        args_schema=EmployeeLookupInput
    )


class ToolRegistry:
    """Name to tool mapping used by the tool execution step.

    New capabilities are added with register(); dispatch never changes.

    Example:
        >>> registry = ToolRegistry([create_employee_lookup_tool(store)])
        >>> registry.names
        ['employee_lookup']
    """

    def __init__(self, tools: Iterable[BaseTool] = ()):
        self._tools: dict[str, BaseTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        """Register a tool under its name.

        Raises:
            ValueError: If a tool with the same name is already registered
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    @property
    def tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def _invoke(self, tool_call: ToolCall) -> str:
        name = tool_call["name"]
        tool = self._tools.get(name)
        if tool is None:
            raise ToolExecutionError(
                name, f"Unknown tool. Available tools: {', '.join(self.names)}"
            )

        try:
            output = tool.invoke(tool_call.get("args") or {})
        except ToolExecutionError:
            raise
        except ValidationError as e:
            raise ToolExecutionError(name, f"Invalid arguments: {e}") from e
        except Exception as e:
            logger.error(f"Tool {name} raised unexpectedly: {e}", exc_info=True)
            raise ToolExecutionError(name, str(e)) from e

        return output if isinstance(output, str) else json.dumps(output, default=str)

    def execute(self, tool_call: ToolCall) -> ToolMessage:
        """Run one tool call and wrap the outcome in a ToolMessage.

        Args:
            tool_call: Tool call requested by the model

        Returns:
            ToolMessage with the tool output, or with status "error" and the
            error text when the call failed
        """
        name = tool_call["name"]
        call_id = tool_call.get("id") or ""

        try:
            content = self._invoke(tool_call)
        except ToolExecutionError as e:
            logger.warning(f"Tool call {call_id} failed: {e}")
            return ToolMessage(
                content=f"Error: {e}",
                tool_call_id=call_id,
                name=name,
                status="error"
            )

        return ToolMessage(content=content, tool_call_id=call_id, name=name)

    def reject(self, tool_call: InvalidToolCall | ToolCall, reason: str) -> ToolMessage:
        """Answer a tool call without running it.

        Used for calls whose arguments could not be parsed and for calls
        left over when a turn is cut short, so every requested call still
        gets a matching result.

        Args:
            tool_call: Tool call requested by the model
            reason: Why the call was not run

        Returns:
            ToolMessage with status "error"
        """
        name = tool_call.get("name") or "unknown"
        call_id = tool_call.get("id") or ""
        error = ToolExecutionError(name, reason)
        logger.warning(f"Tool call {call_id} rejected: {error}")

        return ToolMessage(
            content=f"Error: {error}",
            tool_call_id=call_id,
            name=name,
            status="error"
        )
