"""Request and response models for API endpoints.

This module defines Pydantic models for all API request and response payloads.
Models include validation constraints and OpenAPI documentation.

Examples:
    Creating a chat request:

    >>> request = ChatRequest(
    ...     message="Who is the HR manager?",
    ...     thread_id="1718000000000"
    ... )

    Creating a chat response:

    >>> response = ChatResponse(
    ...     response="FINAL ANSWER: Jane Doe manages HR.",
    ...     thread_id="1718000000000",
    ...     truncated=False
    ... )
"""

from pydantic import BaseModel, Field

# Validation constants
MAX_MESSAGE_LENGTH = 2000
MIN_MESSAGE_LENGTH = 1
MAX_EMPLOYEE_COUNT = 100


# ========== CHAT ENDPOINT MODELS ==========


class ChatRequest(BaseModel):
    """Request model for the chat endpoint.

    Attributes:
        message: User question or message (1-2000 characters)
        thread_id: Conversation ID; omitted to start a new conversation
    """

    message: str = Field(
        ...,
        min_length=MIN_MESSAGE_LENGTH,
        max_length=MAX_MESSAGE_LENGTH,
        description="User question or message",
        examples=["Who is the HR manager?"]
    )
    thread_id: str | None = Field(
        None,
        min_length=1,
        description="Conversation thread ID (new conversation if omitted)"
    )


class ThreadMessageRequest(BaseModel):
    """Request model for posting to an existing thread."""

    message: str = Field(
        ...,
        min_length=MIN_MESSAGE_LENGTH,
        max_length=MAX_MESSAGE_LENGTH,
        description="User question or message",
        examples=["Find Python engineers"]
    )


class ChatResponse(BaseModel):
    """Response model for the chat endpoints.

    Attributes:
        response: Final assistant answer for the turn
        thread_id: Conversation thread ID to use for follow-up messages
        truncated: Whether the turn stopped on the recursion limit
    """

    response: str = Field(..., description="Assistant answer")
    thread_id: str = Field(..., description="Conversation thread ID")
    truncated: bool = Field(
        default=False,
        description="Whether the answer was cut short by the step limit"
    )


class HistoryMessage(BaseModel):
    """One persisted message of a thread."""

    role: str = Field(..., description="user, assistant or tool")
    content: str = Field(..., description="Message text")
    tool_calls: list[str] = Field(
        default_factory=list,
        description="Names of tools requested by an assistant message"
    )


class HistoryResponse(BaseModel):
    """Persisted history of a thread.

    Attributes:
        thread_id: Conversation thread ID
        messages: Messages, oldest first
        pending: Whether the last user message is still unanswered
    """

    thread_id: str
    messages: list[HistoryMessage]
    pending: bool = False


# ========== SETUP ENDPOINT MODELS ==========


class SetupRequest(BaseModel):
    """Request model for the setup endpoint.

    Attributes:
        reset: Delete the existing collection before seeding (config default if None)
        employee_count: Synthetic employees to generate (config default if None)
    """

    reset: bool | None = Field(
        None,
        description="Reset the employee collection (defaults to config)"
    )
    employee_count: int | None = Field(
        None,
        ge=1,
        le=MAX_EMPLOYEE_COUNT,
        description="Number of employees to generate (defaults to config)"
    )


class SetupResponse(BaseModel):
    """Response model for the setup endpoint.

    Attributes:
        status: Setup status: "completed" or "failed"
        collection: Seeded collection name
        employees_created: Number of employees stored
        duration_seconds: Total processing time in seconds
    """

    status: str = Field(..., description="Setup status")
    collection: str = Field(..., description="Seeded collection name")
    employees_created: int = Field(..., description="Employees stored")
    duration_seconds: float = Field(..., description="Total processing time")
