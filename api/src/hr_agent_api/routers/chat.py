"""Chat endpoint router for question answering.

This module provides the /chat endpoints that run a conversation turn through
the tool-calling agent and expose the persisted thread history.
"""

import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from employee_store import StoreUnavailableError

from ..agents.state import message_text
from ..errors import ModelInvocationError, RateLimitExceeded
from ..models import ChatRequest, ChatResponse, HistoryMessage, HistoryResponse, ThreadMessageRequest
from ..resources import get_chat_service
from ..services import ChatService

logger = logging.getLogger(__name__)

router = APIRouter()

APOLOGY_MESSAGE = (
    "I apologize, but I encountered an error processing your request. Please try again."
)


def _run_turn(service: ChatService, thread_id: str, message: str) -> ChatResponse:
    """Run one turn and map failures to fixed HTTP errors.

    Raises:
        HTTPException 400: Invalid input (e.g., blank message)
        HTTPException 429: Rate limit exceeded
        HTTPException 502: Language model failure
        HTTPException 503: Checkpoint store or vector store unreachable
        HTTPException 500: Any other processing error
    """
    try:
        result = service.chat(thread_id, message)

    except ValueError as e:
        logger.warning(f"Invalid chat request: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    except RateLimitExceeded as e:
        logger.warning(f"Chat rate limited for thread {thread_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please try again shortly"
        )

    except ModelInvocationError as e:
        logger.error(f"Model failure for thread {thread_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=APOLOGY_MESSAGE
        )

    except StoreUnavailableError as e:
        logger.error(f"Store unavailable for thread {thread_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable"
        )

    except Exception as e:
        logger.error(f"Chat processing failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process chat request"
        )

    logger.info(
        f"Chat completed: thread={result.thread_id}, "
        f"messages={result.message_count}, truncated={result.truncated}"
    )

    return ChatResponse(
        response=result.response,
        thread_id=result.thread_id,
        truncated=result.truncated
    )


@router.post("/chat", response_model=ChatResponse, status_code=status.HTTP_200_OK)
def chat(
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service)
) -> ChatResponse:
    """Answer a message, starting a new conversation if no thread_id is given.

    Args:
        request: Chat request with message and optional thread_id

    Returns:
        ChatResponse with the answer and the thread_id for follow-ups
    """
    thread_id = request.thread_id or uuid4().hex
    logger.info(f"Chat request received for thread {thread_id}: {request.message[:50]}...")
    return _run_turn(service, thread_id, request.message)


@router.post("/chat/{thread_id}", response_model=ChatResponse, status_code=status.HTTP_200_OK)
def chat_in_thread(
    thread_id: str,
    request: ThreadMessageRequest,
    service: ChatService = Depends(get_chat_service)
) -> ChatResponse:
    """Answer a message within an existing (or caller-named) conversation.

    Args:
        thread_id: Conversation thread ID from the path
        request: Message payload

    Returns:
        ChatResponse with the answer
    """
    logger.info(f"Chat request received for thread {thread_id}: {request.message[:50]}...")
    return _run_turn(service, thread_id, request.message)


@router.get("/chat/{thread_id}", response_model=HistoryResponse)
def get_history(
    thread_id: str,
    service: ChatService = Depends(get_chat_service)
) -> HistoryResponse:
    """Return the persisted message history of a thread.

    Raises:
        HTTPException 404: Unknown thread
        HTTPException 503: Checkpoint store unreachable
    """
    try:
        state = service.history(thread_id)
    except StoreUnavailableError as e:
        logger.error(f"Store unavailable loading thread {thread_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable"
        )

    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Thread {thread_id} not found"
        )

    messages = []
    for message in state.messages:
        if isinstance(message, HumanMessage):
            role = "user"
        elif isinstance(message, AIMessage):
            role = "assistant"
        elif isinstance(message, ToolMessage):
            role = "tool"
        else:
            role = message.type
        tool_calls = [call["name"] for call in getattr(message, "tool_calls", None) or []]
        messages.append(HistoryMessage(role=role, content=message_text(message), tool_calls=tool_calls))

    return HistoryResponse(
        thread_id=thread_id,
        messages=messages,
        pending=service.is_pending(state)
    )


@router.delete("/chat/{thread_id}", status_code=status.HTTP_204_NO_CONTENT)
def clear_thread(
    thread_id: str,
    service: ChatService = Depends(get_chat_service)
) -> None:
    """Delete a thread's checkpoint. Idempotent."""
    try:
        service.clear(thread_id)
    except StoreUnavailableError as e:
        logger.error(f"Store unavailable clearing thread {thread_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable"
        )
