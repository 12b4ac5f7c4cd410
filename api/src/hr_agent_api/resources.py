"""Process-lifetime resources of the API.

Database engine, Qdrant client, chat model, rate limiter and tool thread pool
are built once at startup, shared read-only by all requests, and closed on
shutdown.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from fastapi import HTTPException, Request, status
from langchain_core.language_models import BaseChatModel
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from employee_store import EmployeeVectorStore
from hr_agent_config import Settings

from .agents.graph import TurnController, bind_agent_tools, build_chat_model
from .agents.rate_limiter import TokenBucketRateLimiter
from .agents.tools import ToolRegistry, create_employee_lookup_tool
from .services import ChatService, CheckpointStore, ThreadLocks

logger = logging.getLogger(__name__)


@dataclass
class AgentResources:
    """Shared handles used by the request handlers."""

    settings: Settings
    engine: Engine
    checkpoints: CheckpointStore
    vector_store: EmployeeVectorStore
    llm: BaseChatModel
    registry: ToolRegistry
    rate_limiter: TokenBucketRateLimiter
    executor: ThreadPoolExecutor
    chat_service: ChatService

    def close(self) -> None:
        """Release pools and connections."""
        self.executor.shutdown(wait=True)
        try:
            self.vector_store.close()
        except Exception as e:
            logger.warning(f"Failed to close Qdrant client: {e}")
        self.engine.dispose()
        logger.info("Agent resources closed")


def build_resources(settings: Settings) -> AgentResources:
    """Build all shared resources from settings.

    Args:
        settings: Application settings

    Returns:
        AgentResources ready to serve requests
    """
    engine = create_engine(settings.database.connection_string, pool_pre_ping=True)
    checkpoints = CheckpointStore(engine)

    vector_store = EmployeeVectorStore.from_settings(settings)
    registry = ToolRegistry([create_employee_lookup_tool(vector_store)])

    rate_config = settings.rate_limit
    rate_limiter = TokenBucketRateLimiter(
        capacity=rate_config.capacity,
        window_seconds=rate_config.window_seconds,
        max_wait_seconds=rate_config.max_wait_seconds
    )

    agent_config = settings.agent
    executor = ThreadPoolExecutor(
        max_workers=agent_config.tool_workers,
        thread_name_prefix="agent-tool"
    )

    llm = build_chat_model(settings)
    controller = TurnController(
        model=bind_agent_tools(llm, registry.tools),
        registry=registry,
        recursion_limit=agent_config.recursion_limit,
        system_message=agent_config.system_message,
        rate_limiter=rate_limiter,
        executor=executor
    )

    logger.info(
        f"Agent resources built (tools: {', '.join(registry.names)}, "
        f"recursion_limit: {agent_config.recursion_limit}, "
        f"rate_limit: {rate_config.capacity}/{rate_config.window_seconds:.0f}s)"
    )

    return AgentResources(
        settings=settings,
        engine=engine,
        checkpoints=checkpoints,
        vector_store=vector_store,
        llm=llm,
        registry=registry,
        rate_limiter=rate_limiter,
        executor=executor,
        chat_service=ChatService(controller, checkpoints, ThreadLocks())
    )


def get_resources(request: Request) -> AgentResources:
    """FastAPI dependency returning the app's shared resources.

    Raises:
        HTTPException 503: If startup did not build the resources
    """
    resources = getattr(request.app.state, "resources", None)
    if resources is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up"
        )
    return resources


def get_chat_service(request: Request) -> ChatService:
    """FastAPI dependency returning the chat service."""
    return get_resources(request).chat_service
