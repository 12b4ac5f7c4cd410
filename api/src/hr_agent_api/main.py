"""Main FastAPI application for the HR agent API.

This module sets up the FastAPI application with lifespan management,
health check endpoint, and API routing.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, status
from fastapi.responses import JSONResponse

from employee_store import init_database
from hr_agent_config import get_settings

from .resources import AgentResources, build_resources, get_resources
from .routers import chat, setup

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events.

    Startup: Build shared resources and create checkpoint tables
    Shutdown: Close pools and connections

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    # Startup
    logger.info("Starting HR Agent API")

    settings = get_settings()
    logger.info(f"Environment: {settings.environment}")

    resources = build_resources(settings)
    app.state.resources = resources

    try:
        init_database(resources.engine)
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        # Don't fail startup - health check will report unhealthy

    yield

    # Shutdown
    logger.info("Shutting down HR Agent API")
    resources.close()
    app.state.resources = None


# Create FastAPI app
app = FastAPI(
    title="HR Agent API",
    description="Tool-calling agent answering questions about employees",
    version="0.1.0",
    lifespan=lifespan
)

# Include routers
app.include_router(chat.router, prefix="/api/v1", tags=["chat"])
app.include_router(setup.router, prefix="/api/v1", tags=["setup"])


@app.get("/health", status_code=status.HTTP_200_OK, tags=["health"])
def health_check(resources: AgentResources = Depends(get_resources)):
    """Health check endpoint.

    Checks status of dependencies: checkpoint database, vector store, LLM.
    Returns 200 if healthy, 503 if any component is unhealthy.

    Returns:
        JSON response with health status and component checks
    """
    checks = {
        "database": "unknown",
        "vector_store": "unknown",
        "llm": "unknown"
    }

    # Check checkpoint database
    try:
        resources.checkpoints.ping()
        checks["database"] = "healthy"
        logger.debug("Database health check: healthy")
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unhealthy"

    # Check vector store
    try:
        resources.vector_store.ping()
        checks["vector_store"] = "healthy"
        logger.debug("Vector store health check: healthy")
    except Exception as e:
        logger.error(f"Vector store health check failed: {e}")
        checks["vector_store"] = "unhealthy"

    # Check LLM (assume healthy if config exists)
    checks["llm"] = "healthy"

    overall_status = "healthy" if all(v == "healthy" for v in checks.values()) else "unhealthy"

    response_code = status.HTTP_200_OK if overall_status == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=response_code,
        content={
            "status": overall_status,
            "service": "api",
            "timestamp": datetime.utcnow().isoformat(),
            "checks": checks
        }
    )


@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information.

    Returns:
        Dict with API service information and available endpoints
    """
    return {
        "service": "HR Agent API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health"
    }
