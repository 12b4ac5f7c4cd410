"""Setup endpoint router for seeding the employee dataset.

This module provides the /setup endpoint that generates synthetic employee
records and stores them in the employee vector store.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status

from employee_store import StoreUnavailableError, seed_database

from ..errors import RateLimitExceeded
from ..models import SetupRequest, SetupResponse
from ..resources import AgentResources, get_resources

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/setup", response_model=SetupResponse, status_code=status.HTTP_200_OK)
def setup(
    request: SetupRequest,
    resources: AgentResources = Depends(get_resources)
) -> SetupResponse:
    """Seed the employee collection with synthetic records.

    Workflow:
    1. Optionally delete the existing collection
    2. Generate employee records with the LLM
    3. Summarize, embed and store each record in Qdrant

    Args:
        request: Setup request with optional reset flag and employee count

    Returns:
        SetupResponse with status, collection, count and duration

    Raises:
        HTTPException 503: Vector store unreachable
        HTTPException 500: Seeding failed
    """
    seed_config = resources.settings.seed
    reset = seed_config.reset_db if request.reset is None else request.reset
    count = request.employee_count or seed_config.employee_count

    logger.info(f"Setup request received: reset={reset}, employee_count={count}")

    start_time = datetime.utcnow()

    try:
        resources.rate_limiter.consume()
        created = seed_database(
            resources.vector_store,
            resources.llm,
            reset=reset,
            count=count
        )

    except RateLimitExceeded as e:
        logger.warning(f"Setup rate limited: {e}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please try again shortly"
        )

    except StoreUnavailableError as e:
        logger.error(f"Setup failed, vector store unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Vector store unavailable"
        )

    except Exception as e:
        logger.error(f"Setup failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Setup failed"
        )

    duration = (datetime.utcnow() - start_time).total_seconds()

    logger.info(f"Setup completed in {duration:.1f}s: {created} employees")

    return SetupResponse(
        status="completed",
        collection=resources.vector_store.collection_name,
        employees_created=created,
        duration_seconds=duration
    )
