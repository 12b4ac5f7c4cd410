"""Background job for seeding the employee dataset.

Generates synthetic employee records, stores them in the employee vector
store and runs a few example searches to confirm the collection answers.
Set RESET_DB=true to delete the existing collection first.
"""

import logging
import sys

from employee_store import EmployeeVectorStore, search_employees, seed_database
from employee_store.seeding import EXAMPLE_QUERIES
from hr_agent_api.agents.graph import build_chat_model
from hr_agent_config import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def run_example_searches(store: EmployeeVectorStore) -> None:
    """Run the example queries and log the matching employees."""
    for query in EXAMPLE_QUERIES:
        employees = search_employees(store, query)
        names = ", ".join(f"{e.first_name} {e.last_name}" for e in employees) or "no matches"
        logger.info(f"Example search {query!r}: {names}")


def main() -> None:
    """Main entry point for the seeding job.

    Exits with status 1 if seeding fails.
    """
    logger.info("Starting employee seeding job")

    settings = get_settings()
    seed_config = settings.seed
    logger.info(f"Environment: {settings.environment}")
    logger.info(
        f"Collection: {settings.qdrant.collection_name} "
        f"(reset={seed_config.reset_db}, employees={seed_config.employee_count})"
    )

    store = EmployeeVectorStore.from_settings(settings)

    try:
        created = seed_database(
            store,
            build_chat_model(settings),
            reset=seed_config.reset_db,
            count=seed_config.employee_count
        )
        logger.info(f"Database seeding completed: {created} employees")

        run_example_searches(store)

    except Exception as e:
        logger.critical(f"Seeding job failed: {e}", exc_info=True)
        sys.exit(1)

    finally:
        store.close()


if __name__ == "__main__":
    main()
