"""Employee storage package for the HR agent.

This package provides the conversation checkpoint schema, the Qdrant-backed
employee vector store, and the synthetic dataset seeding utilities.
"""

from employee_store.exceptions import StoreUnavailableError
from employee_store.models import Base, ConversationCheckpoint, init_database
from employee_store.seeding import (
    Employee,
    create_employee_summary,
    search_employees,
    seed_database,
)
from employee_store.vector_store import EmployeeVectorStore, build_embeddings

__all__ = [
    "Base",
    "ConversationCheckpoint",
    "Employee",
    "EmployeeVectorStore",
    "StoreUnavailableError",
    "build_embeddings",
    "create_employee_summary",
    "init_database",
    "search_employees",
    "seed_database",
]
