"""Shared fixtures for employee store tests."""

import os

import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding
from qdrant_client import QdrantClient

from hr_agent_config import QdrantConfig

os.environ.setdefault("POSTGRES_PASSWORD", "test_pass")

from employee_store import EmployeeVectorStore  # noqa: E402
from employee_store.seeding import Employee  # noqa: E402


@pytest.fixture
def make_employee():
    """Factory for valid Employee records with overridable fields."""

    def _make(employee_id="E001", **overrides):
        data = {
            "employee_id": employee_id,
            "first_name": "Ada",
            "last_name": "Lovelace",
            "date_of_birth": "1985-12-10",
            "address": {
                "street": "12 St James's Square",
                "city": "London",
                "state": "Greater London",
                "postal_code": "SW1Y 4JH",
                "country": "UK",
            },
            "contact_details": {"email": "ada@example.com", "phone_number": "+44 20 7946 0000"},
            "job_details": {
                "job_title": "Software Engineer",
                "department": "Engineering",
                "hire_date": "2019-04-01",
                "employment_type": "Full-Time",
                "salary": 95000,
                "currency": "GBP",
            },
            "work_location": {"nearest_office": "London", "is_remote": True},
            "reporting_manager": "E100",
            "skills": ["Python", "Mathematics"],
            "performance_reviews": [
                {"review_date": "2023-12-01", "rating": 4.8, "comments": "Outstanding analysis"},
            ],
            "benefits": {
                "health_insurance": "Gold Plan",
                "retirement_plan": "Pension",
                "paid_time_off": 25,
            },
            "emergency_contact": {
                "name": "Charles Babbage",
                "relationship": "Colleague",
                "phone_number": "+44 20 7946 0001",
            },
            "notes": "Leads the analytics guild",
        }
        data.update(overrides)
        return Employee.model_validate(data)

    return _make


@pytest.fixture
def embeddings():
    return DeterministicFakeEmbedding(size=32)


@pytest.fixture
def qdrant_config():
    return QdrantConfig(collection_name="employees_test")


@pytest.fixture
def vector_store(embeddings, qdrant_config):
    """Employee store over an in-process Qdrant instance."""
    store = EmployeeVectorStore(
        client_factory=lambda: QdrantClient(":memory:"),
        embeddings=embeddings,
        config=qdrant_config
    )
    yield store
    store.close()
