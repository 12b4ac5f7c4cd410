"""Synthetic employee dataset generation and seeding.

This module generates fictional employee records with an LLM, turns each
record into a searchable summary, and stores summary plus full record in the
employee vector store. It also provides the ad-hoc search helper used to
sanity-check a seeded collection.
"""

import logging

from langchain_core.documents import Document
from langchain_core.language_models import BaseChatModel
from pydantic import BaseModel, Field

from .vector_store import EmployeeVectorStore

logger = logging.getLogger(__name__)

GENERATION_PROMPT_TEMPLATE = """You are a helpful assistant that generates employee data. Generate {count} fictional employee records.
Each record should include all the following fields: {fields}.
Ensure variety in the data and realistic values."""

EXAMPLE_QUERIES = [
    "experienced software engineers who know Python",
    "remote workers in the marketing department",
    "employees with high performance ratings",
]


# ========== EMPLOYEE SCHEMA ==========


class Address(BaseModel):
    street: str
    city: str
    state: str
    postal_code: str
    country: str


class ContactDetails(BaseModel):
    email: str
    phone_number: str


class JobDetails(BaseModel):
    job_title: str
    department: str
    hire_date: str
    employment_type: str
    salary: float
    currency: str


class WorkLocation(BaseModel):
    nearest_office: str
    is_remote: bool


class PerformanceReview(BaseModel):
    review_date: str
    rating: float
    comments: str


class Benefits(BaseModel):
    health_insurance: str
    retirement_plan: str
    paid_time_off: int


class EmergencyContact(BaseModel):
    name: str
    relationship: str
    phone_number: str


class Employee(BaseModel):
    """One employee record as stored in the collection metadata."""

    employee_id: str
    first_name: str
    last_name: str
    date_of_birth: str
    address: Address
    contact_details: ContactDetails
    job_details: JobDetails
    work_location: WorkLocation
    reporting_manager: str | None = None
    skills: list[str] = Field(default_factory=list)
    performance_reviews: list[PerformanceReview] = Field(default_factory=list)
    benefits: Benefits
    emergency_contact: EmergencyContact
    notes: str = ""


class EmployeeBatch(BaseModel):
    """Structured output wrapper for a batch of generated employees."""

    employees: list[Employee] = Field(description="Generated employee records")


# ========== GENERATION ==========


def generate_synthetic_employees(llm: BaseChatModel, count: int = 10) -> list[Employee]:
    """Generate fictional employee records with an LLM.

    Args:
        llm: Chat model supporting structured output
        count: Number of records to request

    Returns:
        List of validated Employee records

    Raises:
        ValueError: If count is not positive or the model returns no records
    """
    if count < 1:
        raise ValueError(f"count must be positive, got {count}")

    fields = ", ".join(Employee.model_fields.keys())
    prompt = GENERATION_PROMPT_TEMPLATE.format(count=count, fields=fields)

    logger.info(f"Generating {count} synthetic employee records")

    structured_llm = llm.with_structured_output(EmployeeBatch)
    batch = structured_llm.invoke(prompt)

    if not batch.employees:
        raise ValueError("Model returned no employee records")

    logger.info(f"Generated {len(batch.employees)} employee records")
    return batch.employees


def create_employee_summary(employee: Employee) -> str:
    """Build the text that gets embedded for an employee.

    Args:
        employee: Employee record

    Returns:
        One-paragraph summary covering identity, job, skills, reviews,
        location and notes
    """
    job_details = f"{employee.job_details.job_title} in {employee.job_details.department}"
    skills = ", ".join(employee.skills)
    performance_reviews = " ".join(
        f"Rated {review.rating} on {review.review_date}: {review.comments}"
        for review in employee.performance_reviews
    )
    basic_info = f"{employee.first_name} {employee.last_name}, born on {employee.date_of_birth}"
    work_location = (
        f"Works at {employee.work_location.nearest_office}, "
        f"Remote: {str(employee.work_location.is_remote).lower()}"
    )

    return (
        f"{basic_info}. Job: {job_details}. Skills: {skills}. "
        f"Reviews: {performance_reviews}. Location: {work_location}. Notes: {employee.notes}"
    )


# ========== SEEDING ==========


def seed_database(
    store: EmployeeVectorStore,
    llm: BaseChatModel,
    reset: bool = False,
    count: int = 10
) -> int:
    """Generate employees and store them in the vector store.

    Args:
        store: Target employee vector store
        llm: Chat model used for generation
        reset: Delete the existing collection first
        count: Number of employees to generate

    Returns:
        Number of employees stored
    """
    if reset:
        logger.info("Resetting employee collection")
        store.delete_collection()

    employees = generate_synthetic_employees(llm, count=count)

    documents = [
        Document(
            page_content=create_employee_summary(employee),
            metadata=employee.model_dump()
        )
        for employee in employees
    ]

    store.add_documents(documents)

    logger.info(
        f"Seeded {len(documents)} employees into collection '{store.collection_name}'"
    )
    return len(documents)


def search_employees(store: EmployeeVectorStore, query: str, k: int = 4) -> list[Employee]:
    """Search employees and return their full records.

    Args:
        store: Employee vector store
        query: Free-text query
        k: Maximum number of matches

    Returns:
        Matching employees, most relevant first
    """
    logger.info(f"Searching for: \"{query}\"")
    documents = store.similarity_search(query, k=k)

    for index, doc in enumerate(documents, start=1):
        logger.debug(
            f"Match {index}: employee_id={doc.metadata.get('employee_id')} "
            f"content={doc.page_content[:80]}..."
        )

    return [Employee.model_validate(doc.metadata) for doc in documents]


def cleanup_database(store: EmployeeVectorStore) -> None:
    """Remove all employees by deleting the collection."""
    store.delete_collection()
