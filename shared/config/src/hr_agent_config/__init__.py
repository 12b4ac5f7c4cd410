"""Configuration management for the HR agent.

This module provides centralized configuration using Pydantic Settings.
All services should use get_settings() instead of os.getenv() directly.
Configuration is loaded from environment variables and .env files.

Example:
    >>> from hr_agent_config import get_settings
    >>> settings = get_settings()
    >>> db_url = settings.database.connection_string
    >>> limit = settings.agent.recursion_limit
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enum."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"


class DatabaseConfig(BaseSettings):
    """PostgreSQL database configuration for conversation checkpoints.

    Loads configuration from environment variables with POSTGRES_ prefix.
    Provides a computed connection string for SQLAlchemy.

    Attributes:
        host: Database host address
        port: Database port number
        db: Database name
        user: Database username
        password: Database password (required)
    """

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="hr_database", description="Database name")
    user: str = Field(default="hrbot", description="Database username")
    password: str = Field(description="Database password (required)")

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection URL.

        Returns:
            PostgreSQL connection string for SQLAlchemy
        """
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"


class QdrantConfig(BaseSettings):
    """Qdrant vector database configuration.

    Loads configuration from environment variables with QDRANT_ prefix.
    The collection name and the three payload/vector keys must match the
    values used when the collection was seeded, otherwise searches quietly
    return nothing.

    Attributes:
        host: Qdrant host address
        port: Qdrant port number
        collection_name: Name of the employee collection
        embedding_key: Named vector holding the record embedding
        text_key: Payload key holding the embedded summary text
        metadata_key: Payload key holding the full employee record
    """

    model_config = SettingsConfigDict(env_prefix="QDRANT_")

    host: str = Field(default="localhost", description="Qdrant host")
    port: int = Field(default=6333, description="Qdrant port")
    collection_name: str = Field(
        default="employees",
        description="Vector collection name"
    )
    embedding_key: str = Field(
        default="embedding",
        description="Named vector used for similarity search"
    )
    text_key: str = Field(
        default="embedding_text",
        description="Payload key for the embedded text"
    )
    metadata_key: str = Field(
        default="metadata",
        description="Payload key for the source record"
    )

    @property
    def url(self) -> str:
        """Build Qdrant connection URL.

        Returns:
            Qdrant HTTP API URL
        """
        return f"http://{self.host}:{self.port}"


class LLMConfig(BaseSettings):
    """LLM configuration with environment-aware model selection.

    Automatically switches between Ollama (development) and OpenAI (production)
    based on the environment setting.

    Attributes:
        environment: Current application environment
        ollama_base_url: Ollama API base URL
        ollama_model: Ollama chat model name
        ollama_embedding_model: Ollama embedding model name
        openai_api_key: OpenAI API key (optional, required for production)
        openai_model: OpenAI chat model name
        openai_embedding_model: OpenAI embedding model name
        temperature: Sampling temperature for the agent model
    """

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )

    # Ollama configuration (development)
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama API base URL"
    )
    ollama_model: str = Field(
        default="llama3.1",
        description="Ollama chat model (must support tool calling)"
    )
    ollama_embedding_model: str = Field(
        default="nomic-embed-text",
        description="Ollama embedding model"
    )

    # OpenAI configuration (production)
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key"
    )
    openai_model: str = Field(
        default="gpt-4o",
        description="OpenAI chat model"
    )
    openai_embedding_model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI embedding model"
    )

    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Agent model temperature"
    )

    @property
    def is_local(self) -> bool:
        """Check if using local Ollama models.

        Returns:
            True if environment is development, False otherwise
        """
        return self.environment == Environment.DEVELOPMENT

    @property
    def chat_model_name(self) -> str:
        """Get the appropriate chat model name for current environment."""
        return self.ollama_model if self.is_local else self.openai_model

    @property
    def embedding_model_name(self) -> str:
        """Get the appropriate embedding model name for current environment."""
        return (
            self.ollama_embedding_model
            if self.is_local
            else self.openai_embedding_model
        )


class AgentConfig(BaseSettings):
    """Agent workflow configuration.

    Attributes:
        recursion_limit: Maximum reasoning/tool cycles within a single turn
        tool_workers: Thread pool size for dispatching tool calls
        system_message: Role line appended to the agent system directive
    """

    model_config = SettingsConfigDict(env_prefix="AGENT_")

    recursion_limit: int = Field(
        default=7,
        ge=1,
        le=50,
        description="Maximum reasoning/tool cycles per turn"
    )
    tool_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Concurrent tool calls per batch"
    )
    system_message: str = Field(
        default="You are helpful HR Chatbot Agent.",
        description="Agent role description"
    )


class RateLimitConfig(BaseSettings):
    """Token bucket limits for outbound model and tool calls.

    Attributes:
        capacity: Bucket size (and tokens refilled per window)
        window_seconds: Time for an empty bucket to refill completely
        max_wait_seconds: How long a call may block for a token; 0 fails fast
    """

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_")

    capacity: int = Field(default=20, ge=1, description="Tokens per window")
    window_seconds: float = Field(default=60.0, gt=0, description="Refill window")
    max_wait_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Maximum time to wait for a token"
    )


class SeedConfig(BaseSettings):
    """Synthetic dataset seeding configuration.

    Attributes:
        reset_db: Delete the existing collection before seeding (RESET_DB)
        employee_count: Number of synthetic employees to generate
    """

    reset_db: bool = Field(default=False, description="Reset collection before seeding")
    employee_count: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Synthetic employees to generate"
    )


class Settings(BaseSettings):
    """Master configuration class for the HR agent.

    Aggregates all configuration sections and provides access to them
    through properties. Loads configuration from environment variables
    and .env file.

    Attributes:
        environment: Current application environment (DEVELOPMENT/PRODUCTION)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow"
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )

    @property
    def database(self) -> DatabaseConfig:
        """Get database configuration."""
        return DatabaseConfig()

    @property
    def qdrant(self) -> QdrantConfig:
        """Get Qdrant configuration."""
        return QdrantConfig()

    @property
    def llm(self) -> LLMConfig:
        """Get LLM configuration.

        Returns:
            LLMConfig instance with environment-aware model settings
        """
        return LLMConfig(environment=self.environment)

    @property
    def agent(self) -> AgentConfig:
        """Get agent workflow configuration."""
        return AgentConfig()

    @property
    def rate_limit(self) -> RateLimitConfig:
        """Get rate limiter configuration."""
        return RateLimitConfig()

    @property
    def seed(self) -> SeedConfig:
        """Get dataset seeding configuration."""
        return SeedConfig()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns a singleton Settings instance that is cached after first call.
    This ensures configuration is loaded only once and reused across the
    application.

    Returns:
        Settings instance with all configuration sections

    Example:
        >>> settings = get_settings()
        >>> db_url = settings.database.connection_string
        >>> is_dev = settings.llm.is_local
    """
    return Settings()


__all__ = [
    "Environment",
    "DatabaseConfig",
    "QdrantConfig",
    "LLMConfig",
    "AgentConfig",
    "RateLimitConfig",
    "SeedConfig",
    "Settings",
    "get_settings",
]
