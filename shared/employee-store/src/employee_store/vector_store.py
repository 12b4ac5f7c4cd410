"""Employee vector store backed by Qdrant.

This module wraps a Qdrant collection holding one point per employee: the
embedding of the employee summary under a named vector, the summary text and
the full employee record in the payload. It exposes the narrow search/insert
surface the agent and the seeding job consume.
"""

import logging
import uuid
from typing import Any, Callable, TypeVar

from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings
from qdrant_client import QdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException
from qdrant_client.models import Distance, PointStruct, VectorParams

from hr_agent_config import QdrantConfig, Settings

from .exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that mean the Qdrant server could not be reached at all
CONNECTION_ERRORS = (ResponseHandlingException, ConnectionError)


def build_embeddings(settings: Settings) -> Embeddings:
    """Get environment-aware embeddings.

    Returns Ollama embeddings (dev) or OpenAI embeddings (prod) based on
    settings.

    Args:
        settings: Application settings

    Returns:
        OllamaEmbeddings or OpenAIEmbeddings instance
    """
    if settings.llm.is_local:
        from langchain_ollama import OllamaEmbeddings

        logger.info("Using Ollama embeddings for development")
        return OllamaEmbeddings(
            base_url=settings.llm.ollama_base_url,
            model=settings.llm.embedding_model_name
        )

    from langchain_openai import OpenAIEmbeddings

    logger.info("Using OpenAI embeddings for production")
    return OpenAIEmbeddings(
        api_key=settings.llm.openai_api_key,
        model=settings.llm.embedding_model_name
    )


class EmployeeVectorStore:
    """Similarity search over the employee collection.

    The collection name, named vector and payload keys are fixed at
    construction and must match the values used when the collection was
    populated. A connection failure triggers one explicit reconnect and
    retry before StoreUnavailableError is raised.

    Example:
        >>> store = EmployeeVectorStore.from_settings(get_settings())
        >>> for doc, score in store.similarity_search_with_score("Python", k=3):
        ...     print(score, doc.metadata["employee_id"])
    """

    def __init__(
        self,
        client_factory: Callable[[], QdrantClient],
        embeddings: Embeddings,
        config: QdrantConfig
    ):
        """Initialize the store.

        Args:
            client_factory: Builds a connected QdrantClient; called again on reconnect
            embeddings: Embedding model used for documents and queries
            config: Collection name and vector/payload keys
        """
        self._client_factory = client_factory
        self.client = client_factory()
        self.embeddings = embeddings
        self.collection_name = config.collection_name
        self.embedding_key = config.embedding_key
        self.text_key = config.text_key
        self.metadata_key = config.metadata_key

        logger.info(
            f"EmployeeVectorStore initialized (collection: {self.collection_name}, "
            f"vector: {self.embedding_key}, text_key: {self.text_key})"
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmployeeVectorStore":
        """Build a store from application settings."""
        qdrant = settings.qdrant
        return cls(
            client_factory=lambda: QdrantClient(url=qdrant.url),
            embeddings=build_embeddings(settings),
            config=qdrant
        )

    def reconnect(self) -> None:
        """Drop the current client and open a new one."""
        logger.warning(f"Reconnecting to Qdrant (collection: {self.collection_name})")
        try:
            self.client.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing stale Qdrant client: {e}")
        self.client = self._client_factory()

    def _call(self, operation: str, fn: Callable[[QdrantClient], T]) -> T:
        """Run a Qdrant operation, reconnecting once on connection failure.

        Args:
            operation: Name used in log messages
            fn: Callable receiving the current client

        Returns:
            Whatever fn returns

        Raises:
            StoreUnavailableError: If the retry after reconnecting also fails
        """
        try:
            return fn(self.client)
        except CONNECTION_ERRORS as e:
            logger.warning(f"Qdrant {operation} failed, retrying after reconnect: {e}")

        self.reconnect()
        try:
            return fn(self.client)
        except CONNECTION_ERRORS as e:
            logger.error(f"Qdrant {operation} failed after reconnect: {e}", exc_info=True)
            raise StoreUnavailableError("qdrant", str(e)) from e

    def ping(self) -> None:
        """Check that Qdrant answers.

        Raises:
            StoreUnavailableError: If Qdrant is unreachable
        """
        self._call("ping", lambda client: client.get_collections())

    def collection_exists(self) -> bool:
        """Check whether the employee collection exists."""
        collections = self._call("get_collections", lambda client: client.get_collections())
        return self.collection_name in [col.name for col in collections.collections]

    def ensure_collection(self) -> None:
        """Ensure the collection exists with the configured named vector.

        Creates the collection if it doesn't exist, using the embedding
        dimension from a probe embedding. Uses cosine distance.
        """
        if self.collection_exists():
            logger.info(f"Collection already exists: {self.collection_name}")
            return

        logger.info(f"Creating Qdrant collection: {self.collection_name}")

        dimension = len(self.embeddings.embed_query("dimension probe"))
        self._call(
            "create_collection",
            lambda client: client.create_collection(
                collection_name=self.collection_name,
                vectors_config={
                    self.embedding_key: VectorParams(size=dimension, distance=Distance.COSINE)
                }
            )
        )

        logger.info(f"Collection created with dimension {dimension}")

    def add_documents(self, documents: list[Document]) -> list[str]:
        """Embed and store documents.

        Point IDs are UUID v5 values derived from the employee_id metadata
        field when present, so re-seeding the same employee overwrites it.

        Args:
            documents: Documents with summary text and employee metadata

        Returns:
            List of point IDs in document order

        Raises:
            ValueError: If documents is empty
            StoreUnavailableError: If Qdrant is unreachable
        """
        if not documents:
            raise ValueError("documents list cannot be empty")

        self.ensure_collection()

        logger.info(f"Embedding {len(documents)} documents")
        vectors = self.embeddings.embed_documents([doc.page_content for doc in documents])

        ids = []
        points = []
        for doc, vector in zip(documents, vectors):
            point_id = self._point_id(doc.metadata)
            ids.append(point_id)
            points.append(PointStruct(
                id=point_id,
                vector={self.embedding_key: vector},
                payload={
                    self.text_key: doc.page_content,
                    self.metadata_key: doc.metadata
                }
            ))

        self._call(
            "upsert",
            lambda client: client.upsert(collection_name=self.collection_name, points=points)
        )

        logger.info(f"Stored {len(points)} documents in {self.collection_name}")
        return ids

    def similarity_search_with_score(
        self,
        query: str,
        k: int = 4
    ) -> list[tuple[Document, float]]:
        """Search documents by semantic similarity.

        Args:
            query: Free-text query
            k: Maximum number of results

        Returns:
            List of (document, score) tuples, highest score first

        Raises:
            ValueError: If query is empty or k is not positive
            StoreUnavailableError: If Qdrant is unreachable
        """
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")

        if k < 1:
            raise ValueError(f"k must be positive, got {k}")

        logger.info(f"Searching {self.collection_name} for: {query[:50]}... (k={k})")

        query_vector = self.embeddings.embed_query(query)

        points = self._call(
            "query_points",
            lambda client: client.query_points(
                collection_name=self.collection_name,
                query=query_vector,
                using=self.embedding_key,
                limit=k,
                with_payload=True
            ).points
        )

        results = []
        for point in points:
            payload: dict[str, Any] = point.payload or {}
            doc = Document(
                page_content=payload.get(self.text_key, ""),
                metadata=payload.get(self.metadata_key, {})
            )
            results.append((doc, point.score))

        results.sort(key=lambda pair: pair[1], reverse=True)

        logger.info(f"Retrieved {len(results)} documents")
        return results[:k]

    def similarity_search(self, query: str, k: int = 4) -> list[Document]:
        """Search documents by semantic similarity, dropping scores."""
        return [doc for doc, _ in self.similarity_search_with_score(query, k=k)]

    def delete_collection(self) -> None:
        """Delete the employee collection. No error if it doesn't exist."""
        if not self.collection_exists():
            logger.info(f"Collection {self.collection_name} not found, nothing to delete")
            return

        self._call(
            "delete_collection",
            lambda client: client.delete_collection(collection_name=self.collection_name)
        )
        logger.info(f"Deleted collection: {self.collection_name}")

    def close(self) -> None:
        """Close the underlying client."""
        self.client.close()

    def _point_id(self, metadata: dict[str, Any]) -> str:
        employee_id = metadata.get("employee_id")
        if employee_id:
            return str(uuid.uuid5(uuid.NAMESPACE_DNS, f"{self.collection_name}_{employee_id}"))
        return str(uuid.uuid4())
