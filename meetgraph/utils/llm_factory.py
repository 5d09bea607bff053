"""
LLM Factory - Backend Abstraction.

Builds the generation model and the embedding model for the configured
backends (OpenAI, Ollama, HuggingFace). Callers own the returned instances:
the API constructs them once in its lifespan and passes them down, nothing
here is cached at module level.
"""

from typing import TYPE_CHECKING

from llama_index.core.embeddings import BaseEmbedding
from llama_index.core.llms import LLM

from app.config import EmbeddingBackend, LLMBackend
from meetgraph.utils.logger import get_logger

if TYPE_CHECKING:
    from app.config import Settings

logger = get_logger(__name__)


class LLMFactoryError(Exception):
    """Raised when LLM factory encounters an error."""

    pass


def _create_openai_llm(settings: "Settings") -> LLM:
    """Create OpenAI LLM instance."""
    try:
        from llama_index.llms.openai import OpenAI
    except ImportError as e:
        raise LLMFactoryError(
            "OpenAI LLM not installed. Run: pip install llama-index-llms-openai"
        ) from e

    if not settings.openai_api_key:
        raise LLMFactoryError(
            "OPENAI_API_KEY not set. Required when llm_backend='openai'"
        )

    logger.info(f"Initializing OpenAI LLM with model: {settings.openai_model}")
    return OpenAI(
        model=settings.openai_model,
        api_key=settings.openai_api_key,
        temperature=0.1,
        timeout=settings.llm_timeout_seconds,
        max_retries=0,
    )


def _create_ollama_llm(settings: "Settings") -> LLM:
    """Create Ollama LLM instance for local inference."""
    try:
        from llama_index.llms.ollama import Ollama
    except ImportError as e:
        raise LLMFactoryError(
            "Ollama LLM not installed. Run: pip install llama-index-llms-ollama"
        ) from e

    logger.info(
        f"Initializing Ollama LLM with model: {settings.ollama_model} "
        f"at {settings.ollama_base_url}"
    )
    return Ollama(
        model=settings.ollama_model,
        base_url=settings.ollama_base_url,
        request_timeout=settings.ollama_request_timeout,
        temperature=0.1,
    )


def _create_huggingface_embedding(settings: "Settings") -> BaseEmbedding:
    """Create HuggingFace embedding model for local embeddings."""
    try:
        from llama_index.embeddings.huggingface import HuggingFaceEmbedding
    except ImportError as e:
        raise LLMFactoryError(
            "HuggingFace embeddings not installed. "
            "Run: pip install llama-index-embeddings-huggingface"
        ) from e

    logger.info(f"Initializing HuggingFace embeddings with model: {settings.embedding_model}")
    return HuggingFaceEmbedding(model_name=settings.embedding_model)


def _create_openai_embedding(settings: "Settings") -> BaseEmbedding:
    """Create OpenAI embedding model."""
    try:
        from llama_index.embeddings.openai import OpenAIEmbedding
    except ImportError as e:
        raise LLMFactoryError(
            "OpenAI embeddings not installed. "
            "Run: pip install llama-index-embeddings-openai"
        ) from e

    if not settings.openai_api_key:
        raise LLMFactoryError(
            "OPENAI_API_KEY not set. Required when embedding_backend='openai'"
        )

    logger.info(f"Initializing OpenAI embeddings with model: {settings.embedding_model}")
    return OpenAIEmbedding(
        model_name=settings.embedding_model,
        api_key=settings.openai_api_key,
    )


def create_llm(settings: "Settings", backend: LLMBackend | None = None) -> LLM:
    """
    Build the generation model for the configured (or given) backend.

    Raises:
        LLMFactoryError: If configuration is invalid or dependencies missing
    """
    backend = backend or settings.llm_backend

    match backend:
        case LLMBackend.OPENAI:
            return _create_openai_llm(settings)
        case LLMBackend.OLLAMA:
            return _create_ollama_llm(settings)
        case _:
            raise LLMFactoryError(f"Unsupported LLM backend: {backend}")


def create_embedding_model(
    settings: "Settings",
    backend: EmbeddingBackend | None = None,
) -> BaseEmbedding:
    """
    Build the embedding model for the configured (or given) backend.

    Raises:
        LLMFactoryError: If configuration is invalid or dependencies missing
    """
    backend = backend or settings.embedding_backend

    match backend:
        case EmbeddingBackend.HUGGINGFACE:
            return _create_huggingface_embedding(settings)
        case EmbeddingBackend.OPENAI:
            return _create_openai_embedding(settings)
        case _:
            raise LLMFactoryError(f"Unsupported embedding backend: {backend}")
