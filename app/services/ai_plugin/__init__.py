"""
AI Plug-in Architecture.

Narrow provider interfaces for the triage core: text embeddings and image
classification. Real providers call OpenAI; mock providers are deterministic
and network-free.
"""

from app.services.ai_plugin.base import EmbeddingProvider, ImageClassifier, NATIONAL_CATEGORIES
from app.services.ai_plugin.openai_provider import OpenAIEmbeddingProvider, OpenAIVisionClassifier
from app.services.ai_plugin.mock_provider import MockEmbeddingProvider, MockImageClassifier
from app.services.ai_plugin.registry import get_embedding_provider, get_image_classifier

__all__ = [
    "EmbeddingProvider",
    "ImageClassifier",
    "NATIONAL_CATEGORIES",
    "OpenAIEmbeddingProvider",
    "OpenAIVisionClassifier",
    "MockEmbeddingProvider",
    "MockImageClassifier",
    "get_embedding_provider",
    "get_image_classifier",
]
