"""
AI Provider Registry.

Selects the embedding provider and image classifier from configuration.
"""

from app.services.ai_plugin.base import EmbeddingProvider, ImageClassifier
from app.services.ai_plugin.openai_provider import OpenAIEmbeddingProvider, OpenAIVisionClassifier
from app.services.ai_plugin.mock_provider import MockEmbeddingProvider, MockImageClassifier
from app.core.settings import settings
from typing import Optional
import logging

logger = logging.getLogger(__name__)


_embedding_provider: Optional[EmbeddingProvider] = None
_image_classifier: Optional[ImageClassifier] = None


def get_embedding_provider() -> EmbeddingProvider:
    """
    Get the configured embedding provider.

    Rules:
    - AI_ENABLED=false -> mock provider
    - OpenAI API key present -> OpenAI
    - Otherwise -> mock provider (logged)

    Embeddings from different providers are not comparable; switching
    providers on a populated store needs a full backfill.
    """
    global _embedding_provider
    if _embedding_provider is not None:
        return _embedding_provider

    if not settings.AI_ENABLED:
        logger.info("AI is disabled globally (AI_ENABLED=false), using mock embedding provider")
        _embedding_provider = MockEmbeddingProvider()
        return _embedding_provider

    provider = OpenAIEmbeddingProvider()
    if provider.is_enabled():
        _embedding_provider = provider
    else:
        logger.warning("No embedding API key configured, falling back to mock embedding provider")
        _embedding_provider = MockEmbeddingProvider()
    return _embedding_provider


def get_image_classifier() -> ImageClassifier:
    """Get the configured image classifier (OpenAI vision, else keyword rules)."""
    global _image_classifier
    if _image_classifier is not None:
        return _image_classifier

    if settings.AI_ENABLED:
        classifier = OpenAIVisionClassifier()
        if classifier.is_enabled():
            _image_classifier = classifier
            return _image_classifier

    logger.info("Using mock image classifier")
    _image_classifier = MockImageClassifier()
    return _image_classifier
