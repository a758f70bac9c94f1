"""
AI Provider Base Interfaces.

Defines the narrow contracts the triage core depends on:
- EmbeddingProvider.embed(text) -> vector of fixed dimension
- ImageClassifier.classify_image(image_url) -> ImageAnalysis

Unlike advisory enrichment, these providers do not swallow failures:
callers need to know when to fall back, so a failed call raises
EmbeddingUnavailable / ClassifierUnavailable.
"""

from abc import ABC, abstractmethod
from typing import Dict, List
import logging

from app.models.report import ImageAnalysis

logger = logging.getLogger(__name__)


# Categories the image classifier may return
NATIONAL_CATEGORIES = (
    "Water & Sanitation",
    "Electricity",
    "Road Transport",
    "Health",
    "Security",
    "Education",
    "Waste Management",
    "Housing",
    "Environment",
    "Administrative / Government Service Delay",
)


class EmbeddingProvider(ABC):
    """
    Abstract base class for text embedding providers.
    """

    @abstractmethod
    def is_enabled(self) -> bool:
        """True if the provider is configured and can be called."""
        pass

    @abstractmethod
    def get_model_info(self) -> Dict[str, str]:
        """Dict with 'name' and 'version' keys."""
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector this provider returns."""
        pass

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """
        Embed a piece of text.

        MUST return a vector of exactly `dimension` floats.

        Raises:
            EmbeddingUnavailable: on timeout, failure response or a
                malformed vector.
        """
        pass


class ImageClassifier(ABC):
    """
    Abstract base class for image classifiers.
    """

    @abstractmethod
    def is_enabled(self) -> bool:
        pass

    @abstractmethod
    def get_model_info(self) -> Dict[str, str]:
        pass

    @abstractmethod
    def classify_image(self, image_url: str) -> ImageAnalysis:
        """
        Classify a report photo into one of NATIONAL_CATEGORIES.

        An unrecognised category comes back as category=None, confidence=0.

        Raises:
            ClassifierUnavailable: on timeout or failure response.
        """
        pass
