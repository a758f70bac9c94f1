"""
Mock AI Providers - Fallback providers when AI is disabled.

Deterministic, network-free stand-ins:
- MockEmbeddingProvider hashes words into a fixed-dimension vector, so texts
  sharing vocabulary land close together.
- MockImageClassifier applies keyword rules to the image URL.
"""

from app.core.settings import settings
from app.models.report import ImageAnalysis
from app.services.ai_plugin.base import EmbeddingProvider, ImageClassifier
from typing import Dict, List, Optional
import hashlib
import logging
import math
import re

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[a-z0-9]+")
_STOP_WORDS = {"the", "and", "is", "in", "on", "at", "to", "a", "an", "of", "for", "near", "with"}


class MockEmbeddingProvider(EmbeddingProvider):
    """
    Hashed bag-of-words embedding.

    Always enabled. Identical texts produce identical vectors; empty text
    produces the zero vector.
    """

    MODEL_NAME = "mock-hashed-bow-v1"
    MODEL_VERSION = "1.0.0"

    def __init__(self, dimension: Optional[int] = None):
        self._dimension = dimension or settings.EMBEDDING_DIMENSION

    @property
    def dimension(self) -> int:
        return self._dimension

    def is_enabled(self) -> bool:
        return True

    def get_model_info(self) -> Dict[str, str]:
        return {"name": self.MODEL_NAME, "version": self.MODEL_VERSION}

    def embed(self, text: str) -> List[float]:
        vector = [0.0] * self._dimension
        words = [w for w in _WORD_RE.findall((text or "").lower()) if w not in _STOP_WORDS]
        for word in words:
            digest = hashlib.sha256(word.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self._dimension
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]


class MockImageClassifier(ImageClassifier):
    """
    Keyword rules over the image URL/file name.

    Returns category=None with confidence 0 when nothing matches.
    """

    MODEL_NAME = "mock-rules-v1"
    MODEL_VERSION = "1.0.0"

    RULES = (
        ("Security", ["crime", "theft", "security", "violence"]),
        ("Health", ["health", "hospital", "clinic", "medical"]),
        ("Water & Sanitation", ["water", "leak", "drain", "sewage", "pipe"]),
        ("Electricity", ["electric", "power", "transformer", "streetlight"]),
        ("Road Transport", ["road", "pothole", "traffic", "bridge"]),
        ("Waste Management", ["garbage", "waste", "trash", "dump"]),
        ("Environment", ["flood", "tree", "erosion", "pollution"]),
        ("Housing", ["house", "housing", "building"]),
        ("Education", ["school", "classroom"]),
    )

    def is_enabled(self) -> bool:
        return True

    def get_model_info(self) -> Dict[str, str]:
        return {"name": self.MODEL_NAME, "version": self.MODEL_VERSION}

    def classify_image(self, image_url: str) -> ImageAnalysis:
        url_lower = (image_url or "").lower()
        for category, keywords in self.RULES:
            matched = [k for k in keywords if k in url_lower]
            if matched:
                return ImageAnalysis(
                    category=category,
                    confidence=50.0,
                    description=f"Rule-based match on: {', '.join(matched)}",
                    detected_objects=matched,
                    analyzed_by=self.MODEL_NAME,
                )

        return ImageAnalysis(category=None, confidence=0.0, analyzed_by=self.MODEL_NAME)
