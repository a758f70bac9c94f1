"""
OpenAI providers - embeddings and vision classification over the HTTP API.

Both providers:
- Enforce PROVIDER_TIMEOUT_SECONDS on every request
- Retry transient failures (network errors, 429, 5xx) PROVIDER_MAX_RETRIES times
- Raise a typed ProviderUnavailable subclass once retries are exhausted
"""

from app.core.errors import ClassifierUnavailable, EmbeddingUnavailable
from app.core.settings import settings
from app.models.report import ImageAnalysis
from app.services.ai_plugin.base import EmbeddingProvider, ImageClassifier, NATIONAL_CATEGORIES
from app.utils.retry import call_with_retry
from typing import Dict, List, Optional
import logging
import json
import requests

logger = logging.getLogger(__name__)

# Input is truncated to stay under the model's token limit
MAX_EMBEDDING_INPUT_CHARS = 8000

VISION_PROMPT = f"""You are an AI assistant analyzing images of community problems for a civic crowdsourcing platform.

Analyze this image and provide:
1. The most appropriate category from this list: {", ".join(NATIONAL_CATEGORIES)}
2. A confidence score (0-100) for your category selection
3. A brief description of what you see (max 100 words)
4. Severity assessment:
   - Level: low, medium, high, or critical
   - Score: 0-100
   - Key factors contributing to severity (e.g., "blocking road", "health hazard", "structural damage")
5. List of key objects/issues detected in the image

Respond in JSON format:
{{
  "category": "category name",
  "confidence": 85,
  "description": "Brief description of the problem",
  "severity": {{"level": "medium", "score": 45, "factors": ["factor1", "factor2"]}},
  "detectedObjects": ["object1", "object2"]
}}

If you cannot determine the category or the image is unclear, set confidence to 0 and category to null."""


class _TransientProviderError(Exception):
    """Retryable failure (rate limit or server error)."""


def _post_json(url: str, api_key: str, payload: Dict, timeout: float) -> Dict:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    response = requests.post(url, headers=headers, json=payload, timeout=timeout)
    if response.status_code == 429 or response.status_code >= 500:
        raise _TransientProviderError(f"OpenAI API returned status {response.status_code}")
    if response.status_code != 200:
        raise ValueError(f"OpenAI API returned status {response.status_code}: {response.text[:200]}")
    return response.json()


_RETRYABLE = (requests.exceptions.Timeout, requests.exceptions.ConnectionError, _TransientProviderError)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    OpenAI embeddings (text-embedding-3-small by default, 1536 dimensions).
    """

    MODEL_VERSION = "1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        base_url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_EMBEDDING_MODEL
        self._dimension = dimension or settings.EMBEDDING_DIMENSION
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.enabled = bool(self.api_key and self.api_key.strip())

        if self.enabled:
            logger.info(f"OpenAI embedding provider initialized: {self.model} ({self._dimension} dims)")
        else:
            logger.info("OpenAI embedding provider disabled: no API key configured")

    @property
    def dimension(self) -> int:
        return self._dimension

    def is_enabled(self) -> bool:
        return self.enabled

    def get_model_info(self) -> Dict[str, str]:
        return {"name": self.model, "version": self.MODEL_VERSION}

    def embed(self, text: str) -> List[float]:
        if not self.enabled:
            raise EmbeddingUnavailable("OpenAI API key not configured")

        payload = {"model": self.model, "input": (text or "")[:MAX_EMBEDDING_INPUT_CHARS]}
        logger.info(f"Generating text embedding (text length {len(text or '')})")

        try:
            data = call_with_retry(
                lambda: _post_json(
                    f"{self.base_url}/embeddings", self.api_key, payload, settings.PROVIDER_TIMEOUT_SECONDS
                ),
                max_retries=settings.PROVIDER_MAX_RETRIES,
                delay_seconds=settings.PROVIDER_RETRY_DELAY_SECONDS,
                retry_on=_RETRYABLE,
                description="OpenAI embedding",
            )
        except (requests.exceptions.RequestException, _TransientProviderError, ValueError) as e:
            raise EmbeddingUnavailable(f"Embedding request failed: {e}")

        try:
            embedding = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError):
            raise EmbeddingUnavailable("Invalid embedding response")

        if not isinstance(embedding, list) or len(embedding) != self._dimension:
            raise EmbeddingUnavailable(
                f"Invalid embedding response: expected {self._dimension} dims",
                {"received": len(embedding) if isinstance(embedding, list) else None},
            )
        return [float(v) for v in embedding]


class OpenAIVisionClassifier(ImageClassifier):
    """
    OpenAI vision model used to classify report photos.
    """

    MODEL_VERSION = "1"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_VISION_MODEL
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.enabled = bool(self.api_key and self.api_key.strip()) and settings.ENABLE_VISION_ANALYSIS

    def is_enabled(self) -> bool:
        return self.enabled

    def get_model_info(self) -> Dict[str, str]:
        return {"name": self.model, "version": self.MODEL_VERSION}

    def classify_image(self, image_url: str) -> ImageAnalysis:
        if not self.enabled:
            raise ClassifierUnavailable("Vision analysis disabled or OpenAI API key not configured")

        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": VISION_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_url, "detail": "low"}},
                    ],
                }
            ],
            "max_tokens": 500,
            "response_format": {"type": "json_object"},
        }

        logger.info(f"Starting image analysis for {image_url}")
        try:
            data = call_with_retry(
                lambda: _post_json(
                    f"{self.base_url}/chat/completions", self.api_key, payload, settings.PROVIDER_TIMEOUT_SECONDS
                ),
                max_retries=settings.PROVIDER_MAX_RETRIES,
                delay_seconds=settings.PROVIDER_RETRY_DELAY_SECONDS,
                retry_on=_RETRYABLE,
                description="OpenAI vision",
            )
            content = data.get("choices", [{}])[0].get("message", {}).get("content")
            if not content:
                raise ValueError("Empty response from Vision API")
            parsed = json.loads(content)
        except (requests.exceptions.RequestException, _TransientProviderError, ValueError) as e:
            raise ClassifierUnavailable(f"Image analysis failed: {e}")

        return self._parse_analysis(parsed)

    def _parse_analysis(self, parsed: Dict) -> ImageAnalysis:
        category = parsed.get("category")
        confidence = parsed.get("confidence") or 0
        if category and category not in NATIONAL_CATEGORIES:
            logger.warning(f"Vision API returned invalid category: {category}")
            category = None
            confidence = 0

        severity = parsed.get("severity") or {}
        analysis = ImageAnalysis(
            category=category or None,
            confidence=float(confidence) if category else 0.0,
            description=parsed.get("description"),
            severity_level=severity.get("level"),
            severity_score=severity.get("score"),
            factors=severity.get("factors") or [],
            detected_objects=parsed.get("detectedObjects") or [],
            analyzed_by=self.model,
        )
        logger.info(f"Image analysis completed: category={analysis.category} confidence={analysis.confidence}")
        return analysis
