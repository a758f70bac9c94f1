"""
Core settings and environment variables for the Civic Triage service.
Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """

    # Application
    APP_NAME: str = "Civic Triage"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # CORS - Frontend URLs allowed to access this API
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Firebase/Firestore
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON
    REPORTS_COLLECTION: str = "reports"

    # In-memory report store for local development without Firebase credentials
    USE_MOCK_DB: bool = False

    # AI providers (embedding + image classification)
    AI_ENABLED: bool = True  # If False, deterministic mock providers are used
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    OPENAI_VISION_MODEL: str = "gpt-4o"
    EMBEDDING_DIMENSION: int = 1536

    # Duplicate detection
    ENABLE_DUPLICATE_DETECTION: bool = True
    ENABLE_VISION_ANALYSIS: bool = True
    SIMILARITY_THRESHOLD: float = 0.8
    SIMILAR_REPORTS_LIMIT: int = 5

    # Routing (OSRM-compatible HTTP API)
    ROUTING_BASE_URL: str = "https://router.project-osrm.org"
    ROUTING_PROFILE: str = "driving"  # driving | walking | cycling

    # Every outbound provider call is bounded by these
    PROVIDER_TIMEOUT_SECONDS: float = 10.0
    PROVIDER_MAX_RETRIES: int = 2
    PROVIDER_RETRY_DELAY_SECONDS: float = 0.5

    # Administrative boundaries (GeoJSON FeatureCollections)
    WARD_BOUNDARIES_PATH: str = "./data/wards.geojson"
    DISTRICT_BOUNDARIES_PATH: str = "./data/districts.geojson"

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"


# Global settings instance
settings = Settings()
