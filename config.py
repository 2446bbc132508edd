"""Configuration for geoping regional latency service."""
import os
import json
import logging
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List

logger = logging.getLogger("geoping.config")

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application settings
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8001"))
    ALLOWED_ORIGINS: List[str] = ["*"]
    RATE_LIMIT: int = int(os.getenv("RATE_LIMIT", "120"))

    # Probing service
    PROBE_BASE_URL: str = os.getenv("PROBE_BASE_URL", "https://checker.openstatus.dev/ping")
    PROBE_SECRET: str = os.getenv("PROBE_SECRET", "")
    PROBE_REGIONS: List[str] = json.loads(os.getenv("PROBE_REGIONS", '["ams", "gru", "syd"]'))
    PROBE_TIMEOUT: float = float(os.getenv("PROBE_TIMEOUT", "30"))

    # Fan-out
    FANOUT_DEADLINE: float = float(os.getenv("FANOUT_DEADLINE", "45"))
    MAX_CONCURRENCY: int = int(os.getenv("MAX_CONCURRENCY", "32"))

    # Session cache
    CACHE_BACKEND: str = os.getenv("CACHE_BACKEND", "mongo")
    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    DB_NAME: str = os.getenv("DB_NAME", "geoping")
    SESSION_COLLECTION: str = os.getenv("SESSION_COLLECTION", "sessions")
    SESSION_TTL_SECONDS: int = int(os.getenv("SESSION_TTL_SECONDS", "86400"))  # 1 day
    DB_CONNECTION_TIMEOUT: int = int(os.getenv("DB_CONNECTION_TIMEOUT", "3"))

    # JWT Authentication settings
    TOKEN_SECRET: str = os.getenv("TOKEN_SECRET", "geoping_secret_key_change_in_production")
    ALLOW_DEFAULT_TOKEN: bool = os.getenv("ALLOW_DEFAULT_TOKEN", "false").lower() == "true"
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")

    def validate_settings(self):
        """Validate critical settings."""
        if self.TOKEN_SECRET == "geoping_secret_key_change_in_production":
            if not self.DEBUG:
                raise ValueError("TOKEN_SECRET must be changed in production!")

        if not self.PROBE_SECRET and not self.DEBUG:
            raise ValueError("PROBE_SECRET is required")

        if not self.PROBE_REGIONS:
            raise ValueError("PROBE_REGIONS must name at least one region")

        if len(set(self.PROBE_REGIONS)) != len(self.PROBE_REGIONS):
            raise ValueError("PROBE_REGIONS contains duplicates")

        if self.FANOUT_DEADLINE <= 0 or self.PROBE_TIMEOUT <= 0:
            raise ValueError("FANOUT_DEADLINE and PROBE_TIMEOUT must be positive")

        if self.MAX_CONCURRENCY < 1:
            raise ValueError("MAX_CONCURRENCY must be at least 1")

        if self.CACHE_BACKEND not in ("mongo", "memory"):
            raise ValueError(f"Unknown CACHE_BACKEND: {self.CACHE_BACKEND}")

settings = Settings()

# Validate settings on import
try:
    settings.validate_settings()
except ValueError as e:
    if not settings.DEBUG:
        raise e
    else:
        logger.warning(f"Configuration warning: {e}")

def get_environment_info() -> Dict[str, object]:
    """Get environment information for debugging."""
    return {
        "kubernetes": bool(os.environ.get("KUBERNETES_SERVICE_HOST")),
        "debug": settings.DEBUG,
        "allow_default_token": settings.ALLOW_DEFAULT_TOKEN,
        "regions": settings.PROBE_REGIONS,
        "cache_backend": settings.CACHE_BACKEND,
        "session_ttl_seconds": settings.SESSION_TTL_SECONDS,
        "fanout_deadline": settings.FANOUT_DEADLINE,
        "jwt_algorithm": settings.JWT_ALGORITHM
    }
