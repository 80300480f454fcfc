"""
Application configuration for RadioDx.
"""

import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    """Application settings for the inference service, batching and upload limits."""

    # Inference service settings
    INFERENCE_API_URL: str = os.getenv("INFERENCE_API_URL", "https://oi-server.onrender.com/chat/completions")
    INFERENCE_API_KEY: str = os.getenv("INFERENCE_API_KEY", "")
    INFERENCE_CUSTOMER_ID: str = os.getenv("INFERENCE_CUSTOMER_ID", "")
    INFERENCE_MODEL: str = os.getenv("INFERENCE_MODEL", "openrouter/anthropic/claude-sonnet-4")
    INFERENCE_TIMEOUT_SECONDS: float = float(os.getenv("INFERENCE_TIMEOUT_SECONDS", "300"))
    INFERENCE_MAX_TOKENS: int = int(os.getenv("INFERENCE_MAX_TOKENS", "4000"))
    INFERENCE_TEMPERATURE: float = float(os.getenv("INFERENCE_TEMPERATURE", "0.3"))

    # Batch processing settings
    BATCH_SIZE: int = int(os.getenv("BATCH_SIZE", "20"))
    BATCH_PACING_SECONDS: float = float(os.getenv("BATCH_PACING_SECONDS", "2"))
    RUN_TIMEOUT_SECONDS: float = float(os.getenv("RUN_TIMEOUT_SECONDS", "900"))  # 0 disables
    MAX_TRACKED_SESSIONS: int = int(os.getenv("MAX_TRACKED_SESSIONS", "500"))

    # Upload limits
    MAX_FILES: int = int(os.getenv("MAX_FILES", "200"))
    MAX_FILE_SIZE_MB: int = int(os.getenv("MAX_FILE_SIZE_MB", "50"))
    MAX_TOTAL_SIZE_MB: int = int(os.getenv("MAX_TOTAL_SIZE_MB", "2048"))
    SUPPORTED_MEDIA_TYPES: tuple = (
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/bmp",
        "image/tiff",
        "image/webp",
        "image/dicom",
    )

    # Application settings
    APP_NAME: str = os.getenv("APP_NAME", "RadioDx")
    VERSION: str = os.getenv("VERSION", "1.0.0")
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    DIAGNOSE_RATE_LIMIT: str = os.getenv("DIAGNOSE_RATE_LIMIT", "10/minute")
    CORS_ORIGINS: str = os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    )

    def validate(self):
        """Validate required settings."""
        required = [
            "INFERENCE_API_URL",
            "INFERENCE_API_KEY",
        ]
        missing = [field for field in required if not getattr(self, field)]
        if missing:
            raise ValueError(f"Missing required environment variables: {missing}")
        if self.BATCH_SIZE <= 0:
            raise ValueError(f"BATCH_SIZE must be positive, got {self.BATCH_SIZE}")

    @property
    def max_file_size_bytes(self) -> int:
        return self.MAX_FILE_SIZE_MB * 1024 * 1024

    @property
    def max_total_size_bytes(self) -> int:
        return self.MAX_TOTAL_SIZE_MB * 1024 * 1024

    @property
    def run_timeout(self):
        """Whole-run deadline in seconds, or None when disabled."""
        return self.RUN_TIMEOUT_SECONDS if self.RUN_TIMEOUT_SECONDS > 0 else None

    @property
    def cors_origins(self) -> list:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def upload_limits(self) -> dict:
        """Get upload limits for clients."""
        return {
            "maxFiles": self.MAX_FILES,
            "maxFileSize": self.max_file_size_bytes,
            "maxTotalSize": self.max_total_size_bytes,
            "supportedTypes": list(self.SUPPORTED_MEDIA_TYPES),
            "batchSize": self.BATCH_SIZE,
        }

settings = Settings()
