"""
Configuration for the supplier & material-request backend.
"""

# Load environment variables FIRST
from dotenv import load_dotenv
load_dotenv()

import os
from typing import List, Optional


class Config:
    """Base configuration."""

    # Database
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "sales_dashboard")

    # Purchase-order automation webhook
    PO_WEBHOOK_URL: str = os.getenv("PO_WEBHOOK_URL", "")
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "10"))

    # Region reference APIs
    COUNTRY_API_URL: str = os.getenv("COUNTRY_API_URL", "https://api.first.org/data/v1/countries")
    PROVINCE_API_URL: str = os.getenv("PROVINCE_API_URL", "https://wilayah.id/api/provinces.json")
    CITY_API_URL: str = os.getenv("CITY_API_URL", "https://wilayah.id/api/regencies/{province}.json")

    # Branch / department / project-type tables (JSON override, optional)
    REFERENCE_DATA_PATH: str = os.getenv("REFERENCE_DATA_PATH", "")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: str = os.getenv("LOG_FILE", "")

    # API
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("PORT", os.getenv("API_PORT", "8000")))
    CORS_ORIGINS: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    def validate(self) -> None:
        """Validate configuration."""
        if self.LOG_LEVEL.upper() not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError(f"Invalid LOG_LEVEL: {self.LOG_LEVEL}")

        if self.PO_WEBHOOK_URL and not self.PO_WEBHOOK_URL.startswith(("http://", "https://")):
            raise ValueError("PO_WEBHOOK_URL must be an http(s) URL")

        if self.HTTP_TIMEOUT <= 0:
            raise ValueError("HTTP_TIMEOUT must be positive")


class DevelopmentConfig(Config):
    """Development configuration."""
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    """Production configuration."""
    LOG_LEVEL = "INFO"


class TestConfig(Config):
    """Test configuration."""
    LOG_LEVEL = "DEBUG"
    LOG_FILE = ""
    PO_WEBHOOK_URL = "http://automation.test/webhook/make-po"


def get_config(env: str = None) -> Config:
    """Get configuration based on environment."""
    if env is None:
        env = os.getenv("ENV", "development").lower()

    if env == "production":
        config = ProductionConfig()
    elif env == "test":
        config = TestConfig()
    else:
        config = DevelopmentConfig()

    config.validate()
    return config
