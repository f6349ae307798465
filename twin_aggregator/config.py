"""
Application settings.

Values come from the Function App's application settings (environment
variables) or a local .env file. ADT_SERVICE_URL is required; everything
else has a default matching the deployed twin graph.
"""

from typing import Optional

from pydantic import ValidationError
from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError
from .retry_utils import RetryPolicy

DEFAULT_RELATIONSHIP = "sensors"
DEFAULT_PROPERTY = "environmental_info"


class Settings(BaseSettings):
    # Twin Store
    ADT_SERVICE_URL: Optional[str] = None

    # Twin graph conventions
    SENSOR_MODEL_PREFIX: str = "dtmi:ttnlwstack"
    SENSOR_RELATIONSHIP_NAME: str = DEFAULT_RELATIONSHIP
    ENVIRONMENTAL_INFO_PROPERTY: str = DEFAULT_PROPERTY
    DECODED_PAYLOAD_PROPERTY: str = "decodedPayload"

    # Read-after-write backoff
    CONSISTENCY_MAX_ATTEMPTS: int = 5
    CONSISTENCY_INITIAL_DELAY: float = 0.5
    CONSISTENCY_BACKOFF_FACTOR: float = 2.0
    CONSISTENCY_MAX_DELAY: float = 4.0
    CONSISTENCY_TIMEOUT: float = 15.0

    DEBUG: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=max(1, self.CONSISTENCY_MAX_ATTEMPTS),
            initial_delay=self.CONSISTENCY_INITIAL_DELAY,
            backoff_factor=self.CONSISTENCY_BACKOFF_FACTOR,
            max_delay=self.CONSISTENCY_MAX_DELAY,
            timeout=self.CONSISTENCY_TIMEOUT,
        )


def load_settings() -> Settings:
    """
    Load and validate settings.

    Raises:
        ConfigurationError: If ADT_SERVICE_URL is missing or empty, or a
            setting has a value of the wrong type
    """
    try:
        settings = Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid application settings: {e}") from e

    url = (settings.ADT_SERVICE_URL or "").strip()
    if not url:
        raise ConfigurationError(
            "Application setting 'ADT_SERVICE_URL' not set",
            setting="ADT_SERVICE_URL"
        )
    settings.ADT_SERVICE_URL = url
    return settings
