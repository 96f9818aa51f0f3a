"""
Configuration Management for the Price List Extractor
"""
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent
    LOGS_DIR: Path = PROJECT_ROOT / "logs"

    # Input validation
    MIN_TEXT_LENGTH: int = 20  # Shorter text cannot plausibly hold a price table

    # Pattern extraction
    PATTERN_LOOKAHEAD_LINES: int = 2  # Lines scanned after a code line looking for its price
    GENERIC_MIN_PRICE: float = 10.0  # Filters page numbers and quantities in the generic grammars

    # Model-assisted fallback (last cascade stage)
    MODEL_FALLBACK_ENABLED: bool = True
    MODEL_CHUNK_SIZE: int = 12000  # chars per request, bounded by provider input limits
    MODEL_MAX_CONCURRENCY: int = 3  # Parallel chunk requests per extraction
    MODEL_CHUNK_TIMEOUT: float = 60.0  # seconds per chunk; a timed-out chunk is skipped
    MODEL_MAX_TOKENS: int = 4000
    MODEL_TEMPERATURE: float = 0.0

    # Groq API Configuration (PRIMARY)
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"
    GROQ_TIMEOUT: int = 45

    # AWS Bedrock Configuration (FALLBACK)
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    BEDROCK_MODEL_ID: str = "us.anthropic.claude-3-5-haiku-20241022-v1:0"
    BEDROCK_TIMEOUT: int = 55

    # Retry Configuration
    MAX_RETRIES: int = 3
    RETRY_MIN_WAIT: int = 2  # seconds
    RETRY_MAX_WAIT: int = 10  # seconds
    RETRY_MULTIPLIER: int = 2

    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 3001
    API_RELOAD: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._create_directories()

    def _create_directories(self) -> None:
        """Create necessary directories if they don't exist"""
        self.LOGS_DIR.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
