"""
Engine Configuration
Environment-driven settings for the docket engine
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EngineConfig:
    """Configuration for the filing pipeline and its engines"""
    database_url: str = "sqlite:///docket_engine.db"
    bedrock_model_id: str = "us.anthropic.claude-sonnet-4-20250514-v1:0"
    bedrock_region: str = "us-east-1"
    classification_timeout: float = 30.0  # seconds
    classification_max_tokens: int = 1024
    max_classification_chars: int = 8000
    min_text_length_for_ai: int = 100
    adjust_for_court_holidays: bool = False
    log_level: str = "INFO"
    audit_log_dir: Optional[str] = "logs"

    @classmethod
    def from_env(cls, env_file: str = ".env.local") -> "EngineConfig":
        """
        Build configuration from environment variables

        Args:
            env_file: dotenv file loaded before reading the environment

        Returns:
            EngineConfig populated from DOCKET_* variables
        """

        load_dotenv(env_file)
        defaults = cls()

        return cls(
            database_url=os.getenv("DOCKET_DATABASE_URL", defaults.database_url),
            bedrock_model_id=os.getenv("DOCKET_BEDROCK_MODEL_ID", defaults.bedrock_model_id),
            bedrock_region=os.getenv("DOCKET_BEDROCK_REGION", defaults.bedrock_region),
            classification_timeout=float(
                os.getenv("DOCKET_CLASSIFICATION_TIMEOUT", defaults.classification_timeout)
            ),
            classification_max_tokens=int(
                os.getenv("DOCKET_CLASSIFICATION_MAX_TOKENS", defaults.classification_max_tokens)
            ),
            max_classification_chars=int(
                os.getenv("DOCKET_MAX_CLASSIFICATION_CHARS", defaults.max_classification_chars)
            ),
            min_text_length_for_ai=int(
                os.getenv("DOCKET_MIN_TEXT_LENGTH_FOR_AI", defaults.min_text_length_for_ai)
            ),
            adjust_for_court_holidays=_env_bool(
                "DOCKET_ADJUST_FOR_COURT_HOLIDAYS", defaults.adjust_for_court_holidays
            ),
            log_level=os.getenv("DOCKET_LOG_LEVEL", defaults.log_level),
            audit_log_dir=os.getenv("DOCKET_AUDIT_LOG_DIR", defaults.audit_log_dir) or None,
        )
