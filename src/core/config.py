"""Configuration management with environment support and validation.

This module provides:
- Type-safe configuration with Pydantic
- Environment variable loading (one prefix per section)
- Environment-specific .env files
- Configuration schema export
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class OllamaConfig(BaseSettings):
    """Local model provider configuration."""

    host: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL"
    )
    model: str = Field(
        default="qwen2.5:3b",
        description="Generation model used for summarize/write/translate/proofread/rewrite"
    )
    embedding_model: str = Field(
        default="nomic-embed-text",
        description="Embedding model"
    )
    temperature: float = Field(
        default=0.7,
        description="Generation temperature",
        ge=0.0,
        le=2.0
    )
    timeout: float = Field(
        default=60.0,
        description="Request timeout in seconds",
        ge=1.0
    )

    @field_validator('host')
    def validate_host(cls, v):
        """Validate Ollama URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError(
                f'host must start with http:// or https://, got: {v}'
            )
        return v.rstrip('/')

    model_config = {
        "env_prefix": "OLLAMA_",
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore"
    }


class GeminiConfig(BaseSettings):
    """Remote generative-language API configuration."""

    api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key (fallback provider is disabled without it)"
    )
    model: str = Field(
        default="gemini-1.5-flash-latest",
        description="Generation model"
    )
    embedding_model: str = Field(
        default="text-embedding-004",
        description="Embedding model"
    )
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="API base URL"
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=1024, gt=0)
    timeout: float = Field(default=30.0, ge=1.0)

    @field_validator('base_url')
    def validate_base_url(cls, v):
        """Strip trailing slash from the base URL."""
        return v.rstrip('/')

    model_config = {
        "env_prefix": "GEMINI_",
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore"
    }


class RetryConfig(BaseSettings):
    """Bounded exponential backoff for provider calls."""

    max_attempts: int = Field(
        default=3,
        description="Total attempts per provider call",
        ge=1,
        le=10
    )
    base_delay: float = Field(
        default=0.5,
        description="Delay before the second attempt, in seconds",
        ge=0.0
    )
    multiplier: float = Field(
        default=2.0,
        description="Backoff growth factor between attempts",
        ge=1.0
    )

    model_config = {
        "env_prefix": "RETRY_",
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore"
    }


class SearchConfig(BaseSettings):
    """Similarity search defaults."""

    default_limit: int = Field(default=5, ge=1, le=100)
    similarity_threshold: float = Field(default=0.5, ge=-1.0, le=1.0)
    duplicate_threshold: float = Field(default=0.95, ge=-1.0, le=1.0)
    cluster_threshold: float = Field(default=0.7, ge=-1.0, le=1.0)
    diversity_threshold: float = Field(default=0.85, ge=-1.0, le=1.0)

    model_config = {
        "env_prefix": "SEARCH_",
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore"
    }


class BrainConfig(BaseSettings):
    """Memory corpus configuration."""

    database_path: str = Field(
        default="./data/web_brain.db",
        description="SQLite database holding memory records"
    )
    encryption_enabled: bool = Field(
        default=True,
        description="Encrypt summaries before they are stored"
    )
    encryption_passphrase: Optional[str] = Field(
        default=None,
        description="Passphrase for key derivation (stored random key when unset)"
    )
    key_path: Optional[str] = Field(
        default=None,
        description="File holding the generated key (default: <database_path>.key)"
    )
    min_text_length: int = Field(
        default=200,
        description="Minimum sanitized page text length to capture",
        ge=0
    )
    summary_max_length: int = Field(default=500, gt=0)
    max_input_length: int = Field(
        default=10000,
        description="Page text beyond this many characters is not sent to the AI provider",
        gt=0
    )

    def resolved_key_path(self) -> Optional[str]:
        """Key file location; None for an in-memory database."""
        if self.key_path:
            return self.key_path
        if self.database_path == ":memory:":
            return None
        return f"{self.database_path}.key"

    model_config = {
        "env_prefix": "BRAIN_",
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore"
    }


class AppConfig(BaseSettings):
    """Application-level configuration."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    json_logs: bool = Field(default=False, description="Render logs as JSON")
    log_file: Optional[str] = Field(default=None, description="Rotating log file path")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, description="Rotate the log file at this size", gt=0)
    log_backup_count: int = Field(default=5, description="Rotated log files to keep", ge=0)
    log_to_console: bool = Field(default=True, description="Also log to stderr")
    environment: str = Field(
        default="development",
        description="Environment name (development, production, testing)"
    )

    @field_validator('log_level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                f'Invalid log_level: {v}. Must be one of: {", ".join(valid_levels)}'
            )
        return v_upper

    @field_validator('environment')
    def validate_environment(cls, v):
        """Validate environment name."""
        valid_envs = ['development', 'production', 'testing', 'staging']
        v_lower = v.lower()
        if v_lower not in valid_envs:
            raise ValueError(
                f'Invalid environment: {v}. Must be one of: {", ".join(valid_envs)}'
            )
        return v_lower

    model_config = {
        "env_prefix": "APP_",
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore"
    }


class Settings(BaseSettings):
    """Main settings class combining all configurations.

    Examples:
        >>> settings = Settings()
        >>> settings.search.similarity_threshold
        0.5
        >>> settings = Settings(retry=RetryConfig(base_delay=0))
    """

    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    brain: BrainConfig = Field(default_factory=BrainConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }

    @classmethod
    def load_for_environment(cls, environment: str) -> "Settings":
        """Load settings for a specific environment.

        Reads ``.env.<environment>`` when present, otherwise ``.env``.

        Args:
            environment: Environment name (development, production, testing)

        Returns:
            Settings instance
        """
        env_file = f".env.{environment}"
        if not Path(env_file).exists():
            env_file = ".env"
        return cls(_env_file=env_file)

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app.environment == "production"

    def has_fallback_provider(self) -> bool:
        """Check whether the remote provider has credentials."""
        return bool(self.gemini.api_key)

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        return self.model_json_schema()

    def to_dict(self) -> Dict[str, Any]:
        """Export current configuration as dictionary, secrets masked."""
        data = {
            "ollama": self.ollama.model_dump(),
            "gemini": self.gemini.model_dump(),
            "retry": self.retry.model_dump(),
            "search": self.search.model_dump(),
            "brain": self.brain.model_dump(),
            "app": self.app.model_dump(),
        }
        if data["gemini"]["api_key"]:
            data["gemini"]["api_key"] = "***"
        if data["brain"]["encryption_passphrase"]:
            data["brain"]["encryption_passphrase"] = "***"
        return data

    def validate_all(self) -> List[str]:
        """Collect configuration warnings.

        Returns:
            List of validation messages (empty if all valid)
        """
        messages = []

        if not self.has_fallback_provider():
            messages.append("WARNING: GEMINI_API_KEY not set, fallback provider unavailable")

        if self.search.duplicate_threshold < self.search.similarity_threshold:
            messages.append(
                "WARNING: duplicate_threshold is below similarity_threshold"
            )

        if self.is_production():
            if not self.brain.encryption_enabled:
                messages.append("WARNING: encryption disabled in production environment")
            if self.brain.encryption_enabled and not self.brain.encryption_passphrase:
                messages.append(
                    "WARNING: no encryption passphrase, the key file next to the database protects all summaries"
                )

        return messages


_settings: Optional[Settings] = None


def get_settings(reload: bool = False) -> Settings:
    """Get or create the process settings.

    Args:
        reload: Force reload settings from environment

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None or reload:
        env = os.getenv("APP_ENVIRONMENT", "development")
        _settings = Settings.load_for_environment(env)
    return _settings


def reset_settings():
    """Reset cached settings (useful for testing)."""
    global _settings
    _settings = None
