"""
Unified Configuration System for the Dali chat pipeline

This module provides a centralized configuration system for the conversation
synchronization and agent invocation layers, supports environment-based
overrides, and provides type-safe configuration access.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import streamlit as st
import os
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class APIConfig:
    """Remote endpoints used by the chat pipeline"""
    ai_api_base_url: str = ""
    agent_endpoint_url: str = ""
    app_name: str = "Dali"

    @property
    def conversations_api_url(self) -> str:
        """Base URL of the conversation store API"""
        return f"{self.ai_api_base_url.rstrip('/')}/api"

    @classmethod
    def from_env(cls) -> 'APIConfig':
        """Load API config from environment variables"""
        return cls(
            ai_api_base_url=os.getenv("AI_API_BASE_URL", ""),
            agent_endpoint_url=os.getenv("MAESTRO_API_URL", ""),
            app_name=os.getenv("DALI_APP_NAME", "Dali")
        )

    @classmethod
    def from_secrets(cls) -> 'APIConfig':
        """Load API config from Streamlit secrets"""
        # In test environment, prefer environment variables
        if os.getenv("PYTEST_CURRENT_TEST") is not None:
            return cls.from_env()

        try:
            return cls(
                ai_api_base_url=st.secrets.get("AI_API_BASE_URL", os.getenv("AI_API_BASE_URL", "")),
                agent_endpoint_url=st.secrets.get("MAESTRO_API_URL", os.getenv("MAESTRO_API_URL", "")),
                app_name=st.secrets.get("DALI_APP_NAME", os.getenv("DALI_APP_NAME", "Dali"))
            )
        except Exception:
            # Fallback to environment variables if secrets not available
            return cls.from_env()


@dataclass
class AgentConfig:
    """Agent invocation and response normalization settings"""
    max_attempts: int = 3
    retry_delay: float = 1.0  # seconds, fixed between attempts
    attempt_timeout: float = 240.0  # seconds, per attempt
    max_table_rows: int = 100
    max_raw_text_length: int = 10000

    @classmethod
    def from_env(cls) -> 'AgentConfig':
        """Load agent config with environment overrides"""
        defaults = cls()
        return cls(
            max_attempts=_env_int("DALI_AGENT_MAX_ATTEMPTS", defaults.max_attempts),
            retry_delay=_env_float("DALI_AGENT_RETRY_DELAY", defaults.retry_delay),
            attempt_timeout=_env_float("DALI_AGENT_TIMEOUT", defaults.attempt_timeout),
            max_table_rows=defaults.max_table_rows,
            max_raw_text_length=defaults.max_raw_text_length
        )


@dataclass
class PersistenceConfig:
    """Remote conversation store settings"""
    request_timeout: float = 30.0


@dataclass
class ConversationConfig:
    """Conversation defaults and title derivation bounds"""
    default_title: str = "Nueva conversación"
    title_short_length: int = 30
    title_max_length: int = 50
    title_word_limit: int = 45
    error_message: str = (
        "Lo siento, hubo un error al procesar tu solicitud. "
        "Por favor, inténtalo de nuevo."
    )


@dataclass
class LoggingConfig:
    """Logging and monitoring configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    enable_file_logging: bool = False
    log_file: str = "logs/dali-chat.log"


@dataclass
class AppConfig:
    """Main application configuration"""
    api: APIConfig = field(default_factory=APIConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Environment settings
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    @classmethod
    def load(cls) -> 'AppConfig':
        """Load configuration with environment overrides"""
        config = cls()

        config.api = APIConfig.from_secrets()
        config.agent = AgentConfig.from_env()

        # Apply environment-specific overrides
        if config.environment == "production":
            config.debug = False
            config.logging.level = "WARNING"
            config.logging.enable_file_logging = True
            config.logging.log_file = "logs/prod-dali-chat.log"
        elif config.environment == "development":
            config.debug = True
            config.logging.level = "DEBUG"

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if not self.api.ai_api_base_url:
            errors.append("AI_API_BASE_URL is required for conversation persistence")

        if not self.api.agent_endpoint_url:
            errors.append("MAESTRO_API_URL is required for agent invocation")

        if self.agent.max_attempts < 1:
            errors.append("Agent max_attempts must be at least 1")

        if self.conversation.title_word_limit > self.conversation.title_max_length:
            errors.append("Title word limit cannot exceed the title max length")

        if self.logging.enable_file_logging:
            log_dir = Path(self.logging.log_file).parent
            if not log_dir.exists():
                log_dir.mkdir(parents=True, exist_ok=True)

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Non-secret view of the configuration for diagnostics"""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "conversations_api_url": self.api.conversations_api_url,
            "agent_endpoint_url": self.api.agent_endpoint_url,
            "agent_max_attempts": self.agent.max_attempts,
            "agent_retry_delay": self.agent.retry_delay,
            "agent_attempt_timeout": self.agent.attempt_timeout,
        }


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = AppConfig.load()

        # Validate configuration
        errors = _config.validate()
        if errors:
            import warnings
            for error in errors:
                warnings.warn(f"Configuration error: {error}")

    return _config


def reload_config() -> AppConfig:
    """Reload configuration (useful for testing)"""
    global _config
    _config = None
    return get_config()
