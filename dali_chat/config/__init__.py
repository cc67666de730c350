"""
Configuration for the Dali chat pipeline.
"""

from .app_config import (
    AppConfig,
    APIConfig,
    AgentConfig,
    PersistenceConfig,
    ConversationConfig,
    LoggingConfig,
    get_config,
    reload_config
)

__all__ = [
    'AppConfig',
    'APIConfig',
    'AgentConfig',
    'PersistenceConfig',
    'ConversationConfig',
    'LoggingConfig',
    'get_config',
    'reload_config'
]
