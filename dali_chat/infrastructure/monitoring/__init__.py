"""
Monitoring infrastructure: structured logging and error tracking.
"""

from .logging_service import (
    StructuredFormatter,
    setup_logging,
    get_logger,
    log_execution_time,
    log_conversation_event,
    log_recovered,
    ErrorTracker,
    initialize_logging,
    get_error_tracker
)

__all__ = [
    'StructuredFormatter',
    'setup_logging',
    'get_logger',
    'log_execution_time',
    'log_conversation_event',
    'log_recovered',
    'ErrorTracker',
    'initialize_logging',
    'get_error_tracker'
]
