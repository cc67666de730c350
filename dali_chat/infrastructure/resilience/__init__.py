"""
Resilience infrastructure for retry logic around remote calls.
"""

from .retry_service import (
    RETRIABLE_ERRORS,
    UpstreamHTTPError,
    RetryPolicy,
    RetryStatus,
    RetryService,
    get_retry_service
)

__all__ = [
    'RETRIABLE_ERRORS',
    'UpstreamHTTPError',
    'RetryPolicy',
    'RetryStatus',
    'RetryService',
    'get_retry_service'
]
