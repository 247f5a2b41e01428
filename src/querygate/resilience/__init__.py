"""
Resilience primitives.

Components:
    - RetryPolicy: Attempt budget and exponential backoff schedule
"""

from .retry import DEFAULT_RETRY_POLICY, RetryPolicy

__all__ = [
    "DEFAULT_RETRY_POLICY",
    "RetryPolicy",
]
