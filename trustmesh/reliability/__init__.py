"""
Reliability module: retry with exponential backoff.
"""

from trustmesh.reliability.retry import RetryPolicy, RetryStats, calculate_backoff, retry_with_backoff

__all__ = [
    "RetryPolicy",
    "RetryStats",
    "calculate_backoff",
    "retry_with_backoff",
]
