"""
Reliability module: bounded retry for torn local reads.
"""

from backedsession.reliability.retry import RetryContext, RetryPolicy, calculate_backoff

__all__ = [
    "RetryContext",
    "RetryPolicy",
    "calculate_backoff",
]
