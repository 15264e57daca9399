"""Retry scheduling with backoff policies."""

from .backoff import BackoffStrategy, ConstantBackoff, ExponentialBackoff, LinearBackoff
from .models import (
    ErrorDescriptor,
    RetryableOperation,
    RetryCancelledError,
    RetryError,
    RetryExhaustedError,
    RetryState,
    RetryStats,
    WorkError,
)
from .policy import RetryPolicy, RetryPolicyBook, default_policies
from .scheduler import RetryScheduler

__all__ = [
    "BackoffStrategy",
    "ConstantBackoff",
    "ErrorDescriptor",
    "ExponentialBackoff",
    "LinearBackoff",
    "RetryCancelledError",
    "RetryError",
    "RetryExhaustedError",
    "RetryPolicy",
    "RetryPolicyBook",
    "RetryScheduler",
    "RetryState",
    "RetryStats",
    "RetryableOperation",
    "WorkError",
    "default_policies",
]
