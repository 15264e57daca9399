"""Retry policy override models and loader exports."""

from .loader import PolicyLoadError, PolicyLoader, apply_override, load_policy_book
from .models import PolicyOverride

__all__ = [
    "PolicyLoadError",
    "PolicyLoader",
    "PolicyOverride",
    "apply_override",
    "load_policy_book",
]
