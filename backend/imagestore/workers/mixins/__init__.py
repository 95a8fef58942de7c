# backend/imagestore/workers/mixins/__init__.py
"""
Shared helpers for imagestore worker components.
"""

from .retry_manager import RetryManager

__all__ = ["RetryManager"]
