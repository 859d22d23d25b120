"""Repository classes for Campaign Reports storage.

This package provides repository classes that encapsulate database operations
for specific entity types.
"""

from .base import BaseRepository

__all__ = [
    "BaseRepository",
]
