"""Repository classes for database operations."""

from .base import BaseRepository

__all__ = ["BaseRepository"]
