"""
Models package for the Clarifi privacy governance engine.

Usage:
    from src.models import Base, StoredDocument
"""

from src.models.base import Base
from src.models.document import StoredDocument

__all__ = [
    "Base",
    "StoredDocument",
]
