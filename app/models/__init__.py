"""
Database models for the meal nutrition analyzer.

Import all models here so metadata.create_all() sees every table.
"""

from app.database import Base
from app.models.entry import Entry, ENTRY_TYPES

__all__ = [
    "Base",
    "Entry",
    "ENTRY_TYPES",
]
