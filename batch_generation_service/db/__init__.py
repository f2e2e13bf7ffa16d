"""Database package."""

from .models import Base, BatchRecord
from .session import Database

__all__ = ["Base", "BatchRecord", "Database"]
