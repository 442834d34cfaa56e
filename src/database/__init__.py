"""Database module for Local Web Brain."""

from src.database.memory_repository import MemoryRepository, SQLiteMemoryRepository

__all__ = ['MemoryRepository', 'SQLiteMemoryRepository']
