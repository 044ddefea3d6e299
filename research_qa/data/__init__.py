"""Storage for the paper library and answered questions."""

from research_qa.data.database import DatabaseManager, SQLPaperLibrary, SQLPersistence

__all__ = ["DatabaseManager", "SQLPaperLibrary", "SQLPersistence"]
