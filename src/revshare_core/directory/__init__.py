"""Ownership directory sources (SQLite and REST)."""
from .rest_source import RestOwnershipSource
from .schema import init_directory_schema
from .sqlite_source import SQLiteOwnershipSource

__all__ = [
    "RestOwnershipSource",
    "SQLiteOwnershipSource",
    "init_directory_schema",
]
