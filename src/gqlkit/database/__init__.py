"""
Database module for gqlkit
"""

from .connection import (
    create_tables,
    get_async_session,
    get_engine,
    get_session,
    init_database,
    reset_database,
)
from .handle import Collection, Database, InvalidQueryError, db

__all__ = [
    "Collection",
    "Database",
    "InvalidQueryError",
    "create_tables",
    "db",
    "get_async_session",
    "get_engine",
    "get_session",
    "init_database",
    "reset_database",
]
