"""Storage layer: PostgreSQL connection management and schema."""

from aquaguard.storage.database import Database
from aquaguard.storage.schema import create_tables

__all__ = ["Database", "create_tables"]
