"""Runtime-defined tables on an embedded SQLite store."""

from .services.table_store import TableStore

__all__ = ["TableStore"]
