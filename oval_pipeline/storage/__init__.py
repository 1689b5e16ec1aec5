"""
Storage layer for the OVAL pipeline.

This module provides data persistence using DuckDB.

Components:
- Database: Connection management and schema initialization
- KeyValueStore: Updater cursors
- VulnerabilityLoader: Atomic load of vulnerabilities plus cursor

Usage:
    from storage import Database, KeyValueStore, VulnerabilityLoader

    db = Database("oval_pipeline.duckdb")
    db.initialize_schema()

    cursor = KeyValueStore(db).get("oracleUpdater")
    response = updater.run(cursor)
    VulnerabilityLoader(db).commit("oracle", response, run_id)
"""

from .database import Database
from .keyvalue import KeyValueStore
from .loader import VulnerabilityLoader, vulnerability_id

__all__ = [
    "Database",
    "KeyValueStore",
    "VulnerabilityLoader",
    "vulnerability_id",
]
