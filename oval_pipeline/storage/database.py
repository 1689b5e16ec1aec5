"""
Database connection and schema management for the OVAL pipeline.

This module provides:
- DuckDB connection lifecycle management
- Key-value table holding updater cursors
- Vulnerability and affected package tables
- Pipeline run metadata tracking

Design decisions:
- DuckDB as a single-file embedded store, no server to run
- No primary keys: rows are replaced with DELETE + INSERT inside one
  transaction, which DuckDB's eager unique checks would reject
- JSON column for run metadata
"""
import duckdb
from datetime import datetime
from typing import Optional


class Database:
    """
    Manages DuckDB connection and schema initialization.

    This class is responsible for:
    - Creating and maintaining a single database connection
    - Initializing cursor, vulnerability and run tables
    - Providing run ID generation for pipeline execution tracking
    """

    def __init__(self, db_path: str = "oval_pipeline.duckdb"):
        """
        Initialize database manager.

        Args:
            db_path: Path to DuckDB database file (created if doesn't exist),
                or ":memory:"
        """
        self.db_path = db_path
        self.conn: Optional[duckdb.DuckDBPyConnection] = None

    def connect(self) -> duckdb.DuckDBPyConnection:
        """
        Get or create database connection.

        Returns:
            Active DuckDB connection
        """
        if self.conn is None:
            self.conn = duckdb.connect(self.db_path)
        return self.conn

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def initialize_schema(self):
        """
        Create all required tables if they don't exist.

        Tables created:
        - key_values: Updater cursors and other string flags
        - vulnerabilities: One row per (updater, vulnerability name)
        - vulnerability_affected: Affected packages per vulnerability
        - pipeline_runs: Pipeline execution metadata
        """
        conn = self.connect()

        conn.execute("""
            CREATE TABLE IF NOT EXISTS key_values (
                key VARCHAR NOT NULL,
                value VARCHAR,
                updated_at TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS vulnerabilities (
                vulnerability_id VARCHAR NOT NULL,
                updater VARCHAR NOT NULL,
                name VARCHAR NOT NULL,
                link VARCHAR,
                severity VARCHAR,
                description VARCHAR,
                run_id VARCHAR,
                updated_at TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS vulnerability_affected (
                vulnerability_id VARCHAR NOT NULL,
                namespace VARCHAR NOT NULL,
                version_format VARCHAR,
                feature_name VARCHAR NOT NULL,
                feature_type VARCHAR,
                affected_version VARCHAR,
                fixed_in_version VARCHAR,
                run_id VARCHAR
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS pipeline_runs (
                run_id VARCHAR NOT NULL,
                started_at TIMESTAMP,
                completed_at TIMESTAMP,
                status VARCHAR,
                vulnerabilities INTEGER,
                errors INTEGER,
                metadata JSON
            )
        """)

    def get_current_run_id(self) -> str:
        """
        Generate a unique run ID for this pipeline execution.

        Returns:
            Run ID in format: run_YYYYMMDD_HHMMSS
        """
        return f"run_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}"

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
