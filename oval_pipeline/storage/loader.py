"""
Loader for updater results.

Writes the vulnerabilities of an UpdateResponse and its cursor flags in one
transaction, so a cursor never advances past data that was not stored.

Design decisions:
- Stable vulnerability IDs hashed from updater + name
- Affected packages merge by (namespace, feature_name): a CVE listed by
  several advisories accumulates the packages of all of them
- DELETE + INSERT for idempotent loads
"""
import hashlib
from datetime import datetime
from typing import Iterable

from ingestion.base_updater import UpdateResponse
from normalization.models import Vulnerability
from .database import Database
from .keyvalue import KeyValueStore


def vulnerability_id(updater: str, name: str) -> str:
    return hashlib.md5(f"{updater}:{name}".encode()).hexdigest()[:16]


class VulnerabilityLoader:
    """
    Loads updater responses into the vulnerability tables.

    Each commit:
    1. Replaces the vulnerability rows by ID
    2. Replaces affected packages with the same namespace and name
    3. Stores the response flags (cursor)
    4. Commits, or rolls everything back on error
    """

    def __init__(self, database: Database):
        """
        Initialize loader with database connection.

        Args:
            database: Database instance to load data into
        """
        self.db = database
        self.key_values = KeyValueStore(database)

    def commit(self, updater: str, response: UpdateResponse, run_id: str) -> int:
        """
        Store an update response atomically.

        Args:
            updater: Updater identifier (e.g. "oracle")
            response: Result of the updater's batch
            run_id: Pipeline run identifier

        Returns:
            Number of vulnerability records written
        """
        conn = self.db.connect()
        conn.begin()
        try:
            loaded = self.load_vulnerabilities(updater, response.vulnerabilities, run_id)
            for key, value in response.flags.items():
                self.key_values.set(key, value)
            conn.commit()
        except Exception:
            conn.rollback()
            raise

        return loaded

    def load_vulnerabilities(self, updater: str, vulnerabilities: Iterable[Vulnerability], run_id: str) -> int:
        """
        Write vulnerabilities without transaction handling.

        Args:
            updater: Updater identifier
            vulnerabilities: Records produced by the updater
            run_id: Pipeline run identifier

        Returns:
            Number of records loaded
        """
        conn = self.db.connect()
        now = datetime.utcnow()

        loaded = 0
        for vuln in vulnerabilities:
            vuln_id = vulnerability_id(updater, vuln.name)

            conn.execute("DELETE FROM vulnerabilities WHERE vulnerability_id = ?", [vuln_id])
            conn.execute("""
                INSERT INTO vulnerabilities
                (vulnerability_id, updater, name, link, severity, description, run_id, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                vuln_id,
                updater,
                vuln.name,
                vuln.link,
                vuln.severity.value,
                vuln.description,
                run_id,
                now
            ])

            for package in vuln.affected:
                conn.execute("""
                    DELETE FROM vulnerability_affected
                    WHERE vulnerability_id = ? AND namespace = ? AND feature_name = ?
                """, [vuln_id, package.namespace, package.feature_name])
                conn.execute("""
                    INSERT INTO vulnerability_affected
                    (vulnerability_id, namespace, version_format, feature_name, feature_type,
                     affected_version, fixed_in_version, run_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, [
                    vuln_id,
                    package.namespace,
                    package.version_format,
                    package.feature_name,
                    package.feature_type,
                    package.affected_version,
                    package.fixed_in_version,
                    run_id
                ])
            loaded += 1

        return loaded
