"""
Data quality checks for pipeline outputs.

This module implements QualityChecker, which runs SQL-based validation checks
against the vulnerability tables after each pipeline run.

Checks implemented:
- Named vulnerabilities: Every vulnerability must have a name
- Vulnerabilities have packages: No vulnerability without affected rows
- No orphan packages: Affected rows must reference a stored vulnerability
- Namespace format: Namespaces must look like <distro>:<release>
- CVE format: Names starting with CVE- must match CVE-YYYY-NNNN
- Unknown severities: Share of unmapped severity labels stays small

Design decisions:
- Each check returns a QualityCheckResult with pass/fail and details
- Checks are SQL-based (run against database, not Python)
- Unknown severity threshold is configurable
"""
from typing import List, Dict, Any
from dataclasses import dataclass


@dataclass
class QualityCheckResult:
    """
    Result of a single quality check.

    Attributes:
        check_name: Unique identifier for the check
        passed: True if check passed, False otherwise
        message: Human-readable summary of the result
        details: Optional dict with additional context (e.g., counts)
    """
    check_name: str
    passed: bool
    message: str
    details: Dict[str, Any] = None


class QualityChecker:
    """
    Runs data quality checks against pipeline outputs.

    Each check method executes a SQL query against the database and returns
    a QualityCheckResult indicating pass/fail status.
    """

    def __init__(self, database, unknown_severity_ratio: float = 0.05):
        """
        Initialize quality checker.

        Args:
            database: Database instance with active connection
            unknown_severity_ratio: Highest accepted share of Unknown severities
        """
        self.db = database
        self.unknown_severity_ratio = unknown_severity_ratio

    def run_all_checks(self) -> List[QualityCheckResult]:
        """
        Run all quality checks.

        Returns:
            List of QualityCheckResult objects, one per check
        """
        return [
            self.check_named_vulnerabilities(),
            self.check_vulnerabilities_have_packages(),
            self.check_no_orphan_packages(),
            self.check_namespace_format(),
            self.check_cve_format(),
            self.check_unknown_severities(),
        ]

    def _count(self, query: str) -> int:
        return self.db.connect().execute(query).fetchone()[0]

    def check_named_vulnerabilities(self) -> QualityCheckResult:
        """Every stored vulnerability needs a non-empty name."""
        result = self._count("""
            SELECT count(*) FROM vulnerabilities
            WHERE name IS NULL OR trim(name) = ''
        """)

        return QualityCheckResult(
            check_name="named_vulnerabilities",
            passed=result == 0,
            message=f"{result} vulnerabilities without name" if result > 0 else "All vulnerabilities are named",
            details={"unnamed_count": result}
        )

    def check_vulnerabilities_have_packages(self) -> QualityCheckResult:
        """
        Ensure every vulnerability affects at least one package.

        Advisories without affected packages are dropped during normalization,
        so any hit here means a partial write.
        """
        result = self._count("""
            SELECT count(*) FROM vulnerabilities v
            WHERE NOT EXISTS (
                SELECT 1 FROM vulnerability_affected a
                WHERE a.vulnerability_id = v.vulnerability_id
            )
        """)

        return QualityCheckResult(
            check_name="vulnerabilities_have_packages",
            passed=result == 0,
            message=f"{result} vulnerabilities without packages" if result > 0 else "All vulnerabilities have packages",
            details={"missing_count": result}
        )

    def check_no_orphan_packages(self) -> QualityCheckResult:
        result = self._count("""
            SELECT count(*) FROM vulnerability_affected a
            WHERE NOT EXISTS (
                SELECT 1 FROM vulnerabilities v
                WHERE v.vulnerability_id = a.vulnerability_id
            )
        """)

        return QualityCheckResult(
            check_name="no_orphan_packages",
            passed=result == 0,
            message=f"{result} orphan affected packages" if result > 0 else "No orphan affected packages",
            details={"orphan_count": result}
        )

    def check_namespace_format(self) -> QualityCheckResult:
        """
        Check that namespaces match <distro>:<release>.

        Uses SQL SIMILAR TO (regex) for format validation.
        """
        result = self._count("""
            SELECT count(*) FROM vulnerability_affected
            WHERE namespace NOT SIMILAR TO '[a-z]+:[0-9]+'
        """)

        return QualityCheckResult(
            check_name="namespace_format",
            passed=result == 0,
            message=f"{result} invalid namespaces" if result > 0 else "All namespaces valid",
            details={"invalid_count": result}
        )

    def check_cve_format(self) -> QualityCheckResult:
        """Check that CVE-named vulnerabilities match CVE-YYYY-NNNN+."""
        result = self._count("""
            SELECT count(*) FROM vulnerabilities
            WHERE name LIKE 'CVE-%'
              AND name NOT SIMILAR TO 'CVE-[0-9]{4}-[0-9]{4,}'
        """)

        return QualityCheckResult(
            check_name="cve_format",
            passed=result == 0,
            message=f"{result} invalid CVE formats" if result > 0 else "All CVE IDs valid",
            details={"invalid_count": result}
        )

    def check_unknown_severities(self) -> QualityCheckResult:
        """
        Detect a high share of Unknown severities.

        A rising share usually means the vendor introduced a new label.
        """
        conn = self.db.connect()
        total, unknown = conn.execute("""
            SELECT count(*), count(*) FILTER (WHERE severity = 'Unknown')
            FROM vulnerabilities
        """).fetchone()

        ratio = unknown / total if total else 0.0
        return QualityCheckResult(
            check_name="unknown_severities",
            passed=ratio <= self.unknown_severity_ratio,
            message=f"{unknown} of {total} vulnerabilities with unknown severity" if unknown else "All severities mapped",
            details={"unknown_count": unknown, "total": total}
        )
