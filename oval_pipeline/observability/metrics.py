"""
Metrics collection for pipeline runs.

This module provides RunMetrics, a dataclass that tracks the observability
metrics of a single pipeline execution:
- Candidate documents selected and advisories decoded
- Vulnerabilities and affected packages produced
- Possibilities discarded by the feature extractor
- Severity distribution of the produced vulnerabilities
- Proposed cursors and updater health
- Errors encountered

Design decisions:
- Single metrics object per run, shared by every updater
- Defaultdict counters for severities
- Serializable to_dict() for storage in the pipeline_runs table
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from ingestion.base_updater import UpdateResponse


@dataclass
class RunMetrics:
    """
    Metrics for a single pipeline run.

    Designed to be serialized to JSON for storage in the pipeline_runs table.
    """
    run_id: str
    started_at: datetime
    completed_at: datetime = None

    # Core counts
    candidates: int = 0
    advisories_decoded: int = 0
    vulnerabilities_total: int = 0
    affected_packages: int = 0
    possibilities_discarded: int = 0
    errors: int = 0

    # Key: severity value, Value: count
    severity_counts: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    # Key: cursor key, Value: proposed cursor
    cursors: Dict[str, str] = field(default_factory=dict)

    # Key: updater_id, Value: dict with health status
    updater_health: Dict[str, Dict] = field(default_factory=dict)

    issues: List[Dict] = field(default_factory=list)

    def record_response(self, response: UpdateResponse):
        """
        Accumulate the counts of a successful update.

        Args:
            response: UpdateResponse returned by an updater
        """
        self.candidates += len(response.candidates)
        self.advisories_decoded += response.advisories_decoded
        self.possibilities_discarded += response.possibilities_discarded
        self.vulnerabilities_total += len(response.vulnerabilities)
        for vuln in response.vulnerabilities:
            self.severity_counts[vuln.severity.value] += 1
            self.affected_packages += len(vuln.affected)
        self.cursors.update(response.flags)

    def record_error(self, error: str, context: Dict = None):
        """
        Record an error encountered during the run.

        Args:
            error: Error message
            context: Optional dict with additional context (e.g., updater)
        """
        self.errors += 1
        self.issues.append({
            "type": "error",
            "message": error,
            "context": context or {}
        })

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert metrics to dictionary for JSON serialization.

        Returns:
            Dictionary representation suitable for JSON storage
        """
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "candidates": self.candidates,
            "advisories_decoded": self.advisories_decoded,
            "vulnerabilities_total": self.vulnerabilities_total,
            "affected_packages": self.affected_packages,
            "possibilities_discarded": self.possibilities_discarded,
            "errors": self.errors,
            "severity_counts": dict(self.severity_counts),
            "cursors": self.cursors,
            "updater_health": self.updater_health,
            "issues": self.issues
        }
