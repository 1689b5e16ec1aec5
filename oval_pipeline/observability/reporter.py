"""
Generate human-readable run reports in Markdown format.

This module provides RunReporter, which transforms RunMetrics and quality check
results into formatted Markdown reports.

Report sections:
- Header with run metadata (ID, timestamp, duration)
- Summary table with core metrics
- Severity distribution of produced vulnerabilities
- Proposed cursors
- Data quality check results
- Updater health status

Design decisions:
- Markdown output for readability and version control friendliness
- Uses tabulate library for table formatting (GitHub-flavored)
- Reports saved with timestamp for historical tracking
"""
from datetime import datetime
from typing import List
from pathlib import Path
from tabulate import tabulate

from .metrics import RunMetrics
from .quality_checks import QualityCheckResult


class RunReporter:
    """Generates Markdown reports from pipeline run metrics."""

    def generate_report(
        self,
        metrics: RunMetrics,
        quality_results: List[QualityCheckResult]
    ) -> str:
        """
        Generate full run report in Markdown format.

        Args:
            metrics: RunMetrics object from completed pipeline run
            quality_results: List of quality check results

        Returns:
            Markdown-formatted report as string
        """
        lines = []

        lines.append("# Pipeline Run Report")
        lines.append(f"**Run ID:** {metrics.run_id}")
        lines.append(f"**Started:** {metrics.started_at.isoformat()}")
        if metrics.completed_at:
            duration = (metrics.completed_at - metrics.started_at).total_seconds()
            lines.append(f"**Duration:** {duration:.1f} seconds")
        lines.append("")

        lines.append("## Summary")
        summary_data = [
            ["Candidate Documents", metrics.candidates],
            ["Advisories Decoded", metrics.advisories_decoded],
            ["Vulnerabilities", metrics.vulnerabilities_total],
            ["Affected Packages", metrics.affected_packages],
            ["Discarded Possibilities", metrics.possibilities_discarded],
            ["Errors", metrics.errors],
        ]
        lines.append(tabulate(summary_data, headers=["Metric", "Value"], tablefmt="github"))
        lines.append("")

        if metrics.severity_counts:
            lines.append("## Severity Distribution")
            severity_data = [[k, v] for k, v in sorted(metrics.severity_counts.items())]
            lines.append(tabulate(severity_data, headers=["Severity", "Count"], tablefmt="github"))
            lines.append("")

        if metrics.cursors:
            lines.append("## Cursors")
            cursor_data = [[k, v] for k, v in sorted(metrics.cursors.items())]
            lines.append(tabulate(cursor_data, headers=["Key", "Value"], tablefmt="github"))
            lines.append("")

        lines.append("## Data Quality Checks")
        quality_data = []
        for qr in quality_results:
            status = "✓" if qr.passed else "✗"
            quality_data.append([status, qr.check_name, qr.message])
        lines.append(tabulate(quality_data, headers=["Status", "Check", "Details"], tablefmt="github"))
        lines.append("")

        if metrics.updater_health:
            lines.append("## Updater Health")
            health_data = []
            for updater, health in metrics.updater_health.items():
                status = "✓" if health.get("healthy", False) else "✗"
                health_data.append([status, updater, health.get("vulnerabilities", 0), health.get("error") or ""])
            lines.append(tabulate(health_data, headers=["Status", "Updater", "Vulnerabilities", "Error"], tablefmt="github"))
            lines.append("")

        return "\n".join(lines)

    def save_report(self, report: str, output_dir: Path) -> Path:
        """
        Save report to file with timestamp.

        Args:
            report: Markdown report content
            output_dir: Directory to save report in

        Returns:
            Path to saved report file
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.utcnow().strftime("%Y%m%d-%H%M%S")
        filepath = output_dir / f"run-report-{timestamp}.md"
        filepath.write_text(report)
        return filepath
