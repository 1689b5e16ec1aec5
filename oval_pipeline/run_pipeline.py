#!/usr/bin/env python3
"""
Main pipeline orchestrator for the OVAL advisory pipeline.

This module coordinates one batch per enabled updater:
1. Cursor: Read the updater's last processed id from DuckDB
2. Update: Fetch, decode and normalize the advisories newer than the cursor
3. Commit: Store vulnerabilities and the new cursor in one transaction
4. Quality: Run data quality checks over the stored vulnerabilities
5. Reporting: Export this run's vulnerabilities and a Markdown run report

An updater that fails leaves its cursor untouched; the next run retries the
same advisories. Other updaters still run.

Usage:
    python run_pipeline.py [--config path/to/config.yaml]
"""
import os
import sys
import json
import yaml
import logging
import argparse
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from ingestion import UPDATERS, BaseUpdater, UpdaterError
from normalization.models import Vulnerability
from observability.metrics import RunMetrics
from observability.quality_checks import QualityChecker
from observability.reporter import RunReporter
from storage.database import Database
from storage.keyvalue import KeyValueStore
from storage.loader import VulnerabilityLoader

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load and validate the YAML configuration.

    Args:
        config_path: Path to YAML file; environment variables are expanded

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If a required section is missing
    """
    path = Path(os.path.expandvars(config_path))
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        config = yaml.safe_load(f) or {}

    for key in ("database", "sources"):
        if key not in config:
            raise ValueError(f"Missing required config key: {key}")

    return config


class OvalPipeline:
    """
    Pipeline orchestrator that runs every enabled updater.

    Design decisions:
    - Single run_id tracks entire execution
    - Updaters never touch storage; the pipeline commits their responses
    - Vulnerabilities and cursor are committed together or not at all
    - Updater failures are recorded and don't halt the remaining updaters
    """

    def __init__(self, config_path: str = "config.yaml", updaters: Optional[List[BaseUpdater]] = None):
        """
        Initialize pipeline with configuration.

        Args:
            config_path: Path to YAML configuration file
            updaters: Prebuilt updaters, overriding enabled_updaters
        """
        self.config = load_config(config_path)

        self.db = Database(self.config["database"]["path"])
        self.key_values = KeyValueStore(self.db)
        self.loader = VulnerabilityLoader(self.db)
        self.quality_checker = QualityChecker(self.db)
        self.reporter = RunReporter()
        self.output_dir = Path(self.config.get("output", {}).get("dir", "output"))

        self.updaters = updaters if updaters is not None else self._build_updaters()

        logger.info(f"Pipeline initialized with config: {config_path}")

    def _build_updaters(self) -> List[BaseUpdater]:
        enabled = (self.config.get("updater") or {}).get("enabled_updaters") or list(UPDATERS)

        updaters = []
        for updater_id in enabled:
            if updater_id not in UPDATERS:
                raise ValueError(f"Unknown updater: {updater_id}")
            source_config = self.config["sources"].get(updater_id) or {}
            updaters.append(UPDATERS[updater_id](source_config))
        return updaters

    def run(self) -> RunMetrics:
        """
        Execute one batch for every updater.

        Returns:
            RunMetrics object with execution statistics

        Raises:
            RuntimeError: If a stage outside the updaters fails
        """
        run_id = self.db.get_current_run_id()
        metrics = RunMetrics(run_id=run_id, started_at=datetime.utcnow())

        logger.info(f"=== Starting Pipeline Run: {run_id} ===")

        try:
            logger.info("Stage 1: Initializing database schema")
            self.db.initialize_schema()

            logger.info("Stage 2: Running updaters")
            vulnerabilities = self._run_updaters(run_id, metrics)

            logger.info("Stage 3: Exporting vulnerabilities")
            self._export_vulnerabilities(run_id, vulnerabilities)

            logger.info("Stage 4: Running quality checks")
            quality_results = self.quality_checker.run_all_checks()

            logger.info("Stage 5: Generating reports")
            metrics.completed_at = datetime.utcnow()
            report = self.reporter.generate_report(metrics, quality_results)
            report_path = self.reporter.save_report(report, self.output_dir)
            self._record_run(metrics)

            duration = (metrics.completed_at - metrics.started_at).total_seconds()
            logger.info("=== Pipeline Complete ===")
            logger.info(f"Duration: {duration:.1f}s")
            logger.info(f"Vulnerabilities: {metrics.vulnerabilities_total}")
            logger.info(f"Report: {report_path}")

        except Exception as e:
            metrics.record_error(str(e))
            logger.error(f"Pipeline failed: {e}", exc_info=True)
            raise RuntimeError(f"Pipeline execution failed: {e}") from e

        return metrics

    def _run_updaters(self, run_id: str, metrics: RunMetrics) -> List[Vulnerability]:
        """
        Run each updater and commit its response.

        Args:
            run_id: Pipeline run identifier
            metrics: RunMetrics to update

        Returns:
            Vulnerabilities committed in this run
        """
        committed: List[Vulnerability] = []

        for updater in self.updaters:
            name = updater.updater_id
            failed = False
            try:
                cursor = self.key_values.get(updater.cursor_key)
                logger.info(f"  Updating {name} from cursor {cursor}")
                response = updater.run(cursor)

                loaded = self.loader.commit(name, response, run_id)
                metrics.record_response(response)
                committed.extend(response.vulnerabilities)

                logger.info(f"    Stored {loaded} vulnerabilities, cursor {response.flags or 'unchanged'}")

            except UpdaterError as e:
                failed = True
                logger.error(f"  Error updating {name}: {e}")
                metrics.record_error(f"Update failed for {name}: {e}", {"updater": name})

            except Exception as e:
                # storage or unexpected updater failure; the transaction was rolled back
                failed = True
                logger.error(f"  Unexpected error for {name}: {e}", exc_info=True)
                metrics.record_error(f"Update failed for {name}: {type(e).__name__}: {e}", {"updater": name})

            finally:
                updater.clean()

            health = updater.get_health()
            metrics.updater_health[name] = {
                "healthy": health.is_healthy and not failed,
                "vulnerabilities": health.vulnerabilities_fetched,
                "error": health.error_message or (metrics.issues[-1]["message"] if failed else None)
            }

        return committed

    def _export_vulnerabilities(self, run_id: str, vulnerabilities: List[Vulnerability]):
        """
        Export the vulnerabilities committed by this run to JSON.

        Output format:
        {
          "generated_at": "2024-01-11T12:00:00Z",
          "run_id": "run_20240111_120000",
          "vulnerability_count": 42,
          "vulnerabilities": [...]
        }
        """
        output = {
            "generated_at": datetime.utcnow().isoformat() + "Z",
            "run_id": run_id,
            "vulnerability_count": len(vulnerabilities),
            "vulnerabilities": [v.to_dict() for v in vulnerabilities]
        }

        output_path = self.output_dir / f"vulnerabilities-{run_id}.json"
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w") as f:
            json.dump(output, f, indent=2)

        logger.info(f"  Exported {len(vulnerabilities)} vulnerabilities to {output_path}")

    def _record_run(self, metrics: RunMetrics):
        conn = self.db.connect()
        conn.execute("DELETE FROM pipeline_runs WHERE run_id = ?", [metrics.run_id])
        conn.execute("""
            INSERT INTO pipeline_runs
            (run_id, started_at, completed_at, status, vulnerabilities, errors, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, [
            metrics.run_id,
            metrics.started_at,
            metrics.completed_at,
            "failed" if metrics.errors else "success",
            metrics.vulnerabilities_total,
            metrics.errors,
            json.dumps(metrics.to_dict())
        ])

    def close(self):
        self.db.close()


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run the OVAL advisory pipeline"
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    try:
        pipeline = OvalPipeline(config_path=args.config)
        try:
            metrics = pipeline.run()
        finally:
            pipeline.close()

        print("\n" + "=" * 60)
        print("Pipeline Summary")
        print("=" * 60)
        print(f"Run ID: {metrics.run_id}")
        print(f"Candidate documents: {metrics.candidates}")
        print(f"Vulnerabilities: {metrics.vulnerabilities_total}")
        print(f"Errors: {metrics.errors}")
        print("\nSeverity Distribution:")
        for severity, count in sorted(metrics.severity_counts.items()):
            print(f"  {severity:20} {count:4}")
        print("=" * 60)

        sys.exit(1 if metrics.errors else 0)

    except Exception as e:
        logger.error(f"Pipeline failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
