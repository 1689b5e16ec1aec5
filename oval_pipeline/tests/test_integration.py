"""
End-to-end integration tests for the OVAL pipeline.

These tests run OvalPipeline against a temporary DuckDB file with an
OracleUpdater whose HTTP client is a FakeClient, ensuring cursor handling,
storage and reporting work together correctly.
"""
import json

import pytest
import requests
import yaml

from ingestion import OracleUpdater
from run_pipeline import OvalPipeline, load_config
from storage import Database, KeyValueStore

from conftest import FakeClient, make_definition, make_listing, make_oval


@pytest.fixture
def config_path(tmp_path):
    config = {
        "database": {"path": str(tmp_path / "pipeline.duckdb")},
        "updater": {"enabled_updaters": ["oracle"]},
        "sources": {"oracle": {"max_workers": 2}},
        "output": {"dir": str(tmp_path / "output")},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config))
    return path


@pytest.fixture
def feed(xerces_document, firefox_document):
    return {
        "20151193": xerces_document,
        "20151207": firefox_document,
    }


def run_once(config_path, client):
    pipeline = OvalPipeline(str(config_path), updaters=[OracleUpdater({"max_workers": 2}, client=client)])
    try:
        metrics = pipeline.run()
        cursor = pipeline.key_values.get("oracleUpdater")
    finally:
        pipeline.close()
    return metrics, cursor


class TestEndToEndPipeline:
    """Integration tests for complete pipeline flow."""

    def test_full_pipeline_flow(self, config_path, feed, tmp_path):
        """
        Test complete pipeline: listing -> documents -> storage -> reports.

        This validates the happy path through the entire system.
        """
        client = FakeClient(make_listing(20151193, 20151207), feed)

        metrics, cursor = run_once(config_path, client)

        assert metrics.errors == 0
        assert metrics.candidates == 2
        assert metrics.vulnerabilities_total == 3
        assert metrics.possibilities_discarded == 1
        assert cursor == "20151207"
        assert metrics.updater_health["oracle"]["healthy"]
        assert client.closed

        with Database(str(tmp_path / "pipeline.duckdb")) as db:
            names = db.connect().execute("SELECT name FROM vulnerabilities ORDER BY name").fetchall()
            status = db.connect().execute("SELECT status FROM pipeline_runs").fetchone()[0]
        assert [n[0] for n in names] == ["CVE-2015-0252", "CVE-2015-2722", "CVE-2015-2724"]
        assert status == "success"

        output_dir = tmp_path / "output"
        exports = list(output_dir.glob("vulnerabilities-*.json"))
        assert len(exports) == 1
        exported = json.loads(exports[0].read_text())
        assert exported["vulnerability_count"] == 3
        assert list(output_dir.glob("run-report-*.md"))

    def test_second_run_fetches_nothing_new(self, config_path, feed):
        run_once(config_path, FakeClient(make_listing(20151193, 20151207), feed))

        client = FakeClient(make_listing(20151193, 20151207), feed)
        metrics, cursor = run_once(config_path, client)

        assert metrics.candidates == 0
        assert metrics.vulnerabilities_total == 0
        assert cursor == "20151207"
        assert client.requested == ["https://linux.oracle.com/oval/"]

    def test_new_documents_are_picked_up(self, config_path, feed):
        run_once(config_path, FakeClient(make_listing(20151193), feed))

        feed["20151300"] = make_oval(make_definition("2015-1300", package="bash"))
        client = FakeClient(make_listing(20151193, 20151207, 20151300), feed)
        metrics, cursor = run_once(config_path, client)

        assert metrics.candidates == 2
        assert cursor == "20151300"


class TestFailureHandling:
    """Failed updates must not move the cursor."""

    def test_failed_update_keeps_cursor(self, config_path, feed, tmp_path):
        run_once(config_path, FakeClient(make_listing(20151193), feed))

        client = FakeClient(make_listing(20151193, 20151207, 20151300), feed, failing=[20151300])
        metrics, cursor = run_once(config_path, client)

        assert metrics.errors == 1
        assert cursor == "20151193"
        assert not metrics.updater_health["oracle"]["healthy"]
        assert "TransportError" in metrics.updater_health["oracle"]["error"]

        with Database(str(tmp_path / "pipeline.duckdb")) as db:
            names = db.connect().execute("SELECT name FROM vulnerabilities").fetchall()
        assert [n[0] for n in names] == ["CVE-2015-0252"]

    def test_listing_failure_is_recorded(self, config_path, feed):
        client = FakeClient("", listing_error=requests.ConnectionError("no route to host"))
        metrics, cursor = run_once(config_path, client)

        assert metrics.errors == 1
        assert cursor is None
        assert client.closed


class TestConfiguration:
    """Config loading and updater construction."""

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_missing_required_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"database": {"path": ":memory:"}}))

        with pytest.raises(ValueError, match="sources"):
            load_config(str(path))

    def test_environment_variables_in_path(self, config_path, monkeypatch):
        monkeypatch.setenv("OVAL_CONFIG_DIR", str(config_path.parent))
        assert load_config("$OVAL_CONFIG_DIR/config.yaml")["updater"]["enabled_updaters"] == ["oracle"]

    def test_updaters_built_from_config(self, config_path):
        pipeline = OvalPipeline(str(config_path))
        try:
            assert [u.updater_id for u in pipeline.updaters] == ["oracle"]
            assert pipeline.updaters[0].max_workers == 2
        finally:
            pipeline.updaters[0].clean()
            pipeline.close()

    def test_unknown_updater(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            "database": {"path": str(tmp_path / "db.duckdb")},
            "updater": {"enabled_updaters": ["debian"]},
            "sources": {},
        }))

        with pytest.raises(ValueError, match="Unknown updater"):
            OvalPipeline(str(path))


def test_stored_cursor_is_used(config_path, feed, tmp_path):
    """A cursor written by an earlier run limits the candidates."""
    with Database(str(tmp_path / "pipeline.duckdb")) as db:
        db.initialize_schema()
        KeyValueStore(db).set("oracleUpdater", "20151200")

    client = FakeClient(make_listing(20151193, 20151207), feed)
    metrics, cursor = run_once(config_path, client)

    assert metrics.candidates == 1
    assert cursor == "20151207"
