"""
Shared pytest fixtures for OVAL pipeline tests.

This module provides reusable fixtures that simplify test setup
and reduce code duplication across test modules.
"""
import sys
import tempfile
import threading
from pathlib import Path

import pytest
import requests

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from storage import Database

FIXTURES_DIR = Path(__file__).parent / "fixtures"

OVAL_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<oval_definitions xmlns="http://oval.mitre.org/XMLSchema/oval-definitions-5">
 <definitions>{definitions}</definitions>
</oval_definitions>
"""

DEFINITION_TEMPLATE = """
  <definition id="oval:com.oracle.elsa:def:{elsa_id}" version="501" class="patch">
   <metadata>
    <title>ELSA-{elsa_id}:  {package} security update ({severity})</title>
    <reference source="elsa" ref_id="ELSA-{elsa_id}" ref_url="http://linux.oracle.com/errata/ELSA-{elsa_id}.html"/>
    <description>{package} update</description>
    <advisory>
     <severity>{severity}</severity>
    </advisory>
   </metadata>
   <criteria operator="AND">
    <criterion comment="Oracle Linux {release} is installed"/>
    <criterion comment="{package} is earlier than {version}"/>
    <criterion comment="{package} is signed with the Oracle Linux {release} key"/>
   </criteria>
  </definition>
"""


def make_oval(*definitions: str) -> bytes:
    """Wrap definition snippets into an OVAL document."""
    return OVAL_TEMPLATE.format(definitions="".join(definitions)).encode()


def make_definition(elsa_id, package="bash", version="0:4.2.46-1.el7", release=7, severity="MODERATE") -> str:
    return DEFINITION_TEMPLATE.format(
        elsa_id=elsa_id,
        package=package,
        version=version,
        release=release,
        severity=severity,
    )


def make_listing(*elsa_ids) -> str:
    """Feed index page as served by the vendor."""
    lines = ["<html><body><pre>"]
    for elsa_id in elsa_ids:
        name = f"com.oracle.elsa-{elsa_id}.xml"
        lines.append(f'<a href="{name}">{name}</a>   29-Jun-2015 10:00   4.1K')
    lines.append("</pre></body></html>")
    return "\n".join(lines)


class FakeClient:
    """
    Stand-in for HttpClient serving a fixed listing and documents.

    Documents missing from the mapping answer with HTTP 404; ids in
    failing raise a connection error.
    """

    def __init__(self, listing: str, documents=None, failing=(), listing_error=None):
        self.listing = listing
        self.documents = documents or {}
        self.failing = {str(elsa_id) for elsa_id in failing}
        self.listing_error = listing_error
        self.requested = []
        self.closed = False
        self._lock = threading.Lock()

    def get_text(self, url, headers=None):
        with self._lock:
            self.requested.append(url)
        if self.listing_error is not None:
            raise self.listing_error
        return self.listing

    def get_bytes(self, url, headers=None):
        with self._lock:
            self.requested.append(url)
        elsa_id = url.rsplit("-", 1)[-1][:-len(".xml")]
        if elsa_id in self.failing:
            raise requests.ConnectionError(f"connection reset fetching {url}")
        if elsa_id not in self.documents:
            raise requests.HTTPError(f"HTTP 404 for {url}")
        return self.documents[elsa_id]

    def close(self):
        self.closed = True


@pytest.fixture
def fixture_bytes():
    """Load a fixture document by file name."""
    def load(name: str) -> bytes:
        return (FIXTURES_DIR / name).read_bytes()
    return load


@pytest.fixture
def xerces_document(fixture_bytes):
    """ELSA-2015-1193: one CVE, three packages on Oracle Linux 7."""
    return fixture_bytes("com.oracle.elsa-20151193.xml")


@pytest.fixture
def firefox_document(fixture_bytes):
    """ELSA-2015-1207: two CVEs, firefox on Oracle Linux 5 and 6."""
    return fixture_bytes("com.oracle.elsa-20151207.xml")


@pytest.fixture
def temp_db():
    """
    Create a temporary database for testing.

    Yields:
        Database instance with schema initialized

    Cleanup:
        Automatically closes connection and removes file after test
    """
    with tempfile.NamedTemporaryFile(suffix=".duckdb", delete=True) as f:
        db_path = f.name

    db = Database(db_path)
    db.initialize_schema()
    yield db
    db.close()

    Path(db_path).unlink(missing_ok=True)
