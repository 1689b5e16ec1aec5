"""
Tests for vulnerability synthesis from advisories.
"""
import pytest

from normalization.models import (
    AffectedPackage,
    Advisory,
    Criteria,
    CveReference,
    Reference,
    Severity,
)
from normalization.vulnerability import (
    build_vulnerabilities,
    description,
    link,
    name,
    severity,
)


def make_advisory(**overrides):
    fields = dict(
        title="ADV-2017-1234: openssl security update (IMPORTANT)",
        description="Fixes CVE-2017-3735",
        severity="IMPORTANT",
        criteria=Criteria(),
        references=(
            Reference(source="CVE", uri="https://example.com/cve", id="CVE-2017-3735"),
            Reference(source="elsa", uri="http://linux.oracle.com/errata/ADV-2017-1234.html", id="ADV-2017-1234"),
        ),
        cves=(),
    )
    fields.update(overrides)
    return Advisory(**fields)


PACKAGES = (
    AffectedPackage(namespace="oracle:7", feature_name="openssl", fixed_in_version="1:1.0.2k-8.el7"),
    AffectedPackage(namespace="oracle:6", feature_name="openssl", fixed_in_version="1:1.0.1e-57.el6"),
)


class TestFields:
    """Field derivation helpers."""

    def test_name_is_title_prefix(self):
        assert name(make_advisory()) == "ADV-2017-1234"

    def test_name_is_stripped(self):
        assert name(make_advisory(title="\n  ELSA-2015-1193:  xerces-c update\n")) == "ELSA-2015-1193"

    def test_name_stops_at_first_separator(self):
        advisory = make_advisory(title="ADV-2017-1234: Moderate: sample package update")
        assert name(advisory) == "ADV-2017-1234"

    def test_name_without_separator_is_whole_title(self):
        assert name(make_advisory(title="  ELSA-2015-1193 \n")) == "ELSA-2015-1193"

    def test_description_collapses_line_breaks(self):
        """Each run of line breaks becomes a single space."""
        advisory = make_advisory(description="A\n\n\nB\n\nC\nD")
        assert description(advisory) == "A B C D"

    def test_description_handles_carriage_returns(self):
        assert description(make_advisory(description="A\r\nB\rC")) == "A B C"

    def test_link_uses_reference_source(self):
        assert link(make_advisory()) == "http://linux.oracle.com/errata/ADV-2017-1234.html"
        assert link(make_advisory(), source="CVE") == "https://example.com/cve"

    def test_link_missing(self):
        assert link(make_advisory(references=())) == ""


class TestSeverity:
    """Vendor severity labels."""

    @pytest.mark.parametrize("label, expected", [
        ("N/A", Severity.NEGLIGIBLE),
        ("LOW", Severity.LOW),
        ("MODERATE", Severity.MEDIUM),
        ("IMPORTANT", Severity.HIGH),
        ("HIGH", Severity.HIGH),
        ("CRITICAL", Severity.CRITICAL),
        ("important", Severity.HIGH),
        (" Moderate ", Severity.MEDIUM),
    ])
    def test_known_labels(self, label, expected):
        assert severity(label) is expected

    def test_unknown_label(self, caplog):
        assert severity("SEVERE") is Severity.UNKNOWN
        assert "could not determine vulnerability severity" in caplog.text

    def test_empty_label(self):
        assert severity("") is Severity.UNKNOWN


class TestBuildVulnerabilities:
    """Record synthesis."""

    def test_no_packages_no_vulnerabilities(self):
        advisory = make_advisory(cves=(CveReference(id="CVE-2017-3735"),))
        assert build_vulnerabilities(advisory, []) == []

    def test_no_cves_yields_advisory_record(self):
        vulnerabilities = build_vulnerabilities(make_advisory(), PACKAGES)

        assert len(vulnerabilities) == 1
        vuln = vulnerabilities[0]
        assert vuln.name == "ADV-2017-1234"
        assert vuln.link == "http://linux.oracle.com/errata/ADV-2017-1234.html"
        assert vuln.severity is Severity.HIGH
        assert vuln.affected == PACKAGES

    def test_one_record_per_cve(self):
        advisory = make_advisory(
            severity="MODERATE",
            cves=(
                CveReference(id="CVE-2017-3735", impact="low", href="https://linux.oracle.com/cve/CVE-2017-3735.html"),
                CveReference(id=" CVE-2017-3736 ", href="https://linux.oracle.com/cve/CVE-2017-3736.html"),
            ),
        )

        first, second = build_vulnerabilities(advisory, PACKAGES)

        assert first.name == "CVE-2017-3735"
        assert first.link == "https://linux.oracle.com/cve/CVE-2017-3735.html"
        assert first.severity is Severity.LOW
        assert second.name == "CVE-2017-3736"
        assert second.severity is Severity.MEDIUM

    def test_cve_records_share_description_and_packages(self):
        advisory = make_advisory(
            description="line one\nline two",
            cves=(CveReference(id="CVE-1"), CveReference(id="CVE-2")),
        )

        vulnerabilities = build_vulnerabilities(advisory, PACKAGES)

        assert {v.description for v in vulnerabilities} == {"line one line two"}
        assert all(v.affected == PACKAGES for v in vulnerabilities)

    def test_to_dict(self):
        vuln = build_vulnerabilities(make_advisory(), PACKAGES[:1])[0]

        data = vuln.to_dict()

        assert data["name"] == "ADV-2017-1234"
        assert data["severity"] == "High"
        assert data["affected"] == [{
            "namespace": "oracle:7",
            "version_format": "rpm",
            "feature_name": "openssl",
            "feature_type": "binary",
            "affected_version": "vulnerable",
            "fixed_in_version": "1:1.0.2k-8.el7",
        }]
