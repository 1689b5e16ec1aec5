"""
Synthesis of vulnerability records from a decoded advisory.

An advisory listing CVEs becomes one vulnerability per CVE; an advisory
without CVEs becomes a single vulnerability named after the advisory.
"""
import logging
import re
from typing import Iterable, List

from .models import AffectedPackage, Advisory, Severity, Vulnerability

logger = logging.getLogger(__name__)

NAME_SEPARATOR = ": "
DEFAULT_REFERENCE_SOURCE = "elsa"

_LINE_BREAKS = re.compile(r"[\r\n]+")

_SEVERITIES = {
    "n/a": Severity.NEGLIGIBLE,
    "low": Severity.LOW,
    "moderate": Severity.MEDIUM,
    "important": Severity.HIGH,
    # some ELSAs say "high" instead of "important"
    "high": Severity.HIGH,
    "critical": Severity.CRITICAL,
}


def name(advisory: Advisory) -> str:
    """Advisory identifier, i.e. the title up to the first ': '."""
    title, _, _ = advisory.title.partition(NAME_SEPARATOR)
    return title.strip()


def link(advisory: Advisory, source: str = DEFAULT_REFERENCE_SOURCE) -> str:
    for reference in advisory.references:
        if reference.source == source:
            return reference.uri
    return ""


def description(advisory: Advisory) -> str:
    return _LINE_BREAKS.sub(" ", advisory.description)


def severity(label: str) -> Severity:
    """Map a vendor severity label to a Severity."""
    level = _SEVERITIES.get(label.strip().lower())
    if level is None:
        logger.warning("could not determine vulnerability severity from %r", label)
        return Severity.UNKNOWN
    return level


def build_vulnerabilities(
    advisory: Advisory,
    affected: Iterable[AffectedPackage],
    reference_source: str = DEFAULT_REFERENCE_SOURCE,
) -> List[Vulnerability]:
    """
    Create the vulnerability records for an advisory.

    Args:
        advisory: Decoded advisory
        affected: Deduplicated packages extracted from its criteria
        reference_source: Reference source tag holding the advisory link

    Returns:
        Empty list when nothing is affected, one record when the advisory
        lists no CVE, otherwise one record per CVE
    """
    packages = tuple(affected)
    if not packages:
        return []

    base = Vulnerability(
        name=name(advisory),
        link=link(advisory, reference_source),
        severity=severity(advisory.severity),
        description=description(advisory),
        affected=packages,
    )

    if not advisory.cves:
        return [base]

    vulnerabilities = []
    for cve in advisory.cves:
        vulnerabilities.append(Vulnerability(
            name=cve.id.strip(),
            link=cve.href,
            severity=severity(cve.impact) if cve.impact else base.severity,
            description=base.description,
            affected=packages,
        ))
    return vulnerabilities
