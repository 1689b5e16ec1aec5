"""
Normalization layer for OVAL advisories.

Turns decoded advisories into queryable facts:
- criteria: criteria tree to disjunctive normal form
- features: possibilities to deduplicated affected packages
- vulnerability: advisory + packages to vulnerability records
- versionfmt: package version grammar validation
"""
from .criteria import IGNORED_CRITERIONS, filter_criterions, get_criterions, get_possibilities
from .features import ExtractionResult, FeatureExtractor, to_affected_packages
from .models import (
    Advisory,
    AffectedPackage,
    Criteria,
    Criterion,
    CveReference,
    Operator,
    Reference,
    Severity,
    Vulnerability,
)
from .vulnerability import build_vulnerabilities

__all__ = [
    "Advisory",
    "AffectedPackage",
    "Criteria",
    "Criterion",
    "CveReference",
    "Operator",
    "Reference",
    "Severity",
    "Vulnerability",
    "IGNORED_CRITERIONS",
    "filter_criterions",
    "get_criterions",
    "get_possibilities",
    "ExtractionResult",
    "FeatureExtractor",
    "to_affected_packages",
    "build_vulnerabilities",
]
