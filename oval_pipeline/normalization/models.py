"""
Typed records shared by the decoder, the normalizer and the updaters.

An OVAL definition decodes into an Advisory whose eligibility is a Criteria
tree. Normalization turns that tree into AffectedPackage facts and finally
into Vulnerability records.

Design decisions:
- Frozen dataclasses with tuple fields so a decoded advisory can be shared
  across worker threads without copying
- Criteria is a tagged variant (operator + children + leaves); the operator
  set is closed, so behaviour dispatches on the enum rather than subclasses
- Vulnerabilities derived from one advisory share the same affected tuple
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


# Range marker recorded on every affected package of this feed
AFFECTED_VERSION_MARKER = "vulnerable"

# Every OVAL feed handled here describes binary RPM packages
BINARY_PACKAGE = "binary"


class Operator(Enum):
    """Boolean operator of a criteria node."""
    AND = "AND"
    OR = "OR"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Operator"]:
        """
        Map an @operator attribute to an Operator, None if unsupported.

        Matching is exact; the feed only ever writes "AND" and "OR".
        """
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class Severity(Enum):
    """Normalized vulnerability severity."""
    UNKNOWN = "Unknown"
    NEGLIGIBLE = "Negligible"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


@dataclass(frozen=True)
class Criterion:
    """Leaf condition; the comment is its only carrier of meaning."""
    comment: str


@dataclass(frozen=True)
class Criteria:
    """
    Condition node of an advisory.

    Leaves and child nodes may coexist on the same node.
    """
    operator: Optional[Operator] = None
    children: Tuple["Criteria", ...] = ()
    criterions: Tuple[Criterion, ...] = ()


@dataclass(frozen=True)
class Reference:
    source: str
    uri: str
    id: str


@dataclass(frozen=True)
class CveReference:
    """Cross-referenced vulnerability listed by an advisory."""
    id: str
    impact: str = ""
    href: str = ""


@dataclass(frozen=True)
class Advisory:
    """One decoded OVAL definition."""
    title: str
    description: str
    severity: str
    criteria: Criteria
    references: Tuple[Reference, ...] = ()
    cves: Tuple[CveReference, ...] = ()


@dataclass(frozen=True)
class AffectedPackage:
    """
    A package version range made vulnerable by an advisory.

    fixed_in_version is empty when the vendor has not published a fix.
    """
    namespace: str            # e.g. oracle:7
    feature_name: str
    fixed_in_version: str
    version_format: str = "rpm"
    feature_type: str = BINARY_PACKAGE
    affected_version: str = AFFECTED_VERSION_MARKER

    @property
    def key(self) -> Tuple[str, str]:
        return self.namespace, self.feature_name


@dataclass(frozen=True)
class Vulnerability:
    """Named vulnerability with the packages it affects."""
    name: str
    link: str
    severity: Severity
    description: str
    affected: Tuple[AffectedPackage, ...] = ()

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "link": self.link,
            "severity": self.severity.value,
            "description": self.description,
            "affected": [
                {
                    "namespace": p.namespace,
                    "version_format": p.version_format,
                    "feature_name": p.feature_name,
                    "feature_type": p.feature_type,
                    "affected_version": p.affected_version,
                    "fixed_in_version": p.fixed_in_version,
                }
                for p in self.affected
            ],
        }
