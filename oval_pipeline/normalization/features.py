"""
Extraction of affected packages from criteria possibilities.

OVAL criterion comments are free text. Two shapes carry facts:

    "Oracle Linux 7 is installed"
    "openssl is earlier than 1:1.0.2k-16.0.1.el7"

A possibility that mentions both resolves into one AffectedPackage. Feed
anomalies are logged and skipped; they never fail the batch.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from . import versionfmt
from .criteria import IGNORED_CRITERIONS, Possibility, get_possibilities
from .models import AffectedPackage, Criteria

logger = logging.getLogger(__name__)

INSTALLED_MARKER = " is installed"
EARLIER_THAN_MARKER = " is earlier than "

VersionValidator = Callable[[str, str], None]


@dataclass
class ExtractionResult:
    """Deduplicated packages for one advisory plus discard count."""
    packages: List[AffectedPackage] = field(default_factory=list)
    possibilities: int = 0
    discarded: int = 0


class FeatureExtractor:
    """
    Turns criteria trees into AffectedPackage facts.

    The namespace is "<namespace_prefix>:<release>" where release is parsed
    from the "<distro_name> <release> is installed" criterion.
    """

    def __init__(
        self,
        distro_name: str = "Oracle Linux",
        namespace_prefix: str = "oracle",
        version_format: str = versionfmt.RPM,
        validator: Optional[VersionValidator] = None,
        ignored: Sequence[str] = IGNORED_CRITERIONS,
    ):
        self.distro_prefix = distro_name.strip() + " "
        self.namespace_prefix = namespace_prefix
        self.version_format = version_format
        self.validator = validator or versionfmt.valid
        self.ignored = tuple(ignored)

    def extract(self, criteria: Criteria) -> ExtractionResult:
        """Resolve every possibility of the tree and merge the results."""
        result = ExtractionResult()
        merged: Dict[Tuple[str, str], AffectedPackage] = {}

        for possibility in get_possibilities(criteria, self.ignored):
            result.possibilities += 1
            package = self.resolve(possibility)
            if package is None:
                result.discarded += 1
                logger.warning(
                    "could not determine a valid package from criterions: %s",
                    [c.comment for c in possibility],
                )
                continue
            # Duplicates exist in the feed; the last one seen wins
            merged[package.key] = package

        result.packages = list(merged.values())
        return result

    def resolve(self, possibility: Possibility) -> Optional[AffectedPackage]:
        """Build an AffectedPackage from one possibility, None if incomplete."""
        release: Optional[int] = None
        feature_name = ""
        fixed_in_version = ""
        version_resolved = False

        for criterion in possibility:
            comment = criterion.comment
            if INSTALLED_MARKER in comment:
                release = self.parse_release(comment)
            elif EARLIER_THAN_MARKER in comment:
                name, _, version = comment.partition(EARLIER_THAN_MARKER)
                feature_name = name.strip()
                version = version.strip()
                try:
                    self.validator(self.version_format, version)
                except versionfmt.InvalidVersionError as e:
                    logger.warning("could not parse package version %r, skipping: %s", version, e)
                    version_resolved = False
                    continue
                version_resolved = True
                fixed_in_version = "" if version == versionfmt.MAX_VERSION else version

        if release is None or not feature_name or not version_resolved:
            return None

        return AffectedPackage(
            namespace=f"{self.namespace_prefix}:{release}",
            feature_name=feature_name,
            fixed_in_version=fixed_in_version,
            version_format=self.version_format,
        )

    def parse_release(self, comment: str) -> Optional[int]:
        """Parse the release number following the distro name."""
        start = comment.find(self.distro_prefix)
        if start < 0:
            logger.warning("could not parse %s release version from comment: %r",
                           self.distro_prefix.strip(), comment)
            return None

        token = comment[start + len(self.distro_prefix):].strip().split(" ", 1)[0]
        try:
            return int(token)
        except ValueError:
            logger.warning("could not parse %s release version from comment: %r",
                           self.distro_prefix.strip(), comment)
            return None


def to_affected_packages(criteria: Criteria, **kwargs) -> List[AffectedPackage]:
    """Shortcut for FeatureExtractor(**kwargs).extract(criteria).packages."""
    return FeatureExtractor(**kwargs).extract(criteria).packages
