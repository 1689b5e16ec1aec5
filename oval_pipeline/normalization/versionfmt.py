"""
Package version format validation.

Only the grammar is checked here; ordering between versions belongs to the
consumers of the generated vulnerabilities.
"""
from typing import Callable, Dict


# Sentinels understood by every version format
MAX_VERSION = "#MAXV#"
MIN_VERSION = "#MINV#"

RPM = "rpm"

_RPM_ALLOWED_SYMBOLS = frozenset(".-+~:_")


class InvalidVersionError(ValueError):
    """Raised when a version string does not follow its format's grammar."""


def _check_rpm_part(part: str, label: str, version: str) -> None:
    for char in part:
        if not (char.isdigit() or char.isalpha() or char in _RPM_ALLOWED_SYMBOLS):
            raise InvalidVersionError(f"invalid character {char!r} in {label} of {version!r}")


def validate_rpm(version: str) -> None:
    """
    Validate an RPM [epoch:]version[-release] string.

    Raises:
        InvalidVersionError: If the string is malformed
    """
    value = version.strip()
    if not value:
        raise InvalidVersionError("version string is empty")

    if value in (MAX_VERSION, MIN_VERSION):
        return

    rest = value
    if ":" in value:
        epoch, rest = value.split(":", 1)
        try:
            epoch_number = int(epoch)
        except ValueError:
            raise InvalidVersionError(f"epoch in {version!r} is not a number") from None
        if epoch_number < 0:
            raise InvalidVersionError(f"epoch in {version!r} is negative")

    upstream, _, release = rest.partition("-")
    if not upstream:
        raise InvalidVersionError(f"no version in {version!r}")

    _check_rpm_part(upstream, "version", version)
    _check_rpm_part(release, "release", version)


_VALIDATORS: Dict[str, Callable[[str], None]] = {
    RPM: validate_rpm,
}


def register_format(name: str, validator: Callable[[str], None]) -> None:
    """Make a version format available to valid()."""
    _VALIDATORS[name] = validator


def valid(format_name: str, version: str) -> None:
    """
    Validate version against the named format.

    Raises:
        InvalidVersionError: If the version is malformed or the format unknown
    """
    validator = _VALIDATORS.get(format_name)
    if validator is None:
        raise InvalidVersionError(f"unknown version format: {format_name}")
    validator(version)
