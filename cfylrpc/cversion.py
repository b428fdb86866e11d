"""Parsing and comparison of product version strings such as ``17.2.100``."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum

__all__ = ["ComparisonResult", "VersionFormatError", "Version", "parse"]


class ComparisonResult(IntEnum):
    """Outcome of comparing one version with another."""

    EARLIER = -1
    EQUAL = 0
    SUBSEQUENT = 1


class VersionFormatError(ValueError):
    """Raised when a version string does not have the expected form."""


_VERSION_RE = re.compile(
    r"^(\d+)\.(\d+)([.-])?(\d+)?(-Debug|-Release)?(-NotYet)?",
    re.IGNORECASE | re.ASCII,
)


@dataclass(frozen=True)
class Version:
    """A version made of major, minor and build numbers plus two flags."""

    major: int
    minor: int
    build_number: int = 0
    debug: bool = False
    not_yet: bool = False

    def _key(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.build_number)

    def compare(self, other: Version) -> ComparisonResult:
        """Compare by major, minor and build number; the flags are ignored."""
        mine, theirs = self._key(), other._key()
        if mine < theirs:
            return ComparisonResult.EARLIER
        if mine > theirs:
            return ComparisonResult.SUBSEQUENT
        return ComparisonResult.EQUAL

    def major_minor(self) -> str:
        """Return ``major.minor``."""
        return f"{self.major}.{self.minor}"

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.build_number}"
        if self.debug:
            text += "-Debug"
        if self.not_yet:
            text += "-NotYet"
        return text


def parse(version_str: str) -> Version:
    """Parse strings like ``17.2``, ``17.2.100``, ``17.2-100`` or ``17.2.100-NotYet``.

    A missing build number is taken as 0.  Strings such as ``17.2.``
    or ``17.2-NotYet`` are rejected.
    """
    match = _VERSION_RE.match(version_str)
    if match is None:
        raise VersionFormatError("Input does not match expected format")

    major, minor, separator, build, variant, not_yet = match.groups()
    build_present = bool(build)
    expected_separators = 1 if build_present else 0
    found_separators = len(separator or "")
    if found_separators != expected_separators:
        raise VersionFormatError(
            f"Expected {expected_separators} build number separators, "
            f"got {found_separators}"
        )

    return Version(
        major=int(major),
        minor=int(minor),
        build_number=int(build) if build_present else 0,
        debug=(variant or "").lower() == "-debug",
        not_yet=bool(not_yet),
    )