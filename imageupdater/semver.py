"""Semantic version parsing and deterministic ordering of version tags."""

from __future__ import annotations

import functools
import itertools
import re
from collections.abc import Iterable
from dataclasses import dataclass

_PATTERN = re.compile(
    r"v?([0-9]+)(?:\.([0-9]+))?(?:\.([0-9]+))?"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
)


class InvalidVersionError(ValueError):
    """Raised when a string cannot be parsed as a semantic version."""


@dataclass(frozen=True)
class Version:
    """A parsed semantic version that remembers the text it came from."""

    major: int
    minor: int
    patch: int
    prerelease: str = ""
    metadata: str = ""
    original: str = ""

    def compare(self, other: Version) -> int:
        """Return -1, 0 or 1 as this version is lower, equal or higher.

        Build metadata does not take part in the comparison.
        """
        for mine, theirs in (
            (self.major, other.major),
            (self.minor, other.minor),
            (self.patch, other.patch),
        ):
            if mine != theirs:
                return -1 if mine < theirs else 1
        return _compare_prerelease(self.prerelease, other.prerelease)

    def __str__(self) -> str:
        return self.original


def parse_version(text: str) -> Version:
    """Parse ``text`` as a semantic version; a leading ``v`` and missing parts are allowed."""
    match = _PATTERN.fullmatch(text)
    if match is None:
        raise InvalidVersionError(f"invalid semantic version: {text!r}")
    major, minor, patch, prerelease, metadata = match.groups()
    prerelease = prerelease or ""
    for part in prerelease.split(".") if prerelease else ():
        if _is_numeric(part) and len(part) > 1 and part.startswith("0"):
            raise InvalidVersionError(
                f"version segment starts with 0: {part!r} in {text!r}"
            )
    return Version(
        major=int(major),
        minor=int(minor or 0),
        patch=int(patch or 0),
        prerelease=prerelease,
        metadata=metadata or "",
        original=text,
    )


def sort_versions(versions: Iterable[Version]) -> list[Version]:
    """Return versions in ascending order, breaking ties by their original text."""

    def _cmp(a: Version, b: Version) -> int:
        result = a.compare(b)
        if result:
            return result
        if a.original == b.original:
            return 0
        return -1 if a.original < b.original else 1

    return sorted(versions, key=functools.cmp_to_key(_cmp))


def _is_numeric(part: str) -> bool:
    return part.isascii() and part.isdigit()


def _compare_prerelease(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return 1
    if not b:
        return -1
    for mine, theirs in itertools.zip_longest(a.split("."), b.split("."), fillvalue=""):
        result = _compare_part(mine, theirs)
        if result:
            return result
    return 0


def _compare_part(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return -1
    if not b:
        return 1
    a_numeric, b_numeric = _is_numeric(a), _is_numeric(b)
    if not a_numeric and not b_numeric:
        return 1 if a > b else -1
    if not a_numeric:
        return 1
    if not b_numeric:
        return -1
    return 1 if int(a) > int(b) else -1