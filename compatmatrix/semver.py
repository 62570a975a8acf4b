"""Semver range evaluation, delegated to ``semantic_version``'s npm grammar."""

from __future__ import annotations

from typing import Callable

from semantic_version import NpmSpec, Version

# (installed_version, specifier) -> bool
Satisfies = Callable[[str, str], bool]


def parse_version(value: str) -> Version | None:
    try:
        return Version(value)
    except ValueError:
        pass
    try:
        return Version.coerce(value)
    except ValueError:
        return None


def satisfies(version: str, specifier: str) -> bool:
    """True if *version* falls inside the npm-style range *specifier*.

    Unparseable versions or ranges never satisfy anything.
    """
    parsed = parse_version(version)
    if parsed is None:
        return False
    try:
        spec = NpmSpec(specifier)
    except ValueError:
        return False
    return spec.match(parsed)


def compare_versions(left: str, right: str) -> int:
    """Return -1, 0 or 1 like a classic comparator. Raises ValueError on garbage."""
    a = parse_version(left)
    b = parse_version(right)
    if a is None or b is None:
        raise ValueError(f"Cannot compare versions {left!r} and {right!r}")
    if a > b:
        return 1
    if a < b:
        return -1
    return 0
