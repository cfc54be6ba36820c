"""
SemVer helpers for game version strings.

Versions are plain X.Y.Z with non-negative integers and no leading zeros.
"""
import re
from typing import Iterable, Optional, Tuple

SEMVER_PATTERN = re.compile(r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)$")

INITIAL_VERSION = "1.0.0"


def is_valid_semver(version: Optional[str]) -> bool:
    return bool(version) and SEMVER_PATTERN.match(version) is not None


def parse_semver(version: str) -> Optional[Tuple[int, int, int]]:
    """(major, minor, patch), or None if the string is not X.Y.Z."""
    match = SEMVER_PATTERN.match(version or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def compare_semver(v1: str, v2: str) -> int:
    """Negative if v1 < v2, zero if equal, positive if v1 > v2."""
    p1, p2 = parse_semver(v1), parse_semver(v2)
    if p1 is None or p2 is None:
        raise ValueError(f"Invalid SemVer format: {v1 if p1 is None else v2}")
    return (p1 > p2) - (p1 < p2)


def increment_patch_version(version: str) -> str:
    parsed = parse_semver(version)
    if parsed is None:
        raise ValueError(f"Invalid SemVer format: {version}")
    major, minor, patch = parsed
    return f"{major}.{minor}.{patch + 1}"


def next_version(existing: Iterable[str]) -> str:
    """Patch bump of the highest valid existing version, or 1.0.0."""
    valid = [v for v in existing if is_valid_semver(v)]
    if not valid:
        return INITIAL_VERSION
    return increment_patch_version(max(valid, key=parse_semver))
