"""
P2P Fuzzer: Protocol Versions

A version triple is compared lexicographically on (major, minor, patch).
Two independent axes are tracked per worker: node version and report version.
"""

from __future__ import annotations

import enum
from typing import NamedTuple


class VersionAxis(enum.StrEnum):
    NODE = "node"
    REPORT = "report"


class VersionTriple(NamedTuple):
    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, raw: str) -> VersionTriple:
        parts = raw.strip().split(".")
        if len(parts) != 3:
            raise ValueError(f"Version must be major.minor.patch, got {raw!r}")
        major, minor, patch = (int(p) for p in parts)
        if min(major, minor, patch) < 0:
            raise ValueError(f"Version components must be non-negative, got {raw!r}")
        return cls(major, minor, patch)

    def bump_major(self) -> VersionTriple:
        return VersionTriple(self.major + 1, 0, 0)

    def bump_minor(self) -> VersionTriple:
        return VersionTriple(self.major, self.minor + 1, 0)

    def bump_patch(self) -> VersionTriple:
        return VersionTriple(self.major, self.minor, self.patch + 1)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"
