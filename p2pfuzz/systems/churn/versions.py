"""
P2P Fuzzer: Version Skew

Per-axis version state and the random update draws applied on respawn.
Only a major bump counts as a mismatch; minor and patch skew is expected to
interoperate.
"""

from __future__ import annotations

import enum
import random
from dataclasses import dataclass, field

from p2pfuzz.primitives.common import roll
from p2pfuzz.primitives.versions import VersionTriple


class AxisStatus(enum.StrEnum):
    STABLE = "stable"
    MISMATCHED = "mismatched"


class UpdateKind(enum.StrEnum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


@dataclass
class AxisState:
    """Pool-level state of one version axis."""

    latest: VersionTriple
    status: AxisStatus = AxisStatus.STABLE
    outdated_rounds: int = 0
    # Windows whose next respawn takes ``latest`` instead of a random draw.
    pending_reset: set[int] = field(default_factory=set)

    def observe(self, version: VersionTriple) -> None:
        """Raise the watermark if ``version`` is newer."""
        if version > self.latest:
            self.latest = version

    def reset(self) -> None:
        self.status = AxisStatus.STABLE
        self.outdated_rounds = 0


def initial_node_version(rng: random.Random) -> VersionTriple:
    return VersionTriple(rng.randint(0, 3), rng.randint(2, 8), rng.randint(3, 11))


def initial_report_version(rng: random.Random) -> VersionTriple:
    return VersionTriple(rng.randint(2, 4), rng.randint(0, 1), rng.randint(1, 6))


def draw_update(rng: random.Random, major_chance: float, minor_chance: float) -> UpdateKind:
    if roll(major_chance, rng):
        return UpdateKind.MAJOR
    if roll(minor_chance, rng):
        return UpdateKind.MINOR
    return UpdateKind.PATCH


def apply_update(version: VersionTriple, kind: UpdateKind) -> VersionTriple:
    if kind is UpdateKind.MAJOR:
        return version.bump_major()
    if kind is UpdateKind.MINOR:
        return version.bump_minor()
    return version.bump_patch()
