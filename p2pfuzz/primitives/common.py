"""
P2P Fuzzer: Common Primitives

Shared base model and helpers used across all systems.
"""

from __future__ import annotations

import random
import string

from pydantic import BaseModel

_ALPHABET = string.ascii_letters + string.digits


class FuzzBaseModel(BaseModel):
    """Base model for all fuzzer primitives."""

    model_config = {"populate_by_name": True, "from_attributes": True}


def random_string(length: int, rng: random.Random | None = None) -> str:
    """Random alphanumeric string of exactly ``length`` characters."""
    rng = rng or random.Random()
    return "".join(rng.choice(_ALPHABET) for _ in range(length))


def roll(chance: float, rng: random.Random) -> bool:
    """True with probability ``chance`` percent."""
    return rng.random() * 100 < chance
