"""
Process-wide random engine used by toy generation.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

_ENGINE = np.random.default_rng()


def engine() -> np.random.Generator:
    """Return the shared generator."""

    return _ENGINE


def seed(value: Optional[int]) -> None:
    """Reseed the shared generator, making generated toys reproducible."""

    global _ENGINE
    _ENGINE = np.random.default_rng(value)
