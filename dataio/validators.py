"""
Validators for dataset columns.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

import numpy as np


class ValidationError(ValueError):
    """Raised when dataset validation fails."""


def validate_column(name: str, values: Sequence[float]) -> np.ndarray:
    """Convert ``values`` to a finite one-dimensional float array named ``name``."""
    try:
        array = np.array(values, dtype=float)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Column '{name}' is not numeric") from exc
    if array.ndim != 1:
        raise ValidationError(f"Column '{name}' must be one-dimensional, got shape {array.shape}")
    bad = np.flatnonzero(~np.isfinite(array))
    if bad.size:
        raise ValidationError(f"Column '{name}' has non-finite values at entries {bad[:5].tolist()}")
    return array


def validate_lengths(columns: Mapping[str, np.ndarray]) -> int:
    """Return the common column length; mismatched lengths are reported per column."""
    lengths = {name: arr.shape[0] for name, arr in columns.items()}
    if len(set(lengths.values())) > 1:
        raise ValidationError(f"Columns must share the same length: {lengths}")
    return next(iter(lengths.values()), 0)


def validate_columns(available: Iterable[str], required: Iterable[str]) -> None:
    available = set(available)
    missing = [name for name in required if name not in available]
    if missing:
        raise ValidationError(f"Dataset is missing required columns: {missing}")
