"""
Dataset loaders with schema validation.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from dataio.dataset import Dataset
from dataio.validators import ValidationError

LOGGER = logging.getLogger(__name__)


def _resolve_path(path: str) -> Path:
    return Path(path).expanduser().resolve()


def load_csv(path: str, columns: Optional[Sequence[str]] = None) -> Dataset:
    """
    Load a comma-separated table with a header row.

    Only ``columns`` are kept when given; each must be present.
    """

    data_path = _resolve_path(str(path))
    if not data_path.exists():
        raise ValidationError(f"Dataset file not found: {data_path}")
    frame = pd.read_csv(data_path)
    dataset = Dataset.from_frame(frame, columns)
    LOGGER.info("Loaded %d entries with variables %s from %s", dataset.size(), dataset.variables(), data_path)
    return dataset


def save_csv(dataset: Dataset, path: str) -> Path:
    out_path = _resolve_path(str(path))
    out_path.parent.mkdir(parents=True, exist_ok=True)
    dataset.to_frame().to_csv(out_path, index=False)
    LOGGER.info("Wrote %d entries to %s", dataset.size(), out_path)
    return out_path
