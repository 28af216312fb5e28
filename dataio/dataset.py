"""
Column-oriented event samples for unbinned fits.

A ``Dataset`` maps observable names to equally long float arrays. Models
read whole columns when caching and the minimizer iterates over entries.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Sequence

import numpy as np
import pandas as pd

from dataio.validators import ValidationError, validate_column, validate_columns, validate_lengths


class Dataset:
    """
    Read-only table of observable values.

    Parameters
    ----------
    columns : mapping
        Observable name to a one-dimensional sequence of values.
    """

    def __init__(self, columns: Mapping[str, Sequence[float]]):
        if not columns:
            raise ValidationError("Dataset needs at least one column")
        self._columns: Dict[str, np.ndarray] = {}
        for name, values in columns.items():
            array = validate_column(name, values)
            array.setflags(write=False)
            self._columns[name] = array
        validate_lengths(self._columns)

    @classmethod
    def from_columns(cls, **columns: Sequence[float]) -> "Dataset":
        return cls(columns)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, float]]) -> "Dataset":
        """Build from an iterable of name-to-value mappings sharing the same keys."""

        records = list(records)
        if not records:
            raise ValidationError("Cannot build a dataset from zero records")
        names = list(records[0])
        for record in records[1:]:
            validate_columns(record, names)
        return cls({name: [record[name] for record in records] for name in names})

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, columns: Sequence[str] | None = None) -> "Dataset":
        if columns is not None:
            validate_columns(frame.columns, columns)
            frame = frame[list(columns)]
        return cls({str(name): frame[name].to_numpy() for name in frame.columns})

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({name: np.array(values) for name, values in self._columns.items()})

    def size(self) -> int:
        return int(next(iter(self._columns.values())).shape[0])

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, name: str) -> bool:
        return name in self._columns

    def variables(self) -> List[str]:
        return list(self._columns)

    def values(self, name: str) -> np.ndarray:
        try:
            return self._columns[name]
        except KeyError:
            raise ValidationError(f"Unknown dataset column '{name}'") from None

    def value(self, name: str, entry: int) -> float:
        return float(self.values(name)[entry])

    def entry(self, index: int) -> Dict[str, float]:
        return {name: float(values[index]) for name, values in self._columns.items()}

    def __repr__(self) -> str:
        return f"Dataset(size={self.size()}, variables={self.variables()})"
