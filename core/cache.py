"""
Per-dataset value caches shared by the models of one fit session.

Models that are cacheable precompute one value per dataset entry and
publish it under an index drawn from the session's allocator. The
registry is filled once before minimization starts and frozen afterwards.
"""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Tuple

import numpy as np

from core.exceptions import MinimizerException

LOGGER = logging.getLogger(__name__)


class CacheIndexAllocator:
    """
    Hand out monotonically increasing cache indices for one fit session.

    Real and complex indices are counted separately, so index 0 may be
    in use in both spaces at the same time.
    """

    def __init__(self):
        self._next_real = 0
        self._next_complex = 0

    def next_real(self) -> int:
        index = self._next_real
        self._next_real += 1
        return index

    def next_complex(self) -> int:
        index = self._next_complex
        self._next_complex += 1
        return index

    @property
    def issued_real(self) -> int:
        return self._next_real

    @property
    def issued_complex(self) -> int:
        return self._next_complex


class CacheRegistry:
    """
    Session-wide mapping from cache index to per-entry value arrays.

    Parameters
    ----------
    allocator : CacheIndexAllocator, optional
        Allocator whose indices populate this registry. A fresh one is
        created when omitted.
    """

    def __init__(self, allocator: Optional[CacheIndexAllocator] = None):
        self.allocator = allocator or CacheIndexAllocator()
        self._real: Dict[int, np.ndarray] = {}
        self._complex: Dict[int, np.ndarray] = {}
        self._frozen = False
        self._size: Optional[int] = None

    @property
    def real(self) -> Mapping[int, np.ndarray]:
        return self._real

    @property
    def complex(self) -> Mapping[int, np.ndarray]:
        return self._complex

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._real) + len(self._complex)

    def _merge(self, target: Dict[int, np.ndarray], cached: Mapping[int, np.ndarray], dtype) -> None:
        for index, values in cached.items():
            values = np.asarray(values, dtype=dtype)
            if self._size is None:
                self._size = values.size
            elif values.size != self._size:
                raise MinimizerException(
                    "Cached sequence length does not match the dataset size",
                    context={"index": index, "length": values.size, "expected": self._size},
                )
            if index in target and not np.array_equal(target[index], values):
                raise MinimizerException(
                    "Cache index collision: index already holds different values",
                    context={"index": index},
                )
            target[index] = values

    def publish(
        self,
        real: Optional[Mapping[int, np.ndarray]] = None,
        complex_: Optional[Mapping[int, np.ndarray]] = None,
    ) -> None:
        """Merge cached sequences into the registry; re-publishing identical data is a no-op."""

        if self._frozen:
            raise MinimizerException("Cannot publish to a frozen cache registry; start a new fit session")
        self._merge(self._real, real or {}, float)
        self._merge(self._complex, complex_ or {}, complex)

    def freeze(self) -> None:
        """Mark every stored sequence read-only."""

        for values in list(self._real.values()) + list(self._complex.values()):
            values.setflags(write=False)
        self._frozen = True
        LOGGER.debug("Cache registry frozen with %d real and %d complex sequences",
                     len(self._real), len(self._complex))

    def entry(self, index: int) -> Tuple[Dict[int, float], Dict[int, complex]]:
        """Per-entry slices of every cached sequence, keyed by cache index."""

        cache_r = {key: float(values[index]) for key, values in self._real.items()}
        cache_c = {key: complex(values[index]) for key, values in self._complex.items()}
        return cache_r, cache_c
