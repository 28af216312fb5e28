"""
Real multiplicative functions of named observables.

A typical use is an acceptance or efficiency curve over the Dalitz-plot
variables that multiplies an amplitude density.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Mapping, Sequence, Union

import numpy as np

from core.exceptions import PdfException
from core.variables import Parameter, ParameterLike, collect_parameters

LOGGER = logging.getLogger(__name__)


class Function:
    """
    Wrap ``func(*variables, *parameters)`` evaluated on named observables.

    Parameters
    ----------
    func : callable
        Vectorised callable returning a non-negative real value.
    variables : sequence of str
        Names of the observables passed positionally to ``func``.
    parameters : sequence
        Parameters (or expressions) appended after the observables.
    """

    def __init__(
        self,
        func: Callable[..., np.ndarray],
        variables: Sequence[str],
        parameters: Sequence[ParameterLike] = (),
    ):
        self._func = func
        self._vars = list(variables)
        self._pars = list(parameters)
        self._do_cache = False
        self._cache_idx = 0
        self._cache_key: tuple = ()

    def _key(self) -> tuple:
        return tuple((par.name, par.value, par.fixed) for par in self.parameters())

    @property
    def do_cache(self) -> bool:
        return self._do_cache

    def var_names(self) -> List[str]:
        return list(self._vars)

    def parameters(self) -> List[Parameter]:
        return list(collect_parameters(self._pars).values())

    def is_fixed(self) -> bool:
        return all(par.is_fixed() for par in self._pars)

    def set_pars(self, pars: Mapping[str, Union[Parameter, float]]) -> None:
        for par in self._pars:
            par.set_pars(pars)

    def evaluate(self, values: Mapping[str, np.ndarray]) -> np.ndarray:
        missing = [name for name in self._vars if name not in values]
        if missing:
            raise PdfException(
                "Function evaluated without all of its variables",
                context={"missing": missing, "available": list(values)},
            )
        args = [values[name] for name in self._vars]
        args.extend(par.evaluate() for par in self._pars)
        return np.asarray(self._func(*args), dtype=float)

    def cache_real(self, data, allocator) -> Dict[int, np.ndarray]:
        """
        Precompute the function at every dataset entry if it has no floating parameters.

        Returns an empty mapping when the function is not cacheable.
        """

        self._do_cache = False
        if not self.is_fixed():
            return {}

        columns = {name: data.values(name) for name in self._vars}
        values = self.evaluate(columns) * np.ones(data.size())

        self._cache_idx = allocator.next_real()
        self._cache_key = self._key()
        self._do_cache = True
        LOGGER.debug("Cached function over %s at real index %d", self._vars, self._cache_idx)
        return {self._cache_idx: values}

    def invalidate_cache(self) -> None:
        self._do_cache = False

    def refresh(self) -> None:
        """Drop the cached values if a parameter floats or moved since caching."""

        if self._do_cache and (not self.is_fixed() or self._key() != self._cache_key):
            self.invalidate_cache()

    def evaluate_cached(self, values: Mapping[str, np.ndarray], cache_r: Mapping[int, np.ndarray]) -> np.ndarray:
        if not self._do_cache:
            return self.evaluate(values)
        return np.asarray(cache_r[self._cache_idx], dtype=float)
