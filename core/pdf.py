"""
Capability interface shared by every density model.

``PdfBase`` states the contract the minimizer relies on: setters for
observables and parameters, a normalization refresh (``cache``), the
per-dataset caching hooks, evaluation (plain and cached) and generation.
``PdfModel`` implements the bookkeeping common to all concrete models and
``UnivariatePdf`` adds the limits API of the one-dimensional shapes.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from config.constants import MAX_GENERATION_TRIES, PROJECTION_POINTS
from core.exceptions import PdfException
from core.variables import Parameter, ParameterLike, Variable

LOGGER = logging.getLogger(__name__)


def parameter_key(pars: Mapping[str, Parameter]) -> tuple:
    """Hashable snapshot of parameter values and fixed states."""

    return tuple((name, par.value, par.fixed) for name, par in pars.items())


class PdfBase(ABC):
    """Abstract density model."""

    @abstractmethod
    def set_vars(self, values) -> None:
        ...

    @abstractmethod
    def set_pars(self, values) -> None:
        ...

    @abstractmethod
    def cache(self) -> None:
        """Refresh everything shared by all points, usually the norm."""

    def cache_real(self, data, allocator) -> Dict[int, np.ndarray]:
        """Per-entry real values keyed by a freshly allocated index, or an empty mapping."""
        return {}

    def cache_complex(self, data, allocator) -> Dict[int, np.ndarray]:
        """Per-entry complex values keyed by a freshly allocated index, or an empty mapping."""
        return {}

    @abstractmethod
    def evaluate(self, *values):
        ...

    @abstractmethod
    def evaluate_vars(self, values: Sequence):
        ...

    @abstractmethod
    def evaluate_cached(self, values: Sequence, cache_r: Mapping, cache_c: Mapping):
        ...

    @abstractmethod
    def generate(self) -> Dict[str, float]:
        ...

    @abstractmethod
    def project(self, var_name: str, value: float) -> float:
        ...


class PdfModel(PdfBase):
    """
    Common state of concrete models.

    Observables and parameters are kept in insertion-ordered name maps; the
    positional forms of ``set_vars``/``set_pars`` follow that order.
    """

    def __init__(self):
        self._var_map: Dict[str, Variable] = {}
        self._par_map: Dict[str, Parameter] = {}
        self._do_cache = False
        self._cache_idx = 0
        self._cache_key: tuple = ()
        self._projection_points = PROJECTION_POINTS
        self._max_generation_tries = MAX_GENERATION_TRIES

    # ------------------------------------------------------------------
    #  Registration
    # ------------------------------------------------------------------
    def _push_var(self, var: Variable) -> None:
        self._var_map[var.name] = var

    def _push_par(self, par: ParameterLike) -> None:
        for item in par.parameters():
            self._par_map.setdefault(item.name, item)

    # ------------------------------------------------------------------
    #  Getters
    # ------------------------------------------------------------------
    def get_vars(self) -> Dict[str, Variable]:
        return self._var_map

    def get_pars(self) -> Dict[str, Parameter]:
        return self._par_map

    def get_var(self, index: int) -> Variable:
        return list(self._var_map.values())[index]

    def get_par(self, index: int) -> Parameter:
        return list(self._par_map.values())[index]

    def n_vars(self) -> int:
        return len(self._var_map)

    def n_pars(self) -> int:
        return len(self._par_map)

    def var_names(self) -> List[str]:
        return list(self._var_map)

    def par_names(self) -> List[str]:
        return list(self._par_map)

    def is_fixed(self) -> bool:
        return all(par.is_fixed() for par in self._par_map.values())

    def depends_on(self, var: str) -> bool:
        return var in self._var_map

    @property
    def do_cache(self) -> bool:
        return self._do_cache

    @property
    def cache_index(self) -> int:
        return self._cache_idx

    # ------------------------------------------------------------------
    #  Setters
    # ------------------------------------------------------------------
    def set_var(self, name: str, value: float, error: float = -1.0) -> None:
        if name not in self._var_map:
            raise PdfException(f"Cannot set unknown variable '{name}'", context={"known": self.var_names()})
        self._var_map[name].set(value, error)

    def set_vars(self, values) -> None:
        """Set observables from a positional sequence or a name-keyed mapping."""

        if isinstance(values, Mapping):
            for name, value in values.items():
                if name not in self._var_map:
                    continue
                if isinstance(value, Variable):
                    self._var_map[name].set(value.value, value.error)
                else:
                    self._var_map[name].set(value)
            return

        values = list(values)
        if len(values) != self.n_vars():
            raise PdfException(
                "Number of values does not match the number of variables",
                context={"given": len(values), "expected": self.n_vars()},
            )
        for var, value in zip(self._var_map.values(), values):
            var.set(value)

    def set_par(self, name: str, value: float, error: float = -1.0) -> None:
        if name not in self._par_map:
            raise PdfException(f"Cannot set unknown parameter '{name}'", context={"known": self.par_names()})
        self._par_map[name].set(value, error)
        self._set_par_expr()
        self.cache()

    def set_par_fixed(self, name: str, fixed: bool = True) -> None:
        """Fix or release a parameter everywhere it is referenced."""

        if name not in self._par_map:
            raise PdfException(f"Cannot fix unknown parameter '{name}'", context={"known": self.par_names()})
        self._par_map[name].fixed = bool(fixed)
        self._set_par_expr()

    def set_pars(self, values) -> None:
        """
        Set parameters and refresh the norm.

        Accepts a positional sequence (in ``par_names()`` order), a mapping
        of name to value or to ``Parameter``, or a minimization result
        exposing ``values`` and ``errors`` mappings.
        """

        if isinstance(values, Mapping):
            for name, value in values.items():
                if name not in self._par_map:
                    continue
                if isinstance(value, Parameter):
                    self._par_map[name].set_pars({name: value})
                else:
                    self._par_map[name].set(value)
        elif hasattr(values, "values") and hasattr(values, "errors"):
            for name, value in values.values.items():
                if name in self._par_map:
                    self._par_map[name].set(value, values.errors.get(name, -1.0))
        else:
            values = list(values)
            if len(values) != self.n_pars():
                raise PdfException(
                    "Number of values does not match the number of parameters",
                    context={"given": len(values), "expected": self.n_pars()},
                )
            for par, value in zip(self._par_map.values(), values):
                par.set(value)

        self._set_par_expr()
        self.cache()

    def _set_par_expr(self) -> None:
        """Propagate the parameter map into owned expressions and components."""

    # ------------------------------------------------------------------
    #  Integration settings
    # ------------------------------------------------------------------
    @property
    def projection_points(self) -> int:
        return self._projection_points

    @property
    def max_generation_tries(self) -> int:
        return self._max_generation_tries

    def set_integration(self, settings) -> None:
        """
        Adopt numerical integration and generation settings.

        ``settings`` exposes ``projection_points`` and ``max_generation_tries``
        (an ``IntegrationSettings``, for instance); models that integrate over
        a grid also read ``norm_bins``.
        """

        points = int(settings.projection_points)
        tries = int(settings.max_generation_tries)
        if points < 3 or points % 2 == 0:
            raise PdfException("Projection points must be an odd number of at least 3",
                               context={"projection_points": points})
        if tries <= 0:
            raise PdfException("Generation needs a positive number of attempts",
                               context={"max_generation_tries": tries})
        self._projection_points = points
        self._max_generation_tries = tries

    # ------------------------------------------------------------------
    #  Caching and evaluation
    # ------------------------------------------------------------------
    def invalidate_cache(self) -> None:
        """Stop using per-dataset cached values until the next caching pass."""

        if self._do_cache:
            LOGGER.debug("%s dropped its cache slot %d", type(self).__name__, self._cache_idx)
        self._do_cache = False

    def _refresh_cache_flag(self) -> None:
        """Drop the cache slot if a parameter floats or changed value since caching."""

        if self._do_cache and (not self.is_fixed() or parameter_key(self._par_map) != self._cache_key):
            self.invalidate_cache()

    def _columns(self, data) -> List[np.ndarray]:
        return [data.values(name) for name in self.var_names()]

    def cache_real(self, data, allocator) -> Dict[int, np.ndarray]:
        # Cache the values of the pdf at every point in the dataset, if the parameters are fixed.
        self._do_cache = False
        if not self.is_fixed():
            return {}

        values = np.asarray(self.evaluate_vars(self._columns(data)), dtype=float) * np.ones(data.size())

        self._cache_idx = allocator.next_real()
        self._cache_key = parameter_key(self._par_map)
        self._do_cache = True
        LOGGER.debug("%s cached %d entries at real index %d", type(self).__name__, values.size, self._cache_idx)
        return {self._cache_idx: values}

    def evaluate_vars(self, values: Sequence):
        values = list(values)
        if len(values) != self.n_vars():
            raise PdfException(
                "Number of values does not match the number of variables",
                context={"given": len(values), "expected": self.n_vars()},
            )
        return self.evaluate(*values)

    def evaluate_cached(self, values: Sequence, cache_r: Mapping, cache_c: Mapping):
        if not self._do_cache:
            return self.evaluate_vars(values)
        return cache_r[self._cache_idx]


class UnivariatePdf(PdfModel):
    """
    Density of a single observable with optional truncation limits.

    Subclasses implement ``_evaluate_value``, ``area`` and ``cache``;
    ``_check_limits`` may reject unsupported bounds.
    """

    def __init__(self):
        super().__init__()
        self._has_lower = False
        self._has_upper = False
        self._lower = 0.0
        self._upper = 0.0
        self._norm = 1.0

    @property
    def norm(self) -> float:
        return self._norm

    @property
    def lower(self) -> Optional[float]:
        return self._lower if self._has_lower else None

    @property
    def upper(self) -> Optional[float]:
        return self._upper if self._has_upper else None

    def _check_limits(self, lower: Optional[float], upper: Optional[float]) -> None:
        """Raise PdfException for unsupported limits."""

    def _limits_changed(self) -> None:
        self.invalidate_cache()
        self.cache()

    def set_lower_limit(self, lower: float) -> None:
        self._check_limits(lower, None)
        self._has_lower = True
        self._lower = float(lower)
        self._limits_changed()

    def set_upper_limit(self, upper: float) -> None:
        self._check_limits(None, upper)
        self._has_upper = True
        self._upper = float(upper)
        self._limits_changed()

    def set_limits(self, lower: float, upper: float) -> None:
        self._check_limits(lower, upper)
        self._has_lower = True
        self._has_upper = True
        self._lower = float(lower)
        self._upper = float(upper)
        self._limits_changed()

    def unset_lower_limit(self) -> None:
        self._has_lower = False
        self._limits_changed()

    def unset_upper_limit(self) -> None:
        self._has_upper = False
        self._limits_changed()

    def unset_limits(self) -> None:
        self._has_lower = False
        self._has_upper = False
        self._limits_changed()

    def _outside_limits(self, x):
        outside = np.zeros(np.shape(x), dtype=bool)
        if self._has_lower:
            outside |= x < self._lower
        if self._has_upper:
            outside |= x > self._upper
        return outside

    @abstractmethod
    def _evaluate_value(self, x):
        ...

    @abstractmethod
    def area(self, low: float, high: float) -> float:
        ...

    def evaluate(self, *values):
        if not values:
            return float(self._evaluate_value(self.get_var(0).value))
        if len(values) > 1:
            raise PdfException(
                f"{type(self).__name__}.evaluate: called with {len(values)} values on a pdf of one variable"
            )
        value = values[0]
        if np.ndim(value) == 0:
            return float(self._evaluate_value(float(value)))
        return self._evaluate_value(np.asarray(value, dtype=float))

    def project(self, var_name: str, value: float) -> float:
        if var_name not in self._var_map:
            raise PdfException(f"Cannot project on unknown variable '{var_name}'",
                               context={"known": self.var_names()})
        return self.evaluate(value)
