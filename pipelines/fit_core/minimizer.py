"""
Objective-function adapter between density models and scipy.optimize.

The minimizer owns a model and a dataset, builds the per-dataset caches
once per session and then evaluates

    F(θ) = -2 Σ_i ln p(x_i | θ)

on every trial point. With ``up = 1`` the parabolic errors derived from the
Hessian of F are one-standard-deviation errors.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
from scipy import optimize

from core.cache import CacheRegistry
from core.exceptions import DegenerateDensityError, MinimizerException
from core.pdf import PdfBase
from core.variables import Parameter
from pipelines.fit_core.config import MinimizerSettings

from . import ParameterDict, ResultsDict

LOGGER = logging.getLogger(__name__)


@dataclass
class FunctionMinimum:
    """Result of a minimization: best-fit point, parabolic errors and covariance."""
    values: ParameterDict
    errors: ParameterDict
    covariance: np.ndarray
    names: List[str]
    fval: float
    is_valid: bool
    n_function_evaluations: int
    up: float
    message: str = ""
    fit_time: float = 0.0
    metadata: ResultsDict = field(default_factory=dict)

    def error(self, name: str) -> float:
        return self.errors[name]

    def correlation(self) -> np.ndarray:
        sigma = np.sqrt(np.diag(self.covariance))
        return self.covariance / np.outer(sigma, sigma)


class Minimizer:
    """
    Negative log-likelihood of ``pdf`` over ``data`` as a callable for scipy.

    Parameters
    ----------
    pdf : PdfBase
        Model whose parameters are fitted. It is updated in place.
    data : Dataset
        Read-only sample; must provide every variable of the model.
    settings : MinimizerSettings, optional
        Optimizer method, tolerances, error definition and evaluation mode.
    registry : CacheRegistry, optional
        Session registry; a new one is created when omitted.
    """

    def __init__(
        self,
        pdf: PdfBase,
        data,
        settings: Optional[MinimizerSettings] = None,
        registry: Optional[CacheRegistry] = None,
    ):
        missing = [name for name in pdf.var_names() if name not in data.variables()]
        if missing:
            raise MinimizerException("Dataset lacks variables of the model",
                                     context={"missing": missing, "available": data.variables()})
        if data.size() == 0:
            raise MinimizerException("Cannot fit an empty dataset")

        self._pdf = pdf
        self._data = data
        self.settings = settings or MinimizerSettings()
        self.registry = registry or CacheRegistry()
        self._up = self.settings.up
        self._cached = False
        self._n_calls = 0
        self._columns = [data.values(name) for name in pdf.var_names()]

    # ------------------------------------------------------------------
    #  Error definition
    # ------------------------------------------------------------------
    def up(self) -> float:
        if self._up is None:
            raise MinimizerException("Minimizer.up: error definition has not been set; call set_up first")
        return self._up

    def set_up(self, value: float) -> None:
        if value <= 0.0:
            raise MinimizerException("Error definition must be positive", context={"up": value})
        self._up = float(value)

    @property
    def pdf(self) -> PdfBase:
        return self._pdf

    @property
    def data(self):
        return self._data

    @property
    def cached(self) -> bool:
        return self._cached

    @property
    def n_calls(self) -> int:
        return self._n_calls

    # ------------------------------------------------------------------
    #  Caching
    # ------------------------------------------------------------------
    def cache(self) -> None:
        """
        Collect the model's per-dataset caches into the session registry.

        Runs once; later calls return immediately. The registry is frozen
        afterwards, so the model's caches cannot change during the session.
        """

        if self._cached:
            LOGGER.debug("Minimizer.cache: already cached for this session")
            return

        allocator = self.registry.allocator
        try:
            cache_r = self._pdf.cache_real(self._data, allocator)
            cache_c = self._pdf.cache_complex(self._data, allocator)
            self.registry.publish(cache_r, cache_c)
        except Exception:
            # Nothing was published; make the model recompute instead of reading missing slots.
            self._pdf.invalidate_cache()
            raise

        self.registry.freeze()
        self._cached = True
        LOGGER.info("Cached %d real and %d complex sequences over %d entries",
                    len(cache_r), len(cache_c), self._data.size())

    # ------------------------------------------------------------------
    #  Objective
    # ------------------------------------------------------------------
    def floating_parameters(self) -> List[Parameter]:
        return [par for par in self._pdf.get_pars().values() if not par.is_fixed()]

    def floating_names(self) -> List[str]:
        return [par.name for par in self.floating_parameters()]

    def densities(self) -> np.ndarray:
        """Model density at every entry, through the cached path where available."""

        if self.settings.vectorized:
            values = self._pdf.evaluate_cached(self._columns, self.registry.real, self.registry.complex)
            values = np.asarray(values, dtype=float) * np.ones(self._data.size())
        else:
            values = np.empty(self._data.size())
            for i in range(self._data.size()):
                cache_r, cache_c = self.registry.entry(i)
                point = [column[i] for column in self._columns]
                values[i] = self._pdf.evaluate_cached(point, cache_r, cache_c)

        bad = ~np.isfinite(values) | (values <= 0.0)
        if np.any(bad):
            raise DegenerateDensityError(
                "Density is not positive at some dataset entries",
                entries=np.flatnonzero(bad).tolist(),
                values=values[bad],
            )
        return values

    def log_likelihood(self) -> float:
        """Σ ln p over the dataset at the current parameters."""

        return float(np.sum(np.log(self.densities())))

    def __call__(self, values: Sequence[float]) -> float:
        names = self.floating_names()
        values = np.atleast_1d(np.asarray(values, dtype=float))
        if values.size != len(names):
            raise MinimizerException("Parameter vector does not match the floating parameters",
                                     context={"given": int(values.size), "expected": names})

        self._pdf.set_pars(dict(zip(names, values.tolist())))
        self._n_calls += 1
        return -2.0 * self.log_likelihood()

    # ------------------------------------------------------------------
    #  Minimization
    # ------------------------------------------------------------------
    def _bounds(self, pars: Sequence[Parameter]):
        if not self.settings.supports_bounds:
            if any(par.limits is not None for par in pars):
                LOGGER.warning("Method %s ignores parameter limits", self.settings.method)
            return None
        bounds = []
        for par in pars:
            low, high = par.limits if par.limits is not None else (None, None)
            bounds.append((low, high))
        return bounds

    def _numerical_hessian(self, point: np.ndarray) -> np.ndarray:
        """Central finite-difference Hessian of the objective at ``point``."""

        n_par = point.size
        steps = self.settings.hessian_step * np.maximum(1.0, np.abs(point))
        f0 = self(point)
        hessian = np.zeros((n_par, n_par))

        for i in range(n_par):
            e_i = np.zeros(n_par)
            e_i[i] = steps[i]
            hessian[i, i] = (self(point + e_i) - 2.0 * f0 + self(point - e_i)) / steps[i] ** 2
            for j in range(i):
                e_j = np.zeros(n_par)
                e_j[j] = steps[j]
                value = (
                    self(point + e_i + e_j)
                    - self(point + e_i - e_j)
                    - self(point - e_i + e_j)
                    + self(point - e_i - e_j)
                ) / (4.0 * steps[i] * steps[j])
                hessian[i, j] = hessian[j, i] = value

        self(point)
        return hessian

    def minimize(self) -> FunctionMinimum:
        """
        Run the optimizer and write the best-fit values and errors into the model.

        Returns
        -------
        FunctionMinimum
        """

        up = self.up()
        floating = self.floating_parameters()
        if not floating:
            raise MinimizerException("No floating parameters to minimize")
        self.cache()

        names = [par.name for par in floating]
        start = np.array([par.value for par in floating])
        options = {"maxiter": self.settings.max_iter}
        options.update(self.settings.options)

        LOGGER.info("Minimizing over %d parameters with %s", len(names), self.settings.method)
        start_time = time.time()
        calls_before = self._n_calls
        result = optimize.minimize(
            self,
            start,
            method=self.settings.method,
            bounds=self._bounds(floating),
            tol=self.settings.tolerance,
            options=options,
        )

        best = np.atleast_1d(result.x)
        hessian = self._numerical_hessian(best)
        try:
            covariance = 2.0 * up * np.linalg.inv(hessian)
        except np.linalg.LinAlgError as err:
            raise MinimizerException("Hessian at the minimum is singular",
                                     context={"parameters": names}) from err

        diagonal = np.diag(covariance)
        is_valid = bool(result.success) and bool(np.all(diagonal > 0.0))
        errors = np.sqrt(np.where(diagonal > 0.0, diagonal, 0.0))

        fmin = FunctionMinimum(
            values=dict(zip(names, best.tolist())),
            errors=dict(zip(names, errors.tolist())),
            covariance=covariance,
            names=names,
            fval=float(self(best)),
            is_valid=is_valid,
            n_function_evaluations=self._n_calls - calls_before,
            up=up,
            message=str(result.message),
            fit_time=time.time() - start_time,
            metadata={"method": self.settings.method, "n_entries": self._data.size()},
        )
        self._pdf.set_pars(fmin)

        if not is_valid:
            LOGGER.warning("Minimization did not converge cleanly: %s", fmin.message)
        return fmin
