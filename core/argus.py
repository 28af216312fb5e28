"""
ARGUS background shape.

    A(x) = x √(1 - x²/c²) exp(-χ² (1 - x²/c²)) / _norm ,   0 ≤ x ≤ c

With u = 1 - x²/c² the integral becomes c²/(2χ³) γ(3/2, χ² u), so the
norm and the area use the regularized lower incomplete gamma function
P(3/2, ·) times Γ(3/2). For χ = 0 it reduces to c²/3 u^(3/2).
"""

from __future__ import annotations

import copy
import math
from typing import Dict, Optional, Tuple

import numpy as np
from scipy.special import gamma, gammainc, gammaincinv

from core import random as rng
from core.exceptions import PdfException
from core.pdf import UnivariatePdf
from core.variables import ParameterLike, Variable

GAMMA_3_2 = float(gamma(1.5))


class Argus(UnivariatePdf):
    """ARGUS distribution of ``x`` with endpoint ``c`` and curvature ``chi``."""

    def __init__(self, x: Variable, c: ParameterLike, chi: ParameterLike):
        super().__init__()
        self._c = copy.deepcopy(c)
        self._chi = copy.deepcopy(chi)

        self._push_var(copy.deepcopy(x))
        self._push_par(self._c)
        self._push_par(self._chi)

        self.cache()

    def c(self) -> float:
        return self._c.evaluate()

    def chi(self) -> float:
        return self._chi.evaluate()

    def _set_par_expr(self) -> None:
        self._c.set_pars(self._par_map)
        self._chi.set_pars(self._par_map)

    def _check_limits(self, lower: Optional[float], upper: Optional[float]) -> None:
        if lower is not None and lower < 0.0:
            raise PdfException("Cannot set the lower limit of the Argus distribution to anything smaller than 0.",
                               context={"lower": lower})
        if upper is not None and upper < 0.0:
            raise PdfException("Cannot set the upper limit of the Argus distribution to anything smaller than 0.",
                               context={"upper": upper})

    def _support(self) -> Tuple[float, float]:
        vc = self.c()
        lower = max(self._lower, 0.0) if self._has_lower else 0.0
        upper = min(self._upper, vc) if self._has_upper else vc
        return lower, upper

    def _primitive(self, arg_min: float, arg_max: float) -> float:
        """Integral of the unnormalized shape for u = 1 - x²/c² in [arg_min, arg_max]."""

        c_sq = self.c() ** 2
        chi_sq = self.chi() ** 2
        if chi_sq == 0.0:
            return c_sq / 3.0 * (arg_max**1.5 - arg_min**1.5)
        prefactor = c_sq / (2.0 * chi_sq**1.5) * GAMMA_3_2
        return prefactor * (gammainc(1.5, chi_sq * arg_max) - gammainc(1.5, chi_sq * arg_min))

    def _arguments(self, xmin: float, xmax: float) -> Tuple[float, float]:
        vc = self.c()
        return 1.0 - (xmax / vc) ** 2, 1.0 - (xmin / vc) ** 2

    def cache(self) -> None:
        self._refresh_cache_flag()
        if self.c() <= 0.0:
            raise PdfException("Argus endpoint c must be positive", context={"c": self.c()})

        lower, upper = self._support()
        if upper <= lower:
            raise PdfException("Argus limits leave an empty support",
                               context={"lower": lower, "upper": upper, "c": self.c()})
        self._norm = self._primitive(*self._arguments(lower, upper))

    def _evaluate_value(self, x):
        vc = self.c()
        x = np.asarray(x, dtype=float)
        diff = 1.0 - x**2 / vc**2
        values = x * np.sqrt(np.maximum(diff, 0.0)) * np.exp(-self.chi() ** 2 * diff) / self._norm
        outside = (x < 0.0) | (x > vc) | self._outside_limits(x)
        return np.where(outside, 0.0, values)

    def area(self, low: float, high: float) -> float:
        lower, upper = self._support()
        xmin = max(low, lower)
        xmax = min(high, upper)
        if xmax <= xmin:
            return 0.0
        return self._primitive(*self._arguments(xmin, xmax)) / self._norm

    def generate(self) -> Dict[str, float]:
        lower, upper = self._support()
        arg_min, arg_max = self._arguments(lower, upper)
        chi_sq = self.chi() ** 2
        uniform = rng.engine().uniform()

        # Invert the cumulative distribution in u = 1 - x²/c².
        if chi_sq == 0.0:
            arg = (arg_min**1.5 + uniform * (arg_max**1.5 - arg_min**1.5)) ** (2.0 / 3.0)
        else:
            p_min = gammainc(1.5, chi_sq * arg_min)
            p_max = gammainc(1.5, chi_sq * arg_max)
            arg = gammaincinv(1.5, p_min + uniform * (p_max - p_min)) / chi_sq

        value = self.c() * math.sqrt(max(1.0 - arg, 0.0))
        return {self.get_var(0).name: float(value)}
