"""
Gaussian density with optional truncation limits.

Definitions based on the norm:

                     1        (   (x - mu)^2  )
    G(x)         = -------  exp( - ----------- )
                    _norm     (    2 sigma^2  )

                             ____                        upper
                            / pi       (   x - mu    )
    _norm        = sigma   / ----  erf ( ----------- )
                         \\/   2        ( sigma √2    )
                                                         lower

    area(a, b)   = the same bracket between max(a, lower) and min(b, upper),
                   divided by _norm.
"""

from __future__ import annotations

import copy
import math
from typing import Dict

import numpy as np
from scipy.special import erf

from core import random as rng
from core.exceptions import PdfException
from core.pdf import UnivariatePdf
from core.variables import ParameterLike, Variable

SQRT2 = math.sqrt(2.0)


class Gauss(UnivariatePdf):
    """Normal distribution of ``x`` with mean ``mu`` and width ``sigma``."""

    def __init__(self, x: Variable, mu: ParameterLike, sigma: ParameterLike):
        super().__init__()
        self._mu = copy.deepcopy(mu)
        self._sigma = copy.deepcopy(sigma)

        self._push_var(copy.deepcopy(x))
        self._push_par(self._mu)
        self._push_par(self._sigma)

        self.cache()

    def mu(self) -> float:
        return self._mu.evaluate()

    def sigma(self) -> float:
        return self._sigma.evaluate()

    def _set_par_expr(self) -> None:
        self._mu.set_pars(self._par_map)
        self._sigma.set_pars(self._par_map)

    def _erf_bracket(self, low: float, high: float) -> float:
        vmu = self.mu()
        vsigma = self.sigma()
        arg_low = -1.0 if low == -np.inf else erf((low - vmu) / (vsigma * SQRT2))
        arg_high = 1.0 if high == np.inf else erf((high - vmu) / (vsigma * SQRT2))
        return vsigma * math.sqrt(math.pi / 2.0) * (arg_high - arg_low)

    def cache(self) -> None:
        self._refresh_cache_flag()
        if self.sigma() <= 0.0:
            raise PdfException("Gauss width must be positive", context={"sigma": self.sigma()})

        low = self._lower if self._has_lower else -np.inf
        high = self._upper if self._has_upper else np.inf
        self._norm = self._erf_bracket(low, high)

    def _evaluate_value(self, x):
        values = np.exp(-0.5 * (x - self.mu()) ** 2 / self.sigma() ** 2) / self._norm
        return np.where(self._outside_limits(x), 0.0, values)

    def area(self, low: float, high: float) -> float:
        xmin = max(low, self._lower) if self._has_lower else low
        xmax = min(high, self._upper) if self._has_upper else high
        if xmax <= xmin:
            return 0.0
        return self._erf_bracket(xmin, xmax) / self._norm

    def generate(self) -> Dict[str, float]:
        engine = rng.engine()
        name = self.get_var(0).name
        for _ in range(self._max_generation_tries):
            value = engine.normal(self.mu(), self.sigma())
            if not self._outside_limits(value):
                return {name: float(value)}
        raise PdfException("Gauss.generate: no value generated inside the limits",
                           context={"lower": self.lower, "upper": self.upper})
