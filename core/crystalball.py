"""
Double-sided Crystal Ball shape.

With t = (x - mu) / sigma the unnormalized shape is

    exp(-t²/2)                        -alpha <= t <= beta
    A (B - t)^(-n)                    t < -alpha
    C (D + t)^(-m)                    t > beta

    A = (n/alpha)^n exp(-alpha²/2),  B = n/alpha - alpha
    C = (m/beta)^m  exp(-beta²/2),   D = m/beta - beta

The integral is the sum of closed-form pieces over the three regions.
A tail with exponent <= 1 is not integrable to infinity and needs a limit
on that side.
"""

from __future__ import annotations

import copy
import math
from typing import Dict

import numpy as np
from scipy.optimize import brentq
from scipy.special import erf

from core import random as rng
from core.exceptions import PdfException
from core.pdf import UnivariatePdf
from core.variables import ParameterLike, Variable

SQRT2 = math.sqrt(2.0)


class DoubleCrystalBall(UnivariatePdf):
    """Gaussian core with power-law tails on both sides."""

    def __init__(
        self,
        x: Variable,
        mu: ParameterLike,
        sigma: ParameterLike,
        alpha: ParameterLike,
        n: ParameterLike,
        beta: ParameterLike,
        m: ParameterLike,
    ):
        super().__init__()
        self._shape = {
            "mu": copy.deepcopy(mu),
            "sigma": copy.deepcopy(sigma),
            "alpha": copy.deepcopy(alpha),
            "n": copy.deepcopy(n),
            "beta": copy.deepcopy(beta),
            "m": copy.deepcopy(m),
        }

        self._push_var(copy.deepcopy(x))
        for par in self._shape.values():
            self._push_par(par)

        self.cache()

    def mu(self) -> float:
        return self._shape["mu"].evaluate()

    def sigma(self) -> float:
        return self._shape["sigma"].evaluate()

    def alpha(self) -> float:
        return abs(self._shape["alpha"].evaluate())

    def n(self) -> float:
        return self._shape["n"].evaluate()

    def beta(self) -> float:
        return abs(self._shape["beta"].evaluate())

    def m(self) -> float:
        return self._shape["m"].evaluate()

    def _set_par_expr(self) -> None:
        for par in self._shape.values():
            par.set_pars(self._par_map)

    # ------------------------------------------------------------------
    #  Pieces of the shape and their primitives in t
    # ------------------------------------------------------------------
    def _core(self, t):
        return np.exp(-0.5 * t**2)

    def _tail_lo(self, t):
        alpha, n = self.alpha(), self.n()
        big_a = (n / alpha) ** n * math.exp(-0.5 * alpha**2)
        big_b = n / alpha - alpha
        return big_a * np.power(np.maximum(big_b - t, 1.0e-300), -n)

    def _tail_up(self, t):
        beta, m = self.beta(), self.m()
        big_c = (m / beta) ** m * math.exp(-0.5 * beta**2)
        big_d = m / beta - beta
        return big_c * np.power(np.maximum(big_d + t, 1.0e-300), -m)

    def _primitive_lo(self, t: float) -> float:
        alpha, n = self.alpha(), self.n()
        big_a = (n / alpha) ** n * math.exp(-0.5 * alpha**2)
        big_b = n / alpha - alpha
        if t == -np.inf:
            if n <= 1.0:
                raise PdfException("Lower tail is not integrable without a lower limit", context={"n": n})
            return 0.0
        if n == 1.0:
            return -big_a * math.log(big_b - t)
        return big_a * (big_b - t) ** (1.0 - n) / (n - 1.0)

    def _primitive_up(self, t: float) -> float:
        beta, m = self.beta(), self.m()
        big_c = (m / beta) ** m * math.exp(-0.5 * beta**2)
        big_d = m / beta - beta
        if t == np.inf:
            if m <= 1.0:
                raise PdfException("Upper tail is not integrable without an upper limit", context={"m": m})
            return 0.0
        if m == 1.0:
            return big_c * math.log(big_d + t)
        return big_c * (big_d + t) ** (1.0 - m) / (1.0 - m)

    def _integral(self, t_low: float, t_high: float) -> float:
        """Integral of the unnormalized shape over [t_low, t_high] in units of t."""

        alpha, beta = self.alpha(), self.beta()
        total = 0.0

        lo_end = min(t_high, -alpha)
        if lo_end > t_low:
            total += self._primitive_lo(lo_end) - self._primitive_lo(t_low)

        core_start, core_end = max(t_low, -alpha), min(t_high, beta)
        if core_end > core_start:
            total += math.sqrt(math.pi / 2.0) * (erf(core_end / SQRT2) - erf(core_start / SQRT2))

        up_start = max(t_low, beta)
        if t_high > up_start:
            total += self._primitive_up(t_high) - self._primitive_up(up_start)

        return total

    def _to_t(self, x: float) -> float:
        if np.isinf(x):
            return x
        return (x - self.mu()) / self.sigma()

    # ------------------------------------------------------------------
    #  Model interface
    # ------------------------------------------------------------------
    def cache(self) -> None:
        self._refresh_cache_flag()
        if self.sigma() <= 0.0:
            raise PdfException("Crystal Ball width must be positive", context={"sigma": self.sigma()})
        if self.alpha() == 0.0 or self.beta() == 0.0:
            raise PdfException("Crystal Ball tail thresholds must be non-zero",
                               context={"alpha": self.alpha(), "beta": self.beta()})

        low = self._lower if self._has_lower else -np.inf
        high = self._upper if self._has_upper else np.inf
        self._norm = self.sigma() * self._integral(self._to_t(low), self._to_t(high))

    def _evaluate_value(self, x):
        t = (np.asarray(x, dtype=float) - self.mu()) / self.sigma()
        values = np.where(
            t < -self.alpha(),
            self._tail_lo(np.minimum(t, -self.alpha())),
            np.where(t > self.beta(), self._tail_up(np.maximum(t, self.beta())), self._core(t)),
        )
        return np.where(self._outside_limits(x), 0.0, values / self._norm)

    def area(self, low: float, high: float) -> float:
        xmin = max(low, self._lower) if self._has_lower else low
        xmax = min(high, self._upper) if self._has_upper else high
        if xmax <= xmin:
            return 0.0
        return self.sigma() * self._integral(self._to_t(xmin), self._to_t(xmax)) / self._norm

    def generate(self) -> Dict[str, float]:
        uniform = rng.engine().uniform()
        vmu, vsigma = self.mu(), self.sigma()

        low = self._lower if self._has_lower else vmu - 10.0 * vsigma
        high = self._upper if self._has_upper else vmu + 10.0 * vsigma
        while not self._has_lower and self.area(-np.inf, low) > uniform:
            low = vmu - 2.0 * (vmu - low)
        while not self._has_upper and self.area(-np.inf, high) < uniform:
            high = vmu + 2.0 * (high - vmu)

        value = brentq(lambda x: self.area(-np.inf, x) - uniform, low, high)
        return {self.get_var(0).name: float(value)}
