"""
Three-body decay density with interference between a direct and a
charge-conjugate amplitude.

With A = amp(mSq12, mSq13, mSq23), Ā = amp(mSq13, mSq12, mSq23), an
interference coefficient z, an optional coherence factor κ and
multiplicative functions f (acceptance, efficiency):

    p(m) = (|A|² + |Ā|² + 2κ Re(z A Ā*)) Π f / norm
    norm = nDir + nCnj + 2κ Re(z nXed)

    nDir = ∫ |A|² Π f ,   nCnj = ∫ |Ā|² Π f ,   nXed = ∫ A Ā* Π f

The three components depend on the amplitude (and function) parameters
only, so z and κ may float without repeating the phase-space integrals.
"""

from __future__ import annotations

import copy
import logging
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
from scipy.integrate import simpson

from config.constants import NORM_BINS
from core import random as rng
from core.coefficients import CoefExpr
from core.exceptions import DegenerateDensityError, PdfException
from core.functions import Function
from core.pdf import PdfModel, parameter_key
from core.phasespace import DalitzGrid, PhaseSpace
from core.resonances import Amplitude
from core.variables import Parameter, ParameterLike, Variable

LOGGER = logging.getLogger(__name__)


def _check_density(values, where: str):
    """Raise if a normalized density is negative or non-finite; return floats for scalars."""

    values = np.asarray(values, dtype=float)
    bad = ~np.isfinite(values) | (values < 0.0)
    if np.any(bad):
        raise DegenerateDensityError(
            f"{where}: normalized density is negative or non-finite",
            entries=np.flatnonzero(bad).tolist(),
            values=values[bad].ravel(),
        )
    if values.ndim == 0:
        return float(values)
    return values


class Decay3BodyCP(PdfModel):
    """
    Dalitz-plot density of a decay and its CP conjugate with interference.

    Parameters
    ----------
    mSq12, mSq13, mSq23 : Variable
        The three invariant masses squared, in this order.
    amp : Amplitude
        Direct amplitude; the conjugate exchanges mSq12 and mSq13.
    z : CoefExpr
        Interference coefficient of the cross term.
    ps : PhaseSpace
        Kinematic boundary of the decay.
    kappa : Parameter, optional
        Coherence factor multiplying the cross term (1 when omitted).
    docache : bool
        Allow per-dataset caching of amplitudes and densities.
    norm_bins : int
        Bins per axis of the normalization grid.
    """

    def __init__(
        self,
        mSq12: Variable,
        mSq13: Variable,
        mSq23: Variable,
        amp: Amplitude,
        z: CoefExpr,
        ps: PhaseSpace,
        kappa: Optional[ParameterLike] = None,
        docache: bool = True,
        norm_bins: int = NORM_BINS,
    ):
        super().__init__()
        self._amp = copy.deepcopy(amp)
        self._z = copy.deepcopy(z)
        self._ps = ps
        self._has_kappa = kappa is not None
        self._kappa = copy.deepcopy(kappa)
        self._funcs: List[Function] = []
        self._docache = docache
        self._norm_bins = int(norm_bins)
        self._grid: Optional[DalitzGrid] = None

        if ps.m2 != ps.m3:
            LOGGER.warning("Daughters 2 and 3 differ in mass; conjugate amplitudes vanish where "
                           "the exchanged point leaves the phase space")

        for var in (mSq12, mSq13, mSq23):
            self._push_var(copy.deepcopy(var))
        for term in self._amp.terms:
            for par in term.parameters():
                self._par_map.setdefault(par.name, par)
        self._push_par(self._z)
        if self._has_kappa:
            self._push_par(self._kappa)

        # Norm components and the amplitude parameter values they belong to.
        self._n_dir = 0.0
        self._n_cnj = 0.0
        self._n_xed = 0.0 + 0.0j
        self._norm = 1.0
        self._fixed_amp = False
        self._components_key: Optional[tuple] = None

        self._max_pdf: Optional[float] = None

        # Per-dataset caches: amplitudes (complex) and the full density (real).
        self._cache_amps = False
        self._amp_dir_cache = 0
        self._amp_cnj_cache = 0
        self._amps_key: tuple = ()
        self._cache_density = False

        self.cache()

    # ------------------------------------------------------------------
    #  Getters
    # ------------------------------------------------------------------
    def mSq12name(self) -> str:
        return self.get_var(0).name

    def mSq13name(self) -> str:
        return self.get_var(1).name

    def mSq23name(self) -> str:
        return self.get_var(2).name

    @property
    def phase_space(self) -> PhaseSpace:
        return self._ps

    @property
    def amplitude(self) -> Amplitude:
        return self._amp

    @property
    def n_dir(self) -> float:
        return self._n_dir

    @property
    def n_cnj(self) -> float:
        return self._n_cnj

    @property
    def n_xed(self) -> complex:
        return self._n_xed

    @property
    def norm(self) -> float:
        return self._norm

    @property
    def fixed_amp(self) -> bool:
        return self._fixed_amp

    @property
    def do_cache(self) -> bool:
        return self._cache_amps or self._cache_density

    @property
    def functions(self) -> List[Function]:
        return list(self._funcs)

    def kappa(self) -> float:
        return self._kappa.evaluate() if self._has_kappa else 1.0

    def z(self) -> complex:
        return self._z.evaluate()

    # ------------------------------------------------------------------
    #  Parameters and norm
    # ------------------------------------------------------------------
    def _set_par_expr(self) -> None:
        self._amp.set_pars(self._par_map)
        self._z.set_pars(self._par_map)
        if self._has_kappa:
            self._kappa.set_pars(self._par_map)
        for func in self._funcs:
            func.set_pars(self._par_map)

    def _shape_parameters(self) -> Dict[str, Parameter]:
        """Parameters the norm components depend on."""

        pars = {par.name: par for par in self._amp.parameters()}
        for func in self._funcs:
            for par in func.parameters():
                pars.setdefault(par.name, par)
        return pars

    def _shape_fixed(self) -> bool:
        return self._amp.is_fixed() and all(func.is_fixed() for func in self._funcs)

    def _norm_from(self, n_dir: float, n_cnj: float, n_xed: complex) -> float:
        norm = n_dir + n_cnj + 2.0 * self.kappa() * (self.z() * n_xed).real
        if not np.isfinite(norm) or norm <= 0.0:
            raise DegenerateDensityError(
                "Decay3BodyCP norm is not positive",
                context={"norm": norm, "nDir": n_dir, "nCnj": n_cnj,
                         "nXed": str(n_xed), "z": str(self.z()), "kappa": self.kappa()},
            )
        return norm

    def set_norm_components(self, n_dir: float, *components) -> None:
        """
        Inject previously computed norm components.

        Called as ``(n_dir, n_xed)`` for a phase space symmetric under
        12 <-> 13, where ``n_cnj`` equals ``n_dir``, or as
        ``(n_dir, n_cnj, n_xed)``. Honored only while the amplitude is fixed.
        The model is left untouched if any value is rejected.
        """

        if len(components) == 1:
            n_cnj, n_xed = n_dir, components[0]
        elif len(components) == 2:
            n_cnj, n_xed = components
        else:
            raise PdfException("set_norm_components takes (n_dir, n_xed) or (n_dir, n_cnj, n_xed)",
                               context={"given": 1 + len(components)})

        self._fixed_amp = self._shape_fixed()
        if not self._fixed_amp:
            LOGGER.debug("Ignoring injected norm components: amplitude parameters are floating")
            return

        try:
            n_dir, n_cnj, n_xed = float(n_dir), float(n_cnj), complex(n_xed)
        except (TypeError, ValueError) as exc:
            raise PdfException("Norm components must be real, real and complex",
                               context={"nDir": repr(n_dir), "nCnj": repr(n_cnj), "nXed": repr(n_xed)}) from exc
        norm = self._norm_from(n_dir, n_cnj, n_xed)

        self._n_dir, self._n_cnj, self._n_xed, self._norm = n_dir, n_cnj, n_xed, norm
        self._components_key = parameter_key(self._shape_parameters())

    @property
    def norm_bins(self) -> int:
        return self._norm_bins

    def set_integration(self, settings) -> None:
        """Adopt projection and generation settings and the normalization grid size."""

        bins = int(settings.norm_bins)
        if bins < 2:
            raise PdfException("Normalization grid needs at least 2 bins per axis", context={"norm_bins": bins})
        super().set_integration(settings)
        if bins != self._norm_bins:
            self._norm_bins = bins
            self._grid = None
            self._components_key = None
            self.invalidate_cache()
            self.cache()

    def _grid_points(self) -> DalitzGrid:
        if self._grid is None:
            self._grid = self._ps.grid(self._norm_bins)
        return self._grid

    def _compute_components(self) -> None:
        grid = self._grid_points()
        amp_dir = self._amp.evaluate(self._ps, grid.mSq12, grid.mSq13, grid.mSq23)
        amp_cnj = self._amp.evaluate_conjugate(self._ps, grid.mSq12, grid.mSq13, grid.mSq23)
        weight = self._funcs_value(grid.mSq12, grid.mSq13, grid.mSq23) * grid.bin_area

        self._n_dir = float(np.sum(np.abs(amp_dir) ** 2 * weight))
        self._n_cnj = float(np.sum(np.abs(amp_cnj) ** 2 * weight))
        self._n_xed = complex(np.sum(amp_dir * np.conj(amp_cnj) * weight))
        LOGGER.debug("Norm components recomputed on %d grid points: nDir=%g nCnj=%g nXed=%s",
                     grid.size, self._n_dir, self._n_cnj, self._n_xed)

    def _update_norm(self) -> None:
        self._norm = self._norm_from(self._n_dir, self._n_cnj, self._n_xed)

    def invalidate_cache(self) -> None:
        self._cache_amps = False
        self._cache_density = False
        for func in self._funcs:
            func.invalidate_cache()
        super().invalidate_cache()

    def _refresh_cache_flag(self) -> None:
        if self._cache_amps and (not self._amp.is_fixed()
                                 or parameter_key({p.name: p for p in self._amp.parameters()}) != self._amps_key):
            LOGGER.debug("Decay3BodyCP dropped cached amplitudes %d/%d", self._amp_dir_cache, self._amp_cnj_cache)
            self._cache_amps = False
        if self._cache_density and (not self.is_fixed() or parameter_key(self._par_map) != self._cache_key):
            LOGGER.debug("Decay3BodyCP dropped cached density %d", self._cache_idx)
            self._cache_density = False
        for func in self._funcs:
            func.refresh()
        self._do_cache = self.do_cache

    def cache(self) -> None:
        """Recompute the norm, repeating the phase-space integrals only when needed."""

        self._refresh_cache_flag()
        self._fixed_amp = self._shape_fixed()
        key = parameter_key(self._shape_parameters())
        if not (self._fixed_amp and key == self._components_key):
            self._compute_components()
            self._components_key = key if self._fixed_amp else None
        self._update_norm()

    # ------------------------------------------------------------------
    #  Per-dataset caching
    # ------------------------------------------------------------------
    def cache_real(self, data, allocator) -> Dict[int, np.ndarray]:
        """
        Cache the whole density if nothing floats, else the multiplicative functions.
        """

        self._cache_density = False
        cached: Dict[int, np.ndarray] = {}
        if self._docache and self.is_fixed():
            # The density cache already includes every function value.
            for func in self._funcs:
                func.invalidate_cache()
            values = np.asarray(self.evaluate_vars(self._columns(data)), dtype=float)
            self._cache_idx = allocator.next_real()
            self._cache_key = parameter_key(self._par_map)
            self._cache_density = True
            cached[self._cache_idx] = values
            LOGGER.debug("Decay3BodyCP cached its density at real index %d", self._cache_idx)
        else:
            for func in self._funcs:
                cached.update(func.cache_real(data, allocator))

        self._do_cache = self.do_cache
        return cached

    def cache_complex(self, data, allocator) -> Dict[int, np.ndarray]:
        """Cache direct and conjugate amplitudes at every entry if the amplitude is fixed."""

        self._cache_amps = False
        self._do_cache = self.do_cache
        if not self._docache or not self._amp.is_fixed():
            return {}

        mSq12, mSq13, mSq23 = self._columns(data)
        inside = self._ps.contains(mSq12, mSq13)
        amp_dir = np.where(inside, self._amp.evaluate(self._ps, mSq12, mSq13, mSq23), 0.0)
        amp_cnj = np.where(inside, self._amp.evaluate_conjugate(self._ps, mSq12, mSq13, mSq23), 0.0)

        self._amp_dir_cache = allocator.next_complex()
        self._amp_cnj_cache = allocator.next_complex()
        self._amps_key = parameter_key({p.name: p for p in self._amp.parameters()})
        self._cache_amps = True
        self._do_cache = True
        LOGGER.debug("Decay3BodyCP cached amplitudes at complex indices %d and %d",
                     self._amp_dir_cache, self._amp_cnj_cache)
        return {self._amp_dir_cache: amp_dir, self._amp_cnj_cache: amp_cnj}

    # ------------------------------------------------------------------
    #  Evaluation
    # ------------------------------------------------------------------
    def _point(self, mSq12, mSq13) -> Dict[str, np.ndarray]:
        return {self.mSq12name(): mSq12, self.mSq13name(): mSq13,
                self.mSq23name(): self._ps.mSq23(mSq12, mSq13)}

    def _funcs_value(self, mSq12, mSq13, mSq23, cache_r: Optional[Mapping] = None):
        point = {self.mSq12name(): mSq12, self.mSq13name(): mSq13, self.mSq23name(): mSq23}
        value = np.ones(np.broadcast(np.asarray(mSq12), np.asarray(mSq13)).shape)
        for func in self._funcs:
            if cache_r is None:
                value = value * func.evaluate(point)
            else:
                value = value * func.evaluate_cached(point, cache_r)
        return value

    def _interference(self, amp_dir, amp_cnj):
        cross = (self.z() * amp_dir * np.conj(amp_cnj)).real
        return np.abs(amp_dir) ** 2 + np.abs(amp_cnj) ** 2 + 2.0 * self.kappa() * cross

    def evaluate_unnorm(self, mSq12, mSq13, mSq23=None, check_boundary: bool = False):
        """
        Unnormalized density; zero outside the phase space.

        With ``check_boundary`` a point outside the phase space raises
        PdfException instead.
        """

        if mSq23 is None:
            mSq23 = self._ps.mSq23(mSq12, mSq13)
        inside = self._ps.contains(mSq12, mSq13)
        if check_boundary and not np.all(inside):
            raise PdfException("Point outside the phase-space boundary",
                               context={"mSq12": np.asarray(mSq12).tolist(), "mSq13": np.asarray(mSq13).tolist()})

        amp_dir = self._amp.evaluate(self._ps, mSq12, mSq13, mSq23)
        amp_cnj = self._amp.evaluate_conjugate(self._ps, mSq12, mSq13, mSq23)
        values = self._interference(amp_dir, amp_cnj) * self._funcs_value(mSq12, mSq13, mSq23)
        return np.where(inside, values, 0.0)

    def evaluate(self, *values):
        """
        Normalized density.

        Called with no values it uses the current variables; with two, mSq23
        is derived from the phase space; with three, the caller guarantees
        they are consistent.
        """

        if not values:
            values = tuple(var.value for var in self._var_map.values())
        if len(values) == 1:
            raise PdfException("Decay3BodyCP.evaluate: evaluate(value) has been called on a pdf with more than "
                               "one variable.")
        if len(values) > 3:
            raise PdfException("Decay3BodyCP.evaluate: too many values", context={"given": len(values)})

        mSq12, mSq13 = values[0], values[1]
        mSq23 = values[2] if len(values) == 3 else None
        return _check_density(self.evaluate_unnorm(mSq12, mSq13, mSq23) / self._norm, "Decay3BodyCP.evaluate")

    def evaluate_cached(self, values: Sequence, cache_r: Mapping, cache_c: Mapping):
        """
        Evaluate using per-dataset cached values where this model owns any.

        ``values`` and the cache mappings may be per-entry scalars or whole
        dataset columns.
        """

        if self._cache_density:
            return cache_r[self._cache_idx]

        mSq12, mSq13, mSq23 = values
        if self._cache_amps:
            amp_dir = np.asarray(cache_c[self._amp_dir_cache])
            amp_cnj = np.asarray(cache_c[self._amp_cnj_cache])
            # Cached amplitudes are zero outside the phase space.
            density = self._interference(amp_dir, amp_cnj) * self._funcs_value(mSq12, mSq13, mSq23, cache_r)
        else:
            inside = self._ps.contains(mSq12, mSq13)
            amp_dir = self._amp.evaluate(self._ps, mSq12, mSq13, mSq23)
            amp_cnj = self._amp.evaluate_conjugate(self._ps, mSq12, mSq13, mSq23)
            density = self._interference(amp_dir, amp_cnj) * self._funcs_value(mSq12, mSq13, mSq23, cache_r)
            density = np.where(inside, density, 0.0)

        return _check_density(density / self._norm, "Decay3BodyCP.evaluate_cached")

    def project(self, var_name: str, value: float) -> float:
        """
        Integrate the normalized density along the line ``var_name = value``.
        """

        if var_name == self.mSq12name():
            low, high = self._ps.mSq13_limits(value)
            line = np.linspace(low, high, self._projection_points) if high > low else None
            mSq12, mSq13 = (np.full_like(line, value), line) if line is not None else (None, None)
        elif var_name == self.mSq13name():
            low, high = self._ps.mSq12_limits(value)
            line = np.linspace(low, high, self._projection_points) if high > low else None
            mSq12, mSq13 = (line, np.full_like(line, value)) if line is not None else (None, None)
        elif var_name == self.mSq23name():
            low, high = self._ps.mSq12_limits_at_23(value)
            line = np.linspace(low, high, self._projection_points) if high > low else None
            mSq12, mSq13 = (line, self._ps.m_sq_sum - value - line) if line is not None else (None, None)
        else:
            raise PdfException(f"Cannot project on unknown variable '{var_name}'",
                               context={"known": self.var_names()})

        if line is None:
            return 0.0

        # Points on the line are inside by construction; skip the boundary test.
        mSq23 = self._ps.mSq23(mSq12, mSq13)
        amp_dir = self._amp.evaluate(self._ps, mSq12, mSq13, mSq23)
        amp_cnj = self._amp.evaluate_conjugate(self._ps, mSq12, mSq13, mSq23)
        density = self._interference(amp_dir, amp_cnj) * self._funcs_value(mSq12, mSq13, mSq23) / self._norm
        density = _check_density(density, "Decay3BodyCP.project")
        return float(simpson(density, x=line))

    # ------------------------------------------------------------------
    #  Generation
    # ------------------------------------------------------------------
    def set_max_pdf(self, max_pdf: float) -> None:
        self._max_pdf = float(max_pdf)

    def generate(self) -> Dict[str, float]:
        """
        Draw one point by accept-reject against the maximum set with ``set_max_pdf``.
        """

        if self._max_pdf is None or self._max_pdf <= 0.0:
            raise PdfException("Decay3BodyCP.generate: maximum of the pdf has not been set; call set_max_pdf")

        engine = rng.engine()
        low12, high12 = self._ps.limits("12")
        low13, high13 = self._ps.limits("13")
        for _ in range(self._max_generation_tries):
            mSq12 = engine.uniform(low12, high12)
            mSq13 = engine.uniform(low13, high13)
            if not self._ps.contains(mSq12, mSq13):
                continue

            mSq23 = self._ps.mSq23(mSq12, mSq13)
            value = self.evaluate(mSq12, mSq13, mSq23)
            if value > self._max_pdf:
                LOGGER.warning("Density %g above the declared maximum %g at (%g, %g)",
                               value, self._max_pdf, mSq12, mSq13)
            if engine.uniform(0.0, self._max_pdf) < value:
                return {self.mSq12name(): float(mSq12),
                        self.mSq13name(): float(mSq13),
                        self.mSq23name(): float(mSq23)}

        raise PdfException("Decay3BodyCP.generate: no point accepted", context={"max_pdf": self._max_pdf})

    # ------------------------------------------------------------------
    #  Composition
    # ------------------------------------------------------------------
    def multiply(self, function: Function) -> "Decay3BodyCP":
        """
        New model whose density is this one times ``function``, renormalized.
        """

        unknown = [name for name in function.var_names() if name not in self._var_map]
        if unknown:
            raise PdfException("Function depends on variables the model does not have",
                               context={"unknown": unknown, "known": self.var_names()})

        product = copy.deepcopy(self)
        product._funcs.append(copy.deepcopy(function))
        for par in product._funcs[-1].parameters():
            product._par_map.setdefault(par.name, par)
        product._set_par_expr()

        product._components_key = None
        product._cache_amps = False
        product._cache_density = False
        product._do_cache = False
        product.cache()
        return product


def multiply(model: Decay3BodyCP, function: Function) -> Decay3BodyCP:
    """Combine an interference model with a multiplicative function."""

    return model.multiply(function)
