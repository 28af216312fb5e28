"""
Resonance terms and the complex amplitude they sum into.

Each resonance in channel AB (bachelor C) contributes

    c · F_D(p) · F_R(q) · Z_L · 1 / (m_R² - s - i m_R Γ(s))

with Blatt-Weisskopf barrier factors F for the mother and the resonance,
Zemach angular factor Z_L for spin L and a mass-dependent width

    Γ(s) = Γ_R (q / q_R)^(2L+1) (m_R / √s) F_R(q)² .

Points outside the kinematic range of the channel evaluate to exactly zero.
"""

from __future__ import annotations

from typing import List, Mapping, Optional, Sequence, Union

import numpy as np

from config.constants import MOTHER_RADIUS, RESONANCE_RADIUS
from core.coefficients import CoefExpr
from core.phasespace import PhaseSpace
from core.variables import Parameter, ParameterLike, collect_parameters

_MIN_MOMENTUM = 1.0e-12


def _breakup_momentum(s, m_a: float, m_b: float):
    """Momentum of A (or B) in the AB rest frame, zero below threshold."""

    s = np.asarray(s, dtype=float)
    kallen = (s - (m_a + m_b) ** 2) * (s - (m_a - m_b) ** 2)
    return np.sqrt(np.maximum(kallen, 0.0) / (4.0 * s))


def _bachelor_momentum(s, m_mother: float, m_c: float):
    """Momentum of the bachelor C in the AB rest frame."""

    s = np.asarray(s, dtype=float)
    root = np.sqrt(s)
    kallen = (m_mother**2 - (root + m_c) ** 2) * (m_mother**2 - (root - m_c) ** 2)
    return np.sqrt(np.maximum(kallen, 0.0)) / (2.0 * root)


def _barrier(spin: int, z):
    """Unnormalised Blatt-Weisskopf factor for z = (r·q)²."""

    if spin == 0:
        return np.ones_like(z)
    if spin == 1:
        return 1.0 / np.sqrt(1.0 + z)
    return 1.0 / np.sqrt(z**2 + 3.0 * z + 9.0)


def _channel_invariants(channel: str, mSq12, mSq13, mSq23):
    """Return (s_AB, s_AC, s_BC) for the pair of ``channel``."""

    if channel == "12":
        return mSq12, mSq13, mSq23
    if channel == "13":
        return mSq13, mSq12, mSq23
    return mSq23, mSq12, mSq13


class Resonance:
    """
    Relativistic Breit-Wigner resonance in one two-body channel.

    Parameters
    ----------
    channel : {"12", "13", "23"}
        Daughter pair the resonance decays to.
    coef : CoefExpr
        Complex coupling.
    mass, width : Parameter or ParameterExpr
        Nominal mass and width in GeV.
    spin : int
        Orbital angular momentum, 0, 1 or 2.
    radius : float
        Blatt-Weisskopf radius of the resonance in GeV^-1.
    """

    def __init__(
        self,
        channel: str,
        coef: CoefExpr,
        mass: ParameterLike,
        width: ParameterLike,
        spin: int = 0,
        radius: float = RESONANCE_RADIUS,
        mother_radius: float = MOTHER_RADIUS,
        name: Optional[str] = None,
    ):
        if channel not in ("12", "13", "23"):
            raise ValueError(f"Unknown channel '{channel}'")
        if spin not in (0, 1, 2):
            raise ValueError(f"Unsupported resonance spin {spin}, expected 0, 1 or 2")
        self.channel = channel
        self.coef = coef
        self.mass = mass
        self.width = width
        self.spin = spin
        self.radius = float(radius)
        self.mother_radius = float(mother_radius)
        self.name = name or f"R{channel}"

    def __repr__(self) -> str:
        return f"Resonance({self.name!r}, channel={self.channel}, spin={self.spin})"

    def parameters(self) -> List[Parameter]:
        pars = collect_parameters([self.mass, self.width])
        for par in self.coef.parameters():
            pars.setdefault(par.name, par)
        return list(pars.values())

    def is_fixed(self) -> bool:
        return self.coef.is_fixed() and self.mass.is_fixed() and self.width.is_fixed()

    def set_pars(self, pars: Mapping[str, Union[Parameter, float]]) -> None:
        self.coef.set_pars(pars)
        self.mass.set_pars(pars)
        self.width.set_pars(pars)

    def _angular(self, ps: PhaseSpace, s, s_ac, s_bc):
        if self.spin == 0:
            return np.ones_like(s)

        m_a, m_b, m_c = ps.masses(self.channel)
        big = ps.m_mother
        spin1 = s_ac - s_bc + (big**2 - m_c**2) * (m_b**2 - m_a**2) / s
        if self.spin == 1:
            return spin1

        first = s - 2.0 * big**2 - 2.0 * m_c**2 + (big**2 - m_c**2) ** 2 / s
        second = s - 2.0 * m_a**2 - 2.0 * m_b**2 + (m_a**2 - m_b**2) ** 2 / s
        return spin1**2 - first * second / 3.0

    def evaluate(self, ps: PhaseSpace, mSq12, mSq13, mSq23):
        s, s_ac, s_bc = _channel_invariants(self.channel, mSq12, mSq13, mSq23)
        s = np.asarray(s, dtype=float)
        s_ac = np.asarray(s_ac, dtype=float)
        s_bc = np.asarray(s_bc, dtype=float)

        m_a, m_b, m_c = ps.masses(self.channel)
        low, high = ps.limits(self.channel)
        physical = (s > low) & (s < high)

        m_res = self.mass.evaluate()
        width = self.width.evaluate()
        s_safe = np.where(physical, s, m_res**2)

        q = np.maximum(_breakup_momentum(s_safe, m_a, m_b), _MIN_MOMENTUM)
        q_res = max(float(_breakup_momentum(m_res**2, m_a, m_b)), _MIN_MOMENTUM)
        p = _bachelor_momentum(s_safe, ps.m_mother, m_c)
        p_res = max(float(_bachelor_momentum(m_res**2, ps.m_mother, m_c)), _MIN_MOMENTUM)

        z_res = (self.radius * q) ** 2
        z_res0 = (self.radius * q_res) ** 2
        form_res = _barrier(self.spin, z_res) / _barrier(self.spin, np.asarray(z_res0))

        z_mother = (self.mother_radius * p) ** 2
        z_mother0 = (self.mother_radius * p_res) ** 2
        form_mother = _barrier(self.spin, z_mother) / _barrier(self.spin, np.asarray(z_mother0))

        running = width * (q / q_res) ** (2 * self.spin + 1) * (m_res / np.sqrt(s_safe)) * form_res**2
        propagator = 1.0 / (m_res**2 - s_safe - 1j * m_res * running)

        value = self.coef.evaluate() * form_mother * form_res * self._angular(ps, s_safe, s_ac, s_bc) * propagator
        return np.where(physical, value, 0.0 + 0.0j)


class NonResonant:
    """Constant complex term spread uniformly over the phase space."""

    def __init__(self, coef: CoefExpr, name: str = "NR"):
        self.coef = coef
        self.name = name

    def __repr__(self) -> str:
        return f"NonResonant({self.name!r})"

    def parameters(self) -> List[Parameter]:
        return self.coef.parameters()

    def is_fixed(self) -> bool:
        return self.coef.is_fixed()

    def set_pars(self, pars: Mapping[str, Union[Parameter, float]]) -> None:
        self.coef.set_pars(pars)

    def evaluate(self, ps: PhaseSpace, mSq12, mSq13, mSq23):
        shape = np.broadcast(np.asarray(mSq12), np.asarray(mSq13)).shape
        return np.full(shape, self.coef.evaluate(), dtype=complex)


class Amplitude:
    """
    Ordered collection of complex terms summed into one amplitude.

    The conjugate amplitude is the same sum evaluated with mSq12 and mSq13
    exchanged, which describes the charge-conjugate decay when daughters 2
    and 3 are each other's antiparticles.
    """

    def __init__(self, terms: Sequence[Union[Resonance, NonResonant]] = ()):
        self._terms = list(terms)

    def __len__(self) -> int:
        return len(self._terms)

    def add(self, term: Union[Resonance, NonResonant]) -> "Amplitude":
        self._terms.append(term)
        return self

    @property
    def terms(self) -> List[Union[Resonance, NonResonant]]:
        return list(self._terms)

    def parameters(self) -> List[Parameter]:
        collected = {}
        for term in self._terms:
            for par in term.parameters():
                collected.setdefault(par.name, par)
        return list(collected.values())

    def is_fixed(self) -> bool:
        return all(term.is_fixed() for term in self._terms)

    def set_pars(self, pars: Mapping[str, Union[Parameter, float]]) -> None:
        for term in self._terms:
            term.set_pars(pars)

    def evaluate(self, ps: PhaseSpace, mSq12, mSq13, mSq23=None):
        if mSq23 is None:
            mSq23 = ps.mSq23(mSq12, mSq13)
        total = np.zeros(np.broadcast(np.asarray(mSq12), np.asarray(mSq13)).shape, dtype=complex)
        for term in self._terms:
            total = total + term.evaluate(ps, mSq12, mSq13, mSq23)
        return total

    def evaluate_conjugate(self, ps: PhaseSpace, mSq12, mSq13, mSq23=None):
        if mSq23 is None:
            mSq23 = ps.mSq23(mSq12, mSq13)
        return self.evaluate(ps, mSq13, mSq12, mSq23)
