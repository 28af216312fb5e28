"""
Kinematic boundary of a three-body decay M -> 1 2 3.

The two independent invariants are mSq12 and mSq13; mSq23 follows from
mSq12 + mSq13 + mSq23 = M^2 + m1^2 + m2^2 + m3^2. All helpers accept
scalars or numpy arrays.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from config.constants import bin_center


@dataclass(frozen=True)
class DalitzGrid:
    """Bin centres of a regular grid that fall inside the phase space."""

    mSq12: np.ndarray
    mSq13: np.ndarray
    mSq23: np.ndarray
    bin_area: float

    @property
    def size(self) -> int:
        return int(self.mSq12.size)


class PhaseSpace:
    """
    Dalitz-plot boundary for the decay of a mother of mass ``m_mother``.

    Parameters
    ----------
    m_mother, m1, m2, m3 : float
        Masses of the mother and the three daughters in GeV.
    """

    _CHANNELS = ("12", "13", "23")

    def __init__(self, m_mother: float, m1: float, m2: float, m3: float):
        if m_mother < m1 + m2 + m3:
            raise ValueError("Mother mass below the sum of the daughter masses")
        self.m_mother = float(m_mother)
        self.m1 = float(m1)
        self.m2 = float(m2)
        self.m3 = float(m3)

    def __repr__(self) -> str:
        return f"PhaseSpace(M={self.m_mother}, m1={self.m1}, m2={self.m2}, m3={self.m3})"

    @property
    def m_sq_sum(self) -> float:
        return self.m_mother**2 + self.m1**2 + self.m2**2 + self.m3**2

    def masses(self, channel: str) -> Tuple[float, float, float]:
        """Return (mA, mB, mC) for the pair AB of ``channel`` and its bachelor C."""

        if channel == "12":
            return self.m1, self.m2, self.m3
        if channel == "13":
            return self.m1, self.m3, self.m2
        if channel == "23":
            return self.m2, self.m3, self.m1
        raise ValueError(f"Unknown channel '{channel}', expected one of {self._CHANNELS}")

    def limits(self, channel: str) -> Tuple[float, float]:
        """Absolute kinematic range of the invariant mass squared of ``channel``."""

        m_a, m_b, m_c = self.masses(channel)
        return (m_a + m_b) ** 2, (self.m_mother - m_c) ** 2

    def mSq23(self, mSq12, mSq13):
        return self.m_sq_sum - mSq12 - mSq13

    def _pair_limits(self, s_ab, m_a: float, m_b: float, m_c: float):
        """
        Range of s_ac at fixed s_ab, with the energies taken in the AB rest frame.

        Outside the kinematic range of s_ab the returned interval is empty
        (lower > upper).
        """

        s_ab = np.asarray(s_ab, dtype=float)
        low, high = (m_a + m_b) ** 2, (self.m_mother - m_c) ** 2
        inside = (s_ab >= low) & (s_ab <= high)
        safe = np.where(inside, s_ab, 0.5 * (low + high))
        root = np.sqrt(safe)

        e_a = (safe - m_b**2 + m_a**2) / (2.0 * root)
        e_c = (self.m_mother**2 - safe - m_c**2) / (2.0 * root)
        p_a = np.sqrt(np.maximum(e_a**2 - m_a**2, 0.0))
        p_c = np.sqrt(np.maximum(e_c**2 - m_c**2, 0.0))

        lower = (e_a + e_c) ** 2 - (p_a + p_c) ** 2
        upper = (e_a + e_c) ** 2 - (p_a - p_c) ** 2
        lower = np.where(inside, lower, np.inf)
        upper = np.where(inside, upper, -np.inf)
        if lower.ndim == 0:
            return float(lower), float(upper)
        return lower, upper

    def mSq13_limits(self, mSq12):
        return self._pair_limits(mSq12, self.m1, self.m2, self.m3)

    def mSq12_limits(self, mSq13):
        return self._pair_limits(mSq13, self.m1, self.m3, self.m2)

    def mSq12_limits_at_23(self, mSq23):
        """Range of mSq12 along the line of constant mSq23."""

        return self._pair_limits(mSq23, self.m2, self.m3, self.m1)

    def contains(self, mSq12, mSq13):
        """
        Whether (mSq12, mSq13) lies inside the Dalitz boundary.

        Returns a bool for scalar input and a boolean array otherwise.
        """

        mSq13 = np.asarray(mSq13, dtype=float)
        lower, upper = self.mSq13_limits(mSq12)
        inside = (mSq13 >= lower) & (mSq13 <= upper)
        if np.ndim(inside) == 0:
            return bool(inside)
        return inside

    def grid(self, nbins: int) -> DalitzGrid:
        """
        Midpoint grid of the (mSq12, mSq13) bounding box restricted to the phase space.
        """

        low12, high12 = self.limits("12")
        low13, high13 = self.limits("13")
        centers12 = np.array([bin_center(i, nbins, low12, high12) for i in range(nbins)])
        centers13 = np.array([bin_center(i, nbins, low13, high13) for i in range(nbins)])

        mSq12, mSq13 = np.meshgrid(centers12, centers13, indexing="ij")
        mSq12 = mSq12.ravel()
        mSq13 = mSq13.ravel()
        inside = self.contains(mSq12, mSq13)

        area = (high12 - low12) * (high13 - low13) / float(nbins * nbins)
        return DalitzGrid(
            mSq12=mSq12[inside],
            mSq13=mSq13[inside],
            mSq23=self.mSq23(mSq12[inside], mSq13[inside]),
            bin_area=area,
        )
