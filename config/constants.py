"""
Numeric defaults used across the project.

Masses are expressed in GeV and invariant masses squared in GeV^2 unless
otherwise noted.
"""

from __future__ import annotations

# Bins per axis of the Dalitz-plot grid used for normalization integrals
NORM_BINS = 400

# Points along the integration line used by 1-D projections
PROJECTION_POINTS = 801

# Accept-reject attempts before generation gives up
MAX_GENERATION_TRIES = 1_000_000

# Blatt-Weisskopf radii (GeV^-1)
RESONANCE_RADIUS = 1.5
MOTHER_RADIUS = 5.0

# Minimizer defaults
DEFAULT_METHOD = "L-BFGS-B"
DEFAULT_TOLERANCE = 1.0e-9
DEFAULT_MAX_ITER = 5_000

# Relative step of the finite-difference Hessian
HESSIAN_STEP = 1.0e-4

# Reference particle masses (GeV)
M_D0 = 1.86484
M_KS = 0.497611
M_PI = 0.13957039


def bin_center(index: int, nbins: int, low: float, high: float) -> float:
    """
    Centre of bin ``index`` when [low, high] is split into ``nbins`` bins.
    """

    return (high - low) / float(nbins) * (index + 0.5) + low
