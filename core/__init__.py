"""
Density models for unbinned maximum-likelihood fits.

This package exposes the shared model interface, the analytic shapes and
the three-body interference model together with their building blocks.
"""

from . import argus, cache, crystalball, decay3body_cp, gauss, pdf, phasespace, resonances  # noqa: F401
from .argus import Argus
from .cache import CacheIndexAllocator, CacheRegistry
from .coefficients import CoefExpr
from .crystalball import DoubleCrystalBall
from .decay3body_cp import Decay3BodyCP, multiply
from .exceptions import CFitError, DegenerateDensityError, MinimizerException, PdfException
from .functions import Function
from .gauss import Gauss
from .pdf import PdfBase, PdfModel, UnivariatePdf
from .phasespace import PhaseSpace
from .resonances import Amplitude, NonResonant, Resonance
from .variables import Parameter, ParameterExpr, Variable

__all__ = [
    "Amplitude",
    "Argus",
    "CFitError",
    "CacheIndexAllocator",
    "CacheRegistry",
    "CoefExpr",
    "Decay3BodyCP",
    "DegenerateDensityError",
    "DoubleCrystalBall",
    "Function",
    "Gauss",
    "MinimizerException",
    "NonResonant",
    "Parameter",
    "ParameterExpr",
    "PdfBase",
    "PdfException",
    "PdfModel",
    "PhaseSpace",
    "Resonance",
    "UnivariatePdf",
    "Variable",
    "multiply",
]
