import sys
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config.constants import M_D0, M_KS, M_PI  # noqa: E402
from core.coefficients import CoefExpr  # noqa: E402
from core.phasespace import PhaseSpace  # noqa: E402
from core.resonances import Amplitude, NonResonant, Resonance  # noqa: E402
from core.variables import Parameter, Variable  # noqa: E402


@pytest.fixture
def phase_space():
    return PhaseSpace(M_D0, M_KS, M_PI, M_PI)


@pytest.fixture
def dalitz_vars():
    return Variable("mSq12", 1.0), Variable("mSq13", 1.0), Variable("mSq23", 1.0)


@pytest.fixture
def kspipi_amplitude():
    """K*(892) in both KS pi channels, rho(770) in pi pi and a flat term."""

    kstar_mass = Parameter("kstar_mass", 0.89166, fixed=True)
    kstar_width = Parameter("kstar_width", 0.0508, fixed=True)
    return Amplitude([
        Resonance("12", CoefExpr.polar(Parameter("kstm_mod", 1.6, fixed=True), Parameter("kstm_phase", 2.3, fixed=True)),
                  kstar_mass, kstar_width, spin=1, name="K*-"),
        Resonance("13", CoefExpr.polar(Parameter("kstp_mod", 0.14, fixed=True), Parameter("kstp_phase", -0.7, fixed=True)),
                  kstar_mass, kstar_width, spin=1, name="K*+"),
        Resonance("23", CoefExpr.constant(1.0, name="rho"),
                  Parameter("rho_mass", 0.77526, fixed=True), Parameter("rho_width", 0.1491, fixed=True),
                  spin=1, name="rho"),
        NonResonant(CoefExpr.polar(Parameter("nr_mod", 2.0, fixed=True), Parameter("nr_phase", 0.5, fixed=True))),
    ])


@pytest.fixture
def dalitz_points(phase_space):
    """A few hundred points inside the phase space."""

    grid = phase_space.grid(40)
    rng = np.random.default_rng(7)
    chosen = rng.choice(grid.size, size=300, replace=False)
    return grid.mSq12[chosen], grid.mSq13[chosen], grid.mSq23[chosen]
