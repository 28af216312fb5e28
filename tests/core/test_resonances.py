import numpy as np
import pytest

from core.coefficients import CoefExpr
from core.resonances import Amplitude, NonResonant, Resonance
from core.variables import Parameter


def _rho(spin=0):
    return Resonance("23", CoefExpr.constant(1.0, name="rho"),
                     Parameter("rho_mass", 0.77526, fixed=True),
                     Parameter("rho_width", 0.1491, fixed=True), spin=spin)


def test_peak_magnitude_of_scalar_resonance(phase_space):
    res = _rho()
    mSq23 = 0.77526**2
    mSq12 = 1.0
    mSq13 = phase_space.m_sq_sum - mSq12 - mSq23
    value = res.evaluate(phase_space, mSq12, mSq13, mSq23)
    assert abs(value) == pytest.approx(1.0 / (0.77526 * 0.1491), rel=1e-10)
    # Purely imaginary at the pole mass.
    assert value.real == pytest.approx(0.0, abs=1e-9)


def test_zero_outside_channel_range(phase_space):
    res = _rho(spin=1)
    values = res.evaluate(phase_space, np.array([1.0, 1.0]), np.array([1.0, 1.0]), np.array([0.01, 4.0]))
    assert values.tolist() == [0.0, 0.0]


def test_vector_resonance_vanishes_on_the_helicity_node(phase_space):
    # For identical pions the spin-1 angular factor is mSq12 - mSq13.
    res = _rho(spin=1)
    mSq23 = 0.6
    mSq12 = 0.5 * (phase_space.m_sq_sum - mSq23)
    value = res.evaluate(phase_space, mSq12, mSq12, mSq23)
    assert abs(value) == pytest.approx(0.0, abs=1e-12)


def test_invalid_configuration():
    coef = CoefExpr.constant(1.0)
    mass = Parameter("m", 1.0, fixed=True)
    width = Parameter("w", 0.1, fixed=True)
    with pytest.raises(ValueError):
        Resonance("14", coef, mass, width)
    with pytest.raises(ValueError):
        Resonance("12", coef, mass, width, spin=3)


def test_conjugate_exchanges_the_two_invariants(phase_space, kspipi_amplitude):
    mSq12 = np.array([0.8, 1.1, 1.9])
    mSq13 = np.array([1.4, 0.9, 0.7])
    np.testing.assert_allclose(
        kspipi_amplitude.evaluate_conjugate(phase_space, mSq12, mSq13),
        kspipi_amplitude.evaluate(phase_space, mSq13, mSq12),
    )


def test_amplitude_parameters_and_fixed_state(kspipi_amplitude):
    names = [par.name for par in kspipi_amplitude.parameters()]
    assert names.count("kstar_mass") == 1
    assert "rho_re" in names and "nr_mod" in names
    assert kspipi_amplitude.is_fixed()

    kspipi_amplitude.set_pars({"nr_mod": Parameter("nr_mod", 2.5, fixed=False)})
    assert not kspipi_amplitude.is_fixed()
    assert kspipi_amplitude.terms[-1].coef.evaluate() == pytest.approx(2.5 * np.exp(0.5j))


def test_non_resonant_is_flat(phase_space):
    term = NonResonant(CoefExpr.cartesian(Parameter("a", 0.3), Parameter("b", -0.4)))
    values = Amplitude([term]).evaluate(phase_space, np.array([0.8, 1.5]), np.array([1.2, 0.9]))
    np.testing.assert_allclose(values, [0.3 - 0.4j, 0.3 - 0.4j])
