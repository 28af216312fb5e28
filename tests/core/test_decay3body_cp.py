import logging
from types import SimpleNamespace

import numpy as np
import pytest
from scipy.integrate import simpson

from config.constants import M_D0, M_KS, M_PI
from core import decay3body_cp
from core import random as rng
from core.cache import CacheRegistry
from core.coefficients import CoefExpr
from core.decay3body_cp import Decay3BodyCP, multiply
from core.exceptions import DegenerateDensityError, PdfException
from core.functions import Function
from core.phasespace import PhaseSpace
from core.variables import Parameter
from dataio.dataset import Dataset
from pipelines.fit_core.config import IntegrationSettings

BINS = 150


def _z(re=0.3, im=0.2, fixed=True):
    return CoefExpr.cartesian(Parameter("z_re", re, fixed=fixed, limits=(-0.7, 0.7)),
                              Parameter("z_im", im, fixed=fixed, limits=(-0.7, 0.7)))


@pytest.fixture
def model(dalitz_vars, kspipi_amplitude, phase_space):
    return Decay3BodyCP(*dalitz_vars, kspipi_amplitude, _z(), phase_space, norm_bins=BINS)


def _grid_integral(pdf, phase_space):
    grid = phase_space.grid(BINS)
    return float(np.sum(pdf.evaluate(grid.mSq12, grid.mSq13, grid.mSq23)) * grid.bin_area)


def test_zero_outside_the_phase_space(model):
    assert model.evaluate(0.1, 0.1) == 0.0
    assert model.evaluate(3.0, 3.0) == 0.0
    values = model.evaluate(np.array([0.1, 1.0, 2.9]), np.array([0.1, 1.0, 2.9]))
    assert values[0] == 0.0 and values[2] == 0.0
    assert values[1] > 0.0
    assert not np.any(np.isnan(values))


def test_density_is_normalized(model, phase_space):
    assert _grid_integral(model, phase_space) == pytest.approx(1.0, rel=1e-10)


def test_norm_combines_the_three_components(dalitz_vars, kspipi_amplitude, phase_space):
    kappa = Parameter("kappa", 0.5, fixed=True)
    pdf = Decay3BodyCP(*dalitz_vars, kspipi_amplitude, _z(), phase_space, kappa=kappa, norm_bins=BINS)
    z = complex(0.3, 0.2)
    assert pdf.kappa() == 0.5
    assert pdf.norm == pytest.approx(pdf.n_dir + pdf.n_cnj + 2.0 * 0.5 * (z * pdf.n_xed).real)
    assert "kappa" in pdf.par_names()
    assert _grid_integral(pdf, phase_space) == pytest.approx(1.0, rel=1e-10)


def test_vanishing_interference_gives_the_incoherent_sum(dalitz_vars, kspipi_amplitude, phase_space, dalitz_points):
    pdf = Decay3BodyCP(*dalitz_vars, kspipi_amplitude, _z(0.0, 0.0), phase_space, norm_bins=BINS)
    mSq12, mSq13, mSq23 = dalitz_points
    amp_dir = kspipi_amplitude.evaluate(phase_space, mSq12, mSq13, mSq23)
    amp_cnj = kspipi_amplitude.evaluate(phase_space, mSq13, mSq12, mSq23)

    expected = (np.abs(amp_dir) ** 2 + np.abs(amp_cnj) ** 2) / (pdf.n_dir + pdf.n_cnj)
    np.testing.assert_allclose(pdf.evaluate(mSq12, mSq13, mSq23), expected, rtol=1e-12)
    assert pdf.norm == pdf.n_dir + pdf.n_cnj


def test_three_values_agree_with_two(model):
    mSq23 = model.phase_space.mSq23(1.0, 1.2)
    assert model.evaluate(1.0, 1.2) == pytest.approx(model.evaluate(1.0, 1.2, mSq23), rel=1e-14)
    model.set_vars([1.0, 1.2, mSq23])
    assert model.evaluate() == pytest.approx(model.evaluate(1.0, 1.2))
    assert model.evaluate_vars([1.0, 1.2, mSq23]) == pytest.approx(model.evaluate(1.0, 1.2))


def test_usage_errors(model):
    with pytest.raises(PdfException):
        model.evaluate(1.0)
    with pytest.raises(PdfException):
        model.evaluate(1.0, 1.0, 1.0, 1.0)
    with pytest.raises(PdfException):
        model.project("x", 1.0)
    with pytest.raises(PdfException):
        model.evaluate_unnorm(0.1, 0.1, check_boundary=True)


def test_cache_is_idempotent(model):
    before = (model.n_dir, model.n_cnj, model.n_xed, model.norm)
    model.cache()
    model.cache()
    assert (model.n_dir, model.n_cnj, model.n_xed, model.norm) == before


def test_floating_interference_reuses_components(model, monkeypatch):
    calls = []
    original = model._compute_components
    monkeypatch.setattr(model, "_compute_components", lambda: (calls.append(1), original()))
    n_dir, norm = model.n_dir, model.norm

    model.set_par_fixed("z_re", False)
    model.set_par("z_re", -0.2)
    assert calls == []
    assert model.n_dir == n_dir
    assert model.norm != norm

    model.set_par_fixed("nr_mod", False)
    model.set_par("nr_mod", 2.2)
    assert calls == [1]
    assert model.n_dir != n_dir
    assert not model.fixed_amp


def test_changed_fixed_amplitude_recomputes_components(model):
    n_dir = model.n_dir
    model.set_par("nr_mod", 2.5)
    assert model.fixed_amp
    assert model.n_dir != n_dir


def test_injected_components_are_honored_only_for_fixed_amplitude(model):
    model.set_norm_components(2.0, 0.5 + 0.1j)
    assert (model.n_dir, model.n_cnj, model.n_xed) == (2.0, 2.0, 0.5 + 0.1j)
    assert model.norm == pytest.approx(4.0 + 2.0 * ((0.3 + 0.2j) * (0.5 + 0.1j)).real)

    model.cache()
    assert model.n_dir == 2.0

    model.set_norm_components(2.0, 3.0, 0.5 + 0.1j)
    assert (model.n_dir, model.n_cnj, model.n_xed) == (2.0, 3.0, 0.5 + 0.1j)

    model.set_par_fixed("nr_mod", False)
    model.cache()
    computed = model.n_dir
    model.set_norm_components(7.0, 0.0)
    assert model.n_dir == computed


def test_components_read_back_can_be_injected(model):
    n_dir, n_cnj, n_xed, norm = model.n_dir, model.n_cnj, model.n_xed, model.norm
    model.set_norm_components(n_dir, n_cnj, n_xed)
    assert (model.n_dir, model.n_cnj, model.n_xed) == (n_dir, n_cnj, n_xed)
    assert model.norm == pytest.approx(norm, rel=1e-14)


@pytest.mark.parametrize(
    "components, error",
    [
        ((5.0, "large", 0.1j), PdfException),
        ((5.0, 0.2 + 0.1j, 0.1j), PdfException),
        ((5.0, 4.0, 0.1j, 1.0), PdfException),
        ((-5.0, -4.0, 0.0), DegenerateDensityError),
    ],
)
def test_rejected_injection_leaves_components_unchanged(model, components, error):
    before = (model.n_dir, model.n_cnj, model.n_xed, model.norm)
    with pytest.raises(error):
        model.set_norm_components(*components)
    assert (model.n_dir, model.n_cnj, model.n_xed, model.norm) == before


def _publish(pdf, data):
    registry = CacheRegistry()
    registry.publish(pdf.cache_real(data, registry.allocator), pdf.cache_complex(data, registry.allocator))
    registry.freeze()
    return registry


def test_cached_density_matches_direct(model, dalitz_points):
    data = Dataset(dict(zip(["mSq12", "mSq13", "mSq23"], dalitz_points)))
    registry = _publish(model, data)
    assert len(registry.real) == 1
    assert len(registry.complex) == 2
    assert model.do_cache

    columns = [data.values(name) for name in model.var_names()]
    direct = model.evaluate(*columns)
    np.testing.assert_allclose(model.evaluate_cached(columns, registry.real, registry.complex), direct, rtol=1e-12)

    for i in (0, 17, 299):
        cache_r, cache_c = registry.entry(i)
        point = [column[i] for column in columns]
        assert model.evaluate_cached(point, cache_r, cache_c) == pytest.approx(direct[i], rel=1e-12)


def test_cached_amplitudes_serve_floating_interference(dalitz_vars, kspipi_amplitude, phase_space, dalitz_points):
    pdf = Decay3BodyCP(*dalitz_vars, kspipi_amplitude, _z(fixed=False), phase_space, norm_bins=BINS)
    data = Dataset(dict(zip(["mSq12", "mSq13", "mSq23"], dalitz_points)))
    registry = _publish(pdf, data)
    assert len(registry.real) == 0
    assert len(registry.complex) == 2

    columns = [data.values(name) for name in pdf.var_names()]
    pdf.set_pars({"z_re": -0.4, "z_im": 0.1})
    assert pdf.do_cache
    np.testing.assert_allclose(pdf.evaluate_cached(columns, registry.real, registry.complex),
                               pdf.evaluate(*columns), rtol=1e-12)


def test_floating_amplitude_falls_back_to_direct_evaluation(model, dalitz_points):
    data = Dataset(dict(zip(["mSq12", "mSq13", "mSq23"], dalitz_points)))
    registry = _publish(model, data)
    columns = [data.values(name) for name in model.var_names()]
    stale = model.evaluate_cached(columns, registry.real, registry.complex)

    model.set_par_fixed("nr_mod", False)
    model.cache()
    assert not model.do_cache

    model.set_par("nr_mod", 1.0)
    fresh = model.evaluate_cached(columns, registry.real, registry.complex)
    np.testing.assert_allclose(fresh, model.evaluate(*columns), rtol=1e-12)
    assert not np.allclose(fresh, stale)


def test_projection_integrates_to_one(model, phase_space):
    low, high = phase_space.limits("12")
    points = np.linspace(low, high, 201)
    projected = np.array([model.project("mSq12", value) for value in points])
    assert np.all(projected >= 0.0)
    assert simpson(projected, x=points) == pytest.approx(1.0, abs=0.03)

    assert model.project("mSq23", 0.6) > 0.0
    assert model.project("mSq13", 0.01) == 0.0


def test_projection_follows_configured_points(model, monkeypatch):
    sizes = []

    def recording_simpson(y, x):
        sizes.append(len(x))
        return simpson(y, x=x)

    monkeypatch.setattr(decay3body_cp, "simpson", recording_simpson)
    default = model.project("mSq12", 1.0)
    model.set_integration(IntegrationSettings(norm_bins=BINS, projection_points=5))
    assert model.projection_points == 5
    coarse = model.project("mSq12", 1.0)

    assert sizes == [IntegrationSettings().projection_points, 5]
    assert coarse > 0.0
    assert coarse != pytest.approx(default, rel=1e-9)


def test_norm_bins_setting_rebuilds_components(dalitz_vars, kspipi_amplitude, phase_space, model):
    coarse = Decay3BodyCP(*dalitz_vars, kspipi_amplitude, _z(), phase_space, norm_bins=60)
    model.set_integration(IntegrationSettings(norm_bins=60))
    assert model.norm_bins == 60
    assert model.n_dir == pytest.approx(coarse.n_dir, rel=1e-12)
    assert model.n_xed == pytest.approx(coarse.n_xed, rel=1e-12)

    with pytest.raises(PdfException):
        model.set_integration(SimpleNamespace(norm_bins=1, projection_points=5, max_generation_tries=10))
    assert model.norm_bins == 60


def test_generate_needs_a_maximum(model, phase_space):
    with pytest.raises(PdfException):
        model.generate()

    grid = phase_space.grid(BINS)
    model.set_max_pdf(1.5 * float(np.max(model.evaluate(grid.mSq12, grid.mSq13, grid.mSq23))))
    rng.seed(2)
    for _ in range(50):
        point = model.generate()
        assert phase_space.contains(point["mSq12"], point["mSq13"])
        assert point["mSq23"] == pytest.approx(phase_space.mSq23(point["mSq12"], point["mSq13"]))


def test_multiply_returns_a_new_normalized_model(model, phase_space):
    efficiency = Function(lambda mSq12, slope: 1.0 + slope * mSq12, ["mSq12"],
                          [Parameter("eff_slope", 0.5, fixed=True)])
    product = model.multiply(efficiency)

    assert product is not model
    assert model.functions == []
    assert len(product.functions) == 1
    assert "eff_slope" in product.par_names()
    assert product.n_dir != model.n_dir
    assert _grid_integral(product, phase_space) == pytest.approx(1.0, rel=1e-10)

    ratio = product.evaluate(1.0, 1.2) / model.evaluate(1.0, 1.2)
    assert ratio == pytest.approx(1.5 * model.norm / product.norm, rel=1e-12)

    again = multiply(model, efficiency)
    assert again.norm == pytest.approx(product.norm, rel=1e-14)


def test_fixed_product_caches_only_its_density(model, dalitz_points):
    efficiency = Function(lambda mSq12, slope: 1.0 + slope * mSq12, ["mSq12"],
                          [Parameter("eff_slope", 0.5, fixed=True)])
    product = model.multiply(efficiency)
    data = Dataset(dict(zip(["mSq12", "mSq13", "mSq23"], dalitz_points)))
    registry = _publish(product, data)
    assert len(registry.real) == 1
    assert not product.functions[0].do_cache

    columns = [data.values(name) for name in product.var_names()]
    np.testing.assert_allclose(product.evaluate_cached(columns, registry.real, registry.complex),
                               product.evaluate(*columns), rtol=1e-12)


def test_multiply_rejects_unknown_variables(model):
    with pytest.raises(PdfException):
        model.multiply(Function(lambda x: x, ["x"]))


def test_negative_function_is_a_degenerate_density(model):
    with pytest.raises(DegenerateDensityError) as excinfo:
        model.multiply(Function(lambda mSq12: -1.0 + 0.0 * mSq12, ["mSq12"]))
    assert "norm" in excinfo.value.to_dict()["context"]


def test_unequal_daughter_masses_are_reported(dalitz_vars, kspipi_amplitude, caplog):
    phase_space = PhaseSpace(M_D0, M_PI, M_KS, M_PI)
    with caplog.at_level(logging.WARNING, logger="core.decay3body_cp"):
        Decay3BodyCP(*dalitz_vars, kspipi_amplitude, _z(), phase_space, norm_bins=30)
    assert "differ in mass" in caplog.text
