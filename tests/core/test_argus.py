import math

import numpy as np
import pytest
from scipy.integrate import quad

from core import random as rng
from core.argus import Argus
from core.cache import CacheIndexAllocator
from core.exceptions import PdfException
from core.variables import Parameter, Variable
from dataio.dataset import Dataset


def _argus(c=5.0, chi=0.0):
    return Argus(Variable("mbc"), Parameter("c", c, fixed=True), Parameter("chi", chi, fixed=True))


def test_zero_outside_support():
    pdf = _argus()
    assert pdf.evaluate(-1.0) == 0.0
    assert pdf.evaluate(5.5) == 0.0
    assert pdf.evaluate(0.0) == 0.0


def test_closed_form_without_curvature():
    pdf = _argus()
    norm = 25.0 / 3.0
    assert pdf.norm == pytest.approx(norm)
    assert pdf.evaluate(2.5) == pytest.approx(2.5 * math.sqrt(1.0 - 0.25) / norm, rel=1e-12)


@pytest.mark.parametrize("chi", [0.0, 0.5, 3.0])
def test_area_over_support_is_one(chi):
    pdf = _argus(chi=chi)
    assert pdf.area(0.0, 5.0) == pytest.approx(1.0, abs=1e-12)
    assert pdf.area(-10.0, 10.0) == pytest.approx(1.0, abs=1e-12)


@pytest.mark.parametrize("chi", [0.0, 1.5])
def test_area_matches_numerical_integral(chi):
    pdf = _argus(chi=chi)
    expected, _ = quad(pdf.evaluate, 1.0, 4.0)
    assert pdf.area(1.0, 4.0) == pytest.approx(expected, rel=1e-8)


def test_limits_are_checked_and_renormalize():
    pdf = _argus(chi=1.0)
    with pytest.raises(PdfException):
        pdf.set_lower_limit(-1.0)
    with pytest.raises(PdfException):
        pdf.set_limits(-1.0, 3.0)

    pdf.set_limits(1.0, 4.0)
    assert pdf.area(0.0, 5.0) == pytest.approx(1.0, abs=1e-12)
    assert pdf.evaluate(0.5) == 0.0
    assert pdf.evaluate(4.5) == 0.0


def test_cached_path_matches_direct():
    pdf = _argus(chi=2.0)
    data = Dataset({"mbc": np.linspace(0.1, 4.9, 49)})
    cache_r = pdf.cache_real(data, CacheIndexAllocator())
    np.testing.assert_allclose(pdf.evaluate_cached([data.values("mbc")], cache_r, {}),
                               pdf.evaluate(data.values("mbc")), rtol=1e-14)


def test_generate_inside_support():
    rng.seed(5)
    for chi in (0.0, 2.0):
        pdf = _argus(chi=chi)
        pdf.set_limits(2.0, 4.5)
        samples = np.array([pdf.generate()["mbc"] for _ in range(500)])
        assert samples.min() >= 2.0 - 1e-9
        assert samples.max() <= 4.5 + 1e-9


def test_generated_mean_matches_density():
    rng.seed(17)
    pdf = _argus(chi=1.0)
    samples = np.array([pdf.generate()["mbc"] for _ in range(5000)])
    expected, _ = quad(lambda x: x * pdf.evaluate(x), 0.0, 5.0)
    assert samples.mean() == pytest.approx(expected, abs=0.05)
