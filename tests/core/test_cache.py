import numpy as np
import pytest

from core.argus import Argus
from core.cache import CacheIndexAllocator, CacheRegistry
from core.exceptions import MinimizerException
from core.gauss import Gauss
from core.variables import Parameter, Variable
from dataio.dataset import Dataset


def test_allocator_counts_real_and_complex_separately():
    allocator = CacheIndexAllocator()
    assert [allocator.next_real() for _ in range(3)] == [0, 1, 2]
    assert allocator.next_complex() == 0
    assert allocator.issued_real == 3
    assert allocator.issued_complex == 1


def test_sub_models_receive_distinct_indices():
    data = Dataset({"x": np.linspace(0.5, 4.5, 9), "y": np.linspace(-1.0, 1.0, 9)})
    models = [
        Gauss(Variable("x"), Parameter("mu_x", 2.0, fixed=True), Parameter("sigma_x", 1.0, fixed=True)),
        Gauss(Variable("y"), Parameter("mu_y", 0.0, fixed=True), Parameter("sigma_y", 0.5, fixed=True)),
        Argus(Variable("x"), Parameter("c", 5.0, fixed=True), Parameter("chi", 1.0, fixed=True)),
    ]
    registry = CacheRegistry()
    for model in models:
        registry.publish(model.cache_real(data, registry.allocator))

    indices = [model.cache_index for model in models]
    assert len(set(indices)) == len(models)
    assert sorted(registry.real) == sorted(indices)
    for model in models:
        np.testing.assert_allclose(registry.real[model.cache_index], model.evaluate_vars(model._columns(data)))


def test_publish_is_idempotent_for_identical_data():
    registry = CacheRegistry()
    registry.publish({0: np.arange(3.0)})
    registry.publish({0: np.arange(3.0)})
    assert len(registry) == 1


def test_publish_rejects_collisions_and_length_mismatch():
    registry = CacheRegistry()
    registry.publish({0: np.arange(3.0)})
    with pytest.raises(MinimizerException):
        registry.publish({0: np.ones(3)})
    with pytest.raises(MinimizerException):
        registry.publish({1: np.ones(4)})


def test_frozen_registry_is_read_only():
    registry = CacheRegistry()
    registry.publish({0: np.arange(3.0)}, {0: np.array([1j, 2j, 3j])})
    registry.freeze()

    assert registry.frozen
    with pytest.raises(MinimizerException):
        registry.publish({1: np.zeros(3)})
    with pytest.raises(ValueError):
        registry.real[0][0] = 5.0


def test_entry_slices():
    registry = CacheRegistry()
    registry.publish({0: np.arange(3.0), 1: np.arange(3.0) * 2}, {0: np.array([1j, 2j, 3j])})
    cache_r, cache_c = registry.entry(2)
    assert cache_r == {0: 2.0, 1: 4.0}
    assert cache_c == {0: 3j}
