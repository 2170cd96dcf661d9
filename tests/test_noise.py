# mypy: ignore-errors

import jax.numpy as jnp
import numpy as np
import pytest

from blockgp import kernels, noise
from blockgp.helpers import Path
from blockgp.partitioned import PartitionedPSDMatrix
from blockgp.test_utils import assert_allclose


def test_white_noise(random):
    x = random.normal(size=(11, 2))
    model = noise.WhiteNoise(0.3)
    assert model.state == {Path("variance"): 0.3}

    K = model.build_blocked_kernel_matrix(x, 4)
    assert isinstance(K, PartitionedPSDMatrix)
    assert_allclose(K.to_dense(), 0.3 * np.eye(11))
    assert_allclose(model(x), jnp.full(11, 0.3))


def test_white_noise_coincident_inputs():
    # Repeated inputs are the same observation location
    x = jnp.array([0.0, 1.0, 1.0, 2.0])
    K = noise.WhiteNoise(0.5)(x, x)
    expect = 0.5 * np.eye(4)
    expect[1, 2] = expect[2, 1] = 0.5
    assert_allclose(K, expect)


def test_white_noise_pytree_inputs(random):
    t = jnp.array([0.0, 0.0, 1.0])
    z = jnp.array([[1.0, 2.0], [1.0, 3.0], [1.0, 2.0]])
    K = noise.WhiteNoise(2.0)((t, z), (t, z))
    assert_allclose(K, 2.0 * np.eye(3))


def test_zero(random):
    x = random.normal(size=(7, 3))
    model = noise.Zero()
    assert model.state == {}
    assert_allclose(model.build_blocked_kernel_matrix(x, 3).to_dense(), np.zeros((7, 7)))
    assert model.gradient(x[0], x[0]) == {}


def test_noise_is_a_kernel(random):
    x = random.normal(size=(6, 2))
    k = kernels.ExpSquared(1.0) + noise.WhiteNoise(0.1)
    assert_allclose(k(x, x), kernels.ExpSquared(1.0)(x, x) + 0.1 * np.eye(6))
    assert set(map(str, k.state)) == {"ExpSquared/scale", "WhiteNoise/variance"}

    with pytest.raises(ValueError):
        noise.WhiteNoise(0.1).block("scale")
