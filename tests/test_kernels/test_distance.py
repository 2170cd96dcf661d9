# mypy: ignore-errors

import jax
import jax.numpy as jnp
import pytest
from jax.test_util import check_grads

from blockgp.kernels import L1Distance, L2Distance
from blockgp.test_utils import assert_allclose


def check(comp, expect, args, order=2, **kwargs):
    assert_allclose(expect(*args), comp(*args))
    assert_allclose(jax.grad(comp)(*args), jax.grad(expect)(*args))
    check_grads(comp, args, order=order, **kwargs)


@pytest.mark.parametrize(
    "x1, x2",
    [(0.0, 1.5), (jnp.array([0.0, 0.1]), jnp.array([1.5, -0.2]))],
)
def test_l2_distance(x1, x2):
    def expect(x1, x2):
        return jnp.sqrt(jnp.sum(jnp.square(x1 - x2)))

    check(L2Distance().distance, expect, (x1, x2))
    assert_allclose(L2Distance().squared_distance(x1, x2), jnp.square(expect(x1, x2)))


def test_l2_distance_grad_at_zero():
    comp = L2Distance().distance
    x1 = jnp.array([0.0, 0.1])
    g = jax.grad(comp)(x1, x1)
    assert_allclose(comp(x1, x1), 0.0)
    assert jnp.all(jnp.isfinite(g))


def test_l1_distance():
    x1 = jnp.array([0.0, 0.1, -2.0])
    x2 = jnp.array([1.5, -0.2, -1.0])
    assert_allclose(L1Distance().distance(x1, x2), 2.8)
    assert_allclose(L1Distance().squared_distance(x1, x2), 2.8**2)


@pytest.mark.parametrize("metric", [L1Distance(), L2Distance()])
def test_scaled_distance(metric):
    x1 = jnp.array([0.0, 0.1, -2.0])
    x2 = jnp.array([1.5, -0.2, -1.0])
    scale = 1.7

    r, dr = metric.scaled_distance(x1, x2, scale)
    assert_allclose(r, metric.distance(x1, x2) / scale)
    assert_allclose(dr, jax.grad(lambda s: metric.distance(x1, x2) / s)(scale))

    r2, dr2 = metric.scaled_squared_distance(x1, x2, scale)
    assert_allclose(r2, jnp.square(r))
    assert_allclose(
        dr2, jax.grad(lambda s: metric.squared_distance(x1, x2) / s**2)(scale)
    )
