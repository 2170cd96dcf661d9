# mypy: ignore-errors

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from blockgp import GaussianProcessPrior, GaussianProcessRegression, kernels, noise
from blockgp.optimize import grid_search
from blockgp.solvers import DirectSolver
from blockgp.test_utils import assert_allclose


@pytest.fixture
def data(random):
    X = np.sort(random.uniform(0, 10, 17))
    y = np.cos(X) + 0.1 * random.normal(size=len(X))
    return X, y


@pytest.fixture
def prior():
    return GaussianProcessPrior(
        kernels.Matern32(2.0), noise=noise.WhiteNoise(0.1), mean=0.5, block_size=5
    )


def test_prior_distribution(data, prior):
    X, _ = data
    dist = prior.prior_distribution(X)
    assert dist.mean.partitioning == (5, 5, 5, 2)
    assert_allclose(dist.mean, jnp.full(len(X), 0.5))

    jitter = np.sqrt(np.finfo(np.float64).eps)
    expect = kernels.Matern32(2.0)(X, X) + (0.1 + jitter) * np.eye(len(X))
    assert_allclose(dist.covariance, expect)


def test_posterior_model(data, prior):
    X, y = data
    model = prior.posterior_model(X, y)
    assert isinstance(model, GaussianProcessRegression)
    assert model.block_size == 5
    assert model.kernel is prior.kernel
    assert_allclose(model.log_likelihood(), prior.prior_distribution(X).log_density(y))

    model = prior.posterior_model(X, y, solver=DirectSolver)
    assert model.solver is DirectSolver

    tuned = prior.posterior_model(X, y, tune=lambda m: grid_search(m, grid_size=3))
    assert tuned.log_likelihood() >= model.log_likelihood() - 1e-9


def test_scaled(data, prior):
    X, _ = data

    def g(x):
        return 1.0 + 0.1 * x

    scaled = prior.scaled(g)
    assert scaled.block_size == prior.block_size
    assert scaled.kernel.state == prior.kernel.state

    gx = jax.vmap(g)(X)
    dist = scaled.prior_distribution(X)
    jitter = np.sqrt(np.finfo(np.float64).eps)
    expect = gx[:, None] * kernels.Matern32(2.0)(X, X) * gx[None, :]
    expect = expect + (0.1 + jitter) * np.eye(len(X))
    assert_allclose(dist.mean, 0.5 * gx)
    assert_allclose(dist.covariance, expect)
