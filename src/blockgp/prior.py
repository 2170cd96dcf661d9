from __future__ import annotations

__all__ = ["GaussianProcessPrior"]

import logging
from typing import Any, Callable

import jax.numpy as jnp

from blockgp import config, means
from blockgp.distributions import BlockedMultivariateNormal
from blockgp.gp import GaussianProcessRegression
from blockgp.helpers import JAXArray, default_jitter
from blockgp.kernels.base import Kernel, Scaled
from blockgp.noise import Zero
from blockgp.optimize import SearchResult

logger = logging.getLogger(__name__)


class GaussianProcessPrior:
    """A Gaussian process prior that can be conditioned on data

    This bundles the modeling choices (kernel, noise, mean, and block size)
    so that the same prior can be evaluated on any set of inputs, or turned
    into a tuned :class:`blockgp.GaussianProcessRegression` model.

    Args:
        kernel (Kernel): The covariance kernel.
        noise (Kernel, optional): The noise model. Defaults to no noise.
        mean (Callable, optional): A callable or constant mean function.
        block_size (int, optional): The number of rows per block. Defaults to
            :func:`blockgp.config.get_block_size`.
        jitter (float, optional): Added to the diagonal of the prior
            covariance. See :class:`blockgp.GaussianProcessRegression`.
    """

    def __init__(
        self,
        kernel: Kernel,
        *,
        noise: Kernel | None = None,
        mean: means.MeanBase | Callable[[JAXArray], JAXArray] | JAXArray | None = None,
        block_size: int | None = None,
        jitter: Any | None = None,
    ):
        self.kernel = kernel
        self.noise = Zero() if noise is None else noise
        if isinstance(mean, means.MeanBase):
            self.mean_function = mean
        elif mean is None:
            self.mean_function = means.Mean(jnp.zeros(()))
        else:
            self.mean_function = means.Mean(mean)
        self.block_size = config.get_block_size() if block_size is None else int(block_size)
        self.jitter = jitter

    def __repr__(self) -> str:
        return (
            f"GaussianProcessPrior(kernel={self.kernel.name}, "
            f"noise={self.noise.name}, block_size={self.block_size})"
        )

    def prior_distribution(self, X: Any) -> BlockedMultivariateNormal:
        """The distribution of the noisy observations at ``X`` under the prior"""
        covariance = self.kernel.build_blocked_kernel_matrix(
            X, self.block_size
        ) + self.noise.build_blocked_kernel_matrix(X, self.block_size)
        jitter = self.jitter
        if jitter is None:
            jitter = config.get_jitter()
        if jitter is None:
            jitter = default_jitter(covariance.dtype)
        return BlockedMultivariateNormal(
            self.mean_function.partitioned(X, self.block_size),
            covariance.add_diagonal(jitter),
        )

    def posterior_model(
        self,
        X: Any,
        y: Any,
        *,
        tune: Callable[[GaussianProcessRegression], SearchResult] | None = None,
        **kwargs: Any,
    ) -> GaussianProcessRegression:
        """Build a regression model for the data and optionally tune it

        Args:
            X: The training inputs.
            y: The training responses.
            tune: A hyperparameter search, like
                :func:`blockgp.optimize.grid_search`, called with the new model.
                The model from its result is returned.
            **kwargs: Passed to :class:`blockgp.GaussianProcessRegression`,
                e.g. ``solver``.
        """
        model = GaussianProcessRegression(
            self.kernel,
            X,
            y,
            noise=self.noise,
            mean=self.mean_function,
            block_size=self.block_size,
            jitter=self.jitter,
            **kwargs,
        )
        if tune is None:
            return model
        result = tune(model)
        logger.info(
            "Tuned the posterior model; log likelihood %.6g after %d evaluations",
            result.log_likelihood,
            result.num_evaluations,
        )
        return result.model

    def scaled(self, scale: Callable[[JAXArray], JAXArray]) -> GaussianProcessPrior:
        """The prior of ``g(x) f(x)`` for a fixed scaling function ``g``

        The kernel becomes ``g(x) k(x, y) g(y)`` and the mean ``g(x) m(x)``;
        the noise model is unchanged.
        """
        mean_function = self.mean_function
        return GaussianProcessPrior(
            Scaled(self.kernel, scale),
            noise=self.noise,
            mean=means.Mean(lambda x: scale(x) * mean_function(x)),
            block_size=self.block_size,
            jitter=self.jitter,
        )
