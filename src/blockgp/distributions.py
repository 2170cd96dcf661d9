"""
A multivariate normal distribution over partitioned vectors. The posterior of a
:class:`blockgp.GaussianProcessRegression` model is returned as a
:class:`BlockedMultivariateNormal`, and all of its computations go through the
blocked Cholesky factor of the covariance.
"""

from __future__ import annotations

__all__ = ["BlockedMultivariateNormal"]

import logging
from typing import Any

import jax
import jax.numpy as jnp
import numpy as np

from blockgp.errors import DimensionMismatch
from blockgp.helpers import JAXArray
from blockgp.partitioned import (
    LowerTriPartitionedMatrix,
    PartitionedPSDMatrix,
    PartitionedVector,
    linalg,
    ops,
)

logger = logging.getLogger(__name__)


class BlockedMultivariateNormal:
    """A Gaussian with a partitioned mean and covariance

    The lower triangular Cholesky factor of the covariance is computed the
    first time it is needed and then reused; the distribution itself is
    immutable.

    Args:
        mean: The mean vector.
        covariance: The covariance matrix, with the same partitioning as
            ``mean`` along both axes.

    Raises:
        DimensionMismatch: If the partitioning of ``covariance`` does not match
            ``mean``.
    """

    def __init__(self, mean: PartitionedVector, covariance: PartitionedPSDMatrix):
        if (
            covariance.row_sizes != mean.partitioning
            or covariance.col_sizes != mean.partitioning
        ):
            raise DimensionMismatch(
                f"The covariance is partitioned as {covariance.row_sizes} x "
                f"{covariance.col_sizes} but the mean is partitioned as "
                f"{mean.partitioning}"
            )
        self.mean = mean
        self.covariance = covariance
        self._scale_tril: LowerTriPartitionedMatrix | None = None

    def __repr__(self) -> str:
        return (
            f"BlockedMultivariateNormal(size={self.size}, "
            f"partitioning={self.mean.partitioning})"
        )

    @property
    def size(self) -> int:
        return self.mean.rows

    @property
    def scale_tril(self) -> LowerTriPartitionedMatrix:
        """The blocked Cholesky factor of the covariance"""
        if self._scale_tril is None:
            logger.debug("Factorizing a %d dimensional covariance", self.size)
            self._scale_tril = linalg.cholesky(self.covariance)
        return self._scale_tril

    @property
    def mode(self) -> PartitionedVector:
        return self.mean

    @property
    def variance(self) -> PartitionedVector:
        """The marginal variance of each element"""
        return ops.bdiag(self.covariance)

    def _as_partitioned(self, x: Any) -> PartitionedVector:
        if isinstance(x, PartitionedVector):
            self.mean.check_partitioning(x)
            return x
        return PartitionedVector.from_partitioning(x, self.mean.partitioning)

    def draw(self, key: JAXArray) -> PartitionedVector:
        """Generate one sample as ``mean + L @ z`` for standard normal ``z``"""
        keys = jax.random.split(key, self.mean.row_blocks)
        z = PartitionedVector(
            [
                jax.random.normal(k, b.shape, dtype=self.mean.dtype)
                for k, b in zip(keys, self.mean.blocks)
            ]
        )
        return self.mean + linalg.dot_triangular(self.scale_tril, z)

    def sample(self, key: JAXArray, num: int = 1) -> JAXArray:
        """Generate ``num`` samples as the rows of a dense array"""
        return jnp.stack([self.draw(k).to_dense() for k in jax.random.split(key, num)])

    def unnormalized_log_density(self, x: Any) -> JAXArray:
        r"""Compute :math:`-\frac{1}{2}(x - \mu)^T\,\Sigma^{-1}\,(x - \mu)`"""
        centered = self._as_partitioned(x) - self.mean
        return -0.5 * ops.quadratic_form(self.scale_tril, centered)

    @property
    def log_normalizer(self) -> JAXArray:
        """``n/2 log(2 pi) + sum(log(diag(L)))``"""
        return 0.5 * self.size * np.log(2 * np.pi) + ops.bsum(
            ops.blog(ops.bdiag(self.scale_tril))
        )

    def log_density(self, x: Any) -> JAXArray:
        """The log probability density at ``x``"""
        return self.unnormalized_log_density(x) - self.log_normalizer

    @property
    def entropy(self) -> JAXArray:
        """The differential entropy, ``n/2 (1 + log(2 pi)) + sum(log(diag(L)))``"""
        return 0.5 * self.size * (1 + np.log(2 * np.pi)) + ops.bsum(
            ops.blog(ops.bdiag(self.scale_tril))
        )

    def confidence_interval(self, s: float) -> tuple[PartitionedVector, PartitionedVector]:
        """The error bars ``mean -/+ |s| L @ 1``

        The sign of ``s`` is ignored so that the lower bound is always the
        first element of the result.
        """
        ones = PartitionedVector([jnp.ones_like(b) for b in self.mean.blocks])
        bar = linalg.dot_triangular(self.scale_tril, ones * abs(s))
        return self.mean - bar, self.mean + bar
