from __future__ import annotations

__all__ = ["DirectSolver"]

from typing import Any

import equinox as eqx
import jax.numpy as jnp
import numpy as np
from jax.scipy import linalg

from blockgp.errors import NotPositiveDefinite
from blockgp.helpers import JAXArray
from blockgp.kernels.base import Kernel
from blockgp.partitioned import (
    PartitionedMatrix,
    PartitionedPSDMatrix,
    PartitionedVector,
    partition_sizes,
)
from blockgp.solvers.solver import Solver


class DirectSolver(Solver):
    """A direct solver that uses ``jax``'s built in Cholesky factorization

    The Gram matrix is evaluated as one dense array and factorized in a single
    call. Partitioned inputs are flattened before the dense solves and the
    results are split back with the partitioning of the input, which makes
    this solver a drop in reference for :class:`BlockedSolver`.
    """

    X: Any
    block_size: int = eqx.field(static=True)
    covariance_value: JAXArray
    scale_tril: JAXArray

    def __init__(
        self,
        kernel: Kernel,
        X: Any,
        noise: Kernel,
        *,
        block_size: int,
        jitter: Any = 0.0,
    ):
        """Build a :class:`DirectSolver` for a given kernel and coordinates

        Args:
            kernel: The kernel function.
            X: The input coordinates.
            noise: The noise model for the process.
            block_size: The number of rows per block of the partitioned
                results.
            jitter: A constant added to the diagonal of the Gram matrix.
        """
        self.X = X
        self.block_size = int(block_size)
        covariance = kernel.build_kernel_matrix(X) + noise.build_kernel_matrix(X)
        covariance = covariance + jitter * jnp.eye(covariance.shape[0])
        self.covariance_value = covariance
        self.scale_tril = linalg.cholesky(covariance, lower=True)
        if not bool(jnp.all(jnp.isfinite(self.scale_tril))):
            raise NotPositiveDefinite()

    @property
    def sizes(self) -> tuple[int, ...]:
        return partition_sizes(self.scale_tril.shape[0], self.block_size)

    def variance(self) -> PartitionedVector:
        return PartitionedVector.from_partitioning(
            jnp.diag(self.covariance_value), self.sizes
        )

    def covariance(self) -> PartitionedPSDMatrix:
        return PartitionedPSDMatrix.from_partitioning(
            self.covariance_value, self.sizes
        )

    def normalization(self) -> JAXArray:
        return jnp.sum(
            jnp.log(jnp.diag(self.scale_tril))
        ) + 0.5 * self.scale_tril.shape[0] * np.log(2 * np.pi)

    def _dense(self, func: Any, y: Any) -> Any:
        if isinstance(y, PartitionedVector):
            return PartitionedVector.from_partitioning(
                func(y.to_dense()), y.partitioning
            )
        if isinstance(y, PartitionedMatrix):
            return PartitionedMatrix.from_partitioning(
                func(y.to_dense()), y.row_sizes, y.col_sizes
            )
        return func(jnp.asarray(y))

    def solve_triangular(self, y: Any, *, transpose: bool = False) -> Any:
        if transpose:
            return self._dense(
                lambda b: linalg.solve_triangular(self.scale_tril, b, lower=True, trans=1),
                y,
            )
        else:
            return self._dense(
                lambda b: linalg.solve_triangular(self.scale_tril, b, lower=True), y
            )

    def dot_triangular(self, y: Any) -> Any:
        return self._dense(
            lambda b: jnp.einsum("ij,j...->i...", self.scale_tril, b), y
        )

    def inverse(self) -> PartitionedPSDMatrix:
        eye = jnp.eye(self.scale_tril.shape[0], dtype=self.scale_tril.dtype)
        inv = linalg.cho_solve((self.scale_tril, True), eye)
        return PartitionedPSDMatrix.from_partitioning(inv, self.sizes)
