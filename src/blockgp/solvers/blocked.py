from __future__ import annotations

__all__ = ["BlockedSolver"]

import logging
from typing import Any

import equinox as eqx
import numpy as np

from blockgp.helpers import JAXArray
from blockgp.kernels.base import Kernel
from blockgp.partitioned import (
    LowerTriPartitionedMatrix,
    PartitionedPSDMatrix,
    PartitionedVector,
    linalg,
)
from blockgp.solvers.solver import Solver

logger = logging.getLogger(__name__)


class BlockedSolver(Solver):
    """A solver built on the blocked Cholesky factorization

    The Gram matrix is assembled tile by tile and factorized with
    :func:`blockgp.partitioned.linalg.cholesky`, so no dense ``n x n`` array is
    ever formed. This is the default solver.

    Raises:
        NotPositiveDefinite: If the Gram matrix can't be factorized.
    """

    X: Any
    block_size: int = eqx.field(static=True)
    covariance_value: PartitionedPSDMatrix
    scale_tril: LowerTriPartitionedMatrix

    def __init__(
        self,
        kernel: Kernel,
        X: Any,
        noise: Kernel,
        *,
        block_size: int,
        jitter: Any = 0.0,
    ):
        """Build a :class:`BlockedSolver` for a given kernel and coordinates

        Args:
            kernel: The kernel function.
            X: The input coordinates.
            noise: The noise model for the process.
            block_size: The number of rows in each block.
            jitter: A constant added to the diagonal of the Gram matrix.
        """
        self.X = X
        self.block_size = int(block_size)
        covariance = kernel.build_blocked_kernel_matrix(
            X, self.block_size
        ) + noise.build_blocked_kernel_matrix(X, self.block_size)
        self.covariance_value = covariance.add_diagonal(jitter)
        logger.debug(
            "Factorizing a %d x %d Gram matrix with block size %d",
            self.covariance_value.rows,
            self.covariance_value.cols,
            self.block_size,
        )
        self.scale_tril = linalg.cholesky(self.covariance_value)

    def variance(self) -> PartitionedVector:
        return self.covariance_value.diagonal()

    def covariance(self) -> PartitionedPSDMatrix:
        return self.covariance_value

    def normalization(self) -> JAXArray:
        return 0.5 * linalg.log_det(self.scale_tril) + 0.5 * self.scale_tril.rows * np.log(
            2 * np.pi
        )

    def solve_triangular(self, y: Any, *, transpose: bool = False) -> Any:
        return linalg.solve_triangular(self.scale_tril, y, transpose=transpose)

    def dot_triangular(self, y: Any) -> Any:
        return linalg.dot_triangular(self.scale_tril, y)

    def inverse(self) -> PartitionedPSDMatrix:
        return linalg.cho_inverse(self.scale_tril)

