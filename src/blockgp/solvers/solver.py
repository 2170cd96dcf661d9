from __future__ import annotations

__all__ = ["Solver"]

from abc import abstractmethod
from typing import Any

import equinox as eqx

from blockgp.helpers import JAXArray
from blockgp.kernels.base import Kernel
from blockgp.partitioned import (
    PartitionedMatrix,
    PartitionedPSDMatrix,
    PartitionedVector,
)


class Solver(eqx.Module):
    """The interface for the linear algebra behind a Gaussian process

    A solver owns the training Gram matrix ``K = kernel(X, X) + noise(X, X)``
    (plus jitter on the diagonal) and a lower triangular factor ``L`` with
    ``K = L @ L.T``. All inputs and outputs are partitioned structures, using
    the row partitioning of the training data.

    Subclasses store the training inputs as ``X`` and the number of rows per
    block as ``block_size``.
    """

    def __init__(
        self,
        kernel: Kernel,
        X: Any,
        noise: Kernel,
        *,
        block_size: int,
        jitter: Any = 0.0,
    ):
        del kernel, X, noise, block_size, jitter
        raise NotImplementedError

    @abstractmethod
    def variance(self) -> PartitionedVector:
        """The diagonal of the covariance matrix"""
        raise NotImplementedError

    @abstractmethod
    def covariance(self) -> PartitionedPSDMatrix:
        """The evaluated covariance matrix"""
        raise NotImplementedError

    @abstractmethod
    def normalization(self) -> JAXArray:
        """The multivariate normal normalization constant

        This should be ``(log_det + n*log(2*pi))/2``, where ``n`` is the size of
        the covariance matrix, and ``log_det`` is the log determinant of the
        matrix.
        """
        raise NotImplementedError

    @abstractmethod
    def solve_triangular(self, y: Any, *, transpose: bool = False) -> Any:
        """Solve the lower triangular linear system defined by this solver

        If the covariance matrix is ``K = L @ L.T`` for some lower triangular
        matrix ``L``, this method solves ``L @ x = y`` for some ``y``. If the
        ``transpose`` parameter is ``True``, this instead solves ``L.T @ x =
        y``.
        """
        raise NotImplementedError

    @abstractmethod
    def dot_triangular(self, y: Any) -> Any:
        """Compute a matrix product with the lower triangular linear system

        If the covariance matrix is ``K = L @ L.T`` for some lower triangular
        matrix ``L``, this method returns ``L @ y`` for some ``y``.
        """
        raise NotImplementedError

    @abstractmethod
    def inverse(self) -> PartitionedPSDMatrix:
        """The explicit inverse of the covariance matrix"""
        raise NotImplementedError

    def solve(self, y: Any) -> Any:
        """Solve ``K @ x = y`` with two triangular solves"""
        return self.solve_triangular(self.solve_triangular(y), transpose=True)

    def condition(
        self,
        kernel: Kernel,
        X_test: Any,
        *,
        cross: PartitionedMatrix | None = None,
        jitter: Any = 0.0,
    ) -> PartitionedPSDMatrix:
        """Compute the covariance matrix for a conditional GP

        Args:
            kernel: The kernel for the covariance between the observed and
                predicted data.
            X_test: The coordinates of the predicted points.
            cross: Optionally, the pre-computed partitioned matrix
                ``kernel(X, X_test)``.
            jitter: Added to the diagonal of the result.
        """
        if cross is None:
            cross = kernel.build_blocked_cross_kernel_matrix(
                self.X, X_test, self.block_size
            )
        Kss = kernel.build_blocked_kernel_matrix(X_test, self.block_size)
        A = self.solve_triangular(cross)
        return PartitionedPSDMatrix.from_matrix(Kss - A.T @ A).add_diagonal(jitter)

