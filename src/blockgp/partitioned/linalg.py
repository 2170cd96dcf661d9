"""
Blocked factorizations and triangular solves. The algorithms walk the block
grid in dependency order: a block is only computed once every block it depends
on is available, which mirrors the scalar Cholesky-Banachiewicz and
substitution recursions lifted to tiles. The dense work on each tile is done by
``jax.scipy.linalg``.
"""

from __future__ import annotations

__all__ = [
    "cholesky",
    "solve_triangular",
    "forward_substitution",
    "back_substitution",
    "cho_solve",
    "cho_inverse",
    "log_det",
    "dot_triangular",
]

import logging
from typing import Any, Union

import jax.numpy as jnp
from jax.scipy import linalg

from blockgp.errors import DimensionMismatch, NotPositiveDefinite
from blockgp.helpers import JAXArray
from blockgp.partitioned.matrix import (
    LowerTriPartitionedMatrix,
    PartitionedMatrix,
    PartitionedPSDMatrix,
    UpperTriPartitionedMatrix,
)
from blockgp.partitioned.ops import bdiag, blog, bsum
from blockgp.partitioned.vector import PartitionedVector

logger = logging.getLogger(__name__)

Triangular = Union[LowerTriPartitionedMatrix, UpperTriPartitionedMatrix]
Partitioned = Union[PartitionedVector, PartitionedMatrix]


def cholesky(matrix: PartitionedMatrix) -> LowerTriPartitionedMatrix:
    """The blocked Cholesky factorization of a square PSD matrix

    Block rows are processed in increasing order. For block row ``i`` and
    column ``j <= i``, the residual ``K_ij - sum_{l<j} L_il L_jl^T`` is either
    factorized with a dense Cholesky (``j == i``) or solved against the
    already computed ``L_jj`` (``j < i``).

    Args:
        matrix: A partitioned matrix with identical row and column
            partitioning. Only the tiles on or below the block diagonal are
            read.

    Returns:
        The factor ``L`` with ``L @ L.T`` equal to ``matrix``.

    Raises:
        NotPositiveDefinite: If the residual of a diagonal block can't be
            factorized.
    """
    if not matrix.is_square:
        raise DimensionMismatch(
            "The blocked Cholesky factorization requires the same row and "
            f"column partitioning; got {matrix.row_sizes} x {matrix.col_sizes}"
        )

    num_blocks = matrix.row_blocks
    logger.debug(
        "Blocked Cholesky of a %d x %d matrix in %d block rows",
        matrix.rows,
        matrix.cols,
        num_blocks,
    )
    factor: dict[tuple[int, int], JAXArray] = {}
    for i in range(num_blocks):
        for j in range(i + 1):
            residual = matrix.tile(i, j)
            for k in range(j):
                residual = residual - factor[i, k] @ factor[j, k].T
            if i == j:
                tile = linalg.cholesky(residual, lower=True)
                if not bool(jnp.all(jnp.isfinite(tile))):
                    raise NotPositiveDefinite(block=i)
                factor[i, i] = tile
            else:
                factor[i, j] = linalg.solve_triangular(
                    factor[j, j], residual.T, lower=True
                ).T
    return LowerTriPartitionedMatrix(factor, matrix.row_sizes)


def _triangular_tile(
    matrix: Triangular, i: int, j: int, transpose: bool
) -> JAXArray | None:
    if transpose:
        tile = matrix.blocks.get((j, i))
        return None if tile is None else tile.T
    return matrix.blocks.get((i, j))


def _substitute(
    matrix: Triangular, rhs: list[JAXArray], transpose: bool
) -> list[JAXArray]:
    is_lower = isinstance(matrix, LowerTriPartitionedMatrix)
    forward = is_lower != transpose
    n = matrix.row_blocks
    order = range(n) if forward else range(n - 1, -1, -1)
    solution: list[Any] = [None] * n
    for i in order:
        residual = rhs[i]
        deps = range(i) if forward else range(i + 1, n)
        for j in deps:
            tile = _triangular_tile(matrix, i, j, transpose)
            if tile is not None:
                residual = residual - tile @ solution[j]
        solution[i] = linalg.solve_triangular(
            matrix.tile(i, i), residual, lower=is_lower, trans=1 if transpose else 0
        )
    return solution


def solve_triangular(
    matrix: Triangular, rhs: Partitioned, *, transpose: bool = False
) -> Any:
    """Solve a blocked triangular system

    Solves ``A @ x = rhs`` or, if ``transpose`` is ``True``, ``A.T @ x = rhs``
    by forward or back substitution over block rows.

    Args:
        matrix: A lower or upper triangular partitioned matrix.
        rhs: A partitioned vector or matrix whose row partitioning matches
            ``matrix``.
        transpose: Solve against the transpose of ``matrix``.

    Returns:
        The solution, partitioned like ``rhs``.
    """
    if not isinstance(matrix, (LowerTriPartitionedMatrix, UpperTriPartitionedMatrix)):
        raise TypeError(
            "Triangular solves require a triangular partitioned matrix; got "
            f"{type(matrix).__name__}"
        )

    if isinstance(rhs, PartitionedVector):
        if rhs.partitioning != matrix.row_sizes:
            raise DimensionMismatch(
                f"Cannot solve a system partitioned as {matrix.row_sizes} with a "
                f"right hand side partitioned as {rhs.partitioning}"
            )
        return PartitionedVector(_substitute(matrix, list(rhs.blocks), transpose))

    if isinstance(rhs, PartitionedMatrix):
        if rhs.row_sizes != matrix.row_sizes:
            raise DimensionMismatch(
                f"Cannot solve a system partitioned as {matrix.row_sizes} with a "
                f"right hand side partitioned as {rhs.row_sizes}"
            )
        blocks = {}
        for c in range(rhs.col_blocks):
            column = [rhs.tile(i, c) for i in range(rhs.row_blocks)]
            for i, x in enumerate(_substitute(matrix, column, transpose)):
                blocks[i, c] = x
        return PartitionedMatrix(blocks, rhs.row_sizes, rhs.col_sizes)

    raise TypeError(
        "The right hand side must be a partitioned vector or matrix; got "
        f"{type(rhs).__name__}"
    )


def forward_substitution(
    scale_tril: LowerTriPartitionedMatrix, rhs: Partitioned
) -> Any:
    """Solve ``L @ x = rhs``"""
    return solve_triangular(scale_tril, rhs)


def back_substitution(matrix: Triangular, rhs: Partitioned) -> Any:
    """Solve ``L.T @ x = rhs`` for lower ``L``, or ``U @ x = rhs`` for upper ``U``"""
    if isinstance(matrix, UpperTriPartitionedMatrix):
        return solve_triangular(matrix, rhs)
    return solve_triangular(matrix, rhs, transpose=True)


def cho_solve(scale_tril: LowerTriPartitionedMatrix, rhs: Partitioned) -> Any:
    """Solve ``K @ x = rhs`` given the blocked Cholesky factor of ``K``"""
    return back_substitution(scale_tril, forward_substitution(scale_tril, rhs))


def cho_inverse(scale_tril: LowerTriPartitionedMatrix) -> PartitionedPSDMatrix:
    """The explicit inverse of ``K`` from its blocked Cholesky factor"""
    identity = PartitionedMatrix.from_partitioning(
        jnp.eye(scale_tril.rows, dtype=scale_tril.dtype), scale_tril.row_sizes
    )
    return PartitionedPSDMatrix.from_matrix(cho_solve(scale_tril, identity))


def log_det(scale_tril: LowerTriPartitionedMatrix) -> JAXArray:
    """The log determinant of ``K = L @ L.T``"""
    return 2 * bsum(blog(bdiag(scale_tril)))


def dot_triangular(scale_tril: Triangular, rhs: Partitioned) -> Any:
    return scale_tril @ rhs
