from __future__ import annotations

__all__ = [
    "bdiag",
    "bsum",
    "bproduct",
    "blog",
    "btrace",
    "bdet",
    "axpy",
    "outer",
    "trace_of_product",
    "quadratic_form",
    "cross_quadratic_form",
    "vertcat",
    "hcat",
    "vcat",
]

from typing import Any, TypeVar

import jax.numpy as jnp

from blockgp.errors import DimensionMismatch
from blockgp.helpers import JAXArray
from blockgp.partitioned.matrix import (
    LowerTriPartitionedMatrix,
    PartitionedMatrix,
    PartitionedPSDMatrix,
    UpperTriPartitionedMatrix,
)
from blockgp.partitioned.vector import PartitionedVector

P = TypeVar("P", PartitionedVector, PartitionedMatrix)


def bdiag(matrix: PartitionedMatrix) -> PartitionedVector:
    """Extract the diagonal of a square, uniformly partitioned matrix"""
    return matrix.diagonal()


def bsum(vector: PartitionedVector) -> JAXArray:
    return vector.sum()


def bproduct(vector: PartitionedVector) -> JAXArray:
    result = jnp.ones((), dtype=vector.dtype)
    for b in vector.blocks:
        result = result * jnp.prod(b)
    return result


def blog(x: P) -> P:
    """The elementwise logarithm of the stored blocks"""
    return x.map(jnp.log)


def btrace(matrix: PartitionedMatrix) -> JAXArray:
    return bsum(bdiag(matrix))


def bdet(matrix: PartitionedMatrix) -> JAXArray:
    """The determinant of a triangular or PSD partitioned matrix

    For triangular matrices this is the product of the diagonal, and for PSD
    matrices it is computed from the blocked Cholesky factor. General matrices
    are not supported.
    """
    if isinstance(matrix, (LowerTriPartitionedMatrix, UpperTriPartitionedMatrix)):
        return bproduct(bdiag(matrix))
    if isinstance(matrix, PartitionedPSDMatrix):
        from blockgp.partitioned.linalg import cholesky

        return jnp.square(bproduct(bdiag(cholesky(matrix))))
    raise TypeError(
        "Determinants are only available for triangular and PSD partitioned "
        f"matrices; got {type(matrix).__name__}"
    )


def axpy(a: Any, x: P, y: P) -> P:
    """Compute ``a * x + y``"""
    return y + x * a


def outer(x: PartitionedVector, y: PartitionedVector | None = None) -> PartitionedMatrix:
    """The outer product ``x y^T`` partitioned like ``x`` and ``y``

    If ``y`` is omitted, the result is ``x x^T`` as a PSD matrix.
    """
    if y is None:
        blocks = {
            (i, j): jnp.outer(a, b)
            for i, a in enumerate(x.blocks)
            for j, b in enumerate(x.blocks)
        }
        return PartitionedPSDMatrix(blocks, x.partitioning)
    return PartitionedMatrix(
        {
            (i, j): jnp.outer(a, b)
            for i, a in enumerate(x.blocks)
            for j, b in enumerate(y.blocks)
        },
        x.partitioning,
        y.partitioning,
    )


def trace_of_product(A: PartitionedMatrix, B: PartitionedMatrix) -> JAXArray:
    """Compute ``trace(A @ B)`` without forming the product

    Only the tiles of ``A`` and the transposed tiles of ``B`` that meet on the
    diagonal are touched: ``trace(A B) = sum_ij sum(A_ij * B_ji^T)``.
    """
    if A.col_sizes != B.row_sizes or A.row_sizes != B.col_sizes:
        raise DimensionMismatch(
            "trace(A @ B) requires the column partitioning of A to match the "
            "row partitioning of B and vice versa"
        )
    total = jnp.zeros((), dtype=jnp.result_type(A.dtype, B.dtype))
    for (i, j), a in A.blocks.items():
        b = B.blocks.get((j, i))
        if b is not None:
            total = total + jnp.sum(a * b.T)
    return total


def cross_quadratic_form(
    y: PartitionedVector, scale_tril: LowerTriPartitionedMatrix, x: PartitionedVector
) -> JAXArray:
    """Compute ``y^T K^-1 x`` given the blocked Cholesky factor of ``K``"""
    from blockgp.partitioned.linalg import cho_solve

    return y.dot(cho_solve(scale_tril, x))


def quadratic_form(
    scale_tril: LowerTriPartitionedMatrix, x: PartitionedVector
) -> JAXArray:
    """Compute ``x^T K^-1 x`` given the blocked Cholesky factor of ``K``"""
    return cross_quadratic_form(x, scale_tril, x)


def vertcat(*vectors: PartitionedVector) -> PartitionedVector:
    """Stack partitioned vectors, appending their blocks in order"""
    return PartitionedVector([b for v in vectors for b in v.blocks])


def hcat(*matrices: PartitionedMatrix) -> PartitionedMatrix:
    """Concatenate partitioned matrices side by side"""
    if not matrices:
        raise ValueError("At least one matrix is required")
    row_sizes = matrices[0].row_sizes
    blocks = {}
    offset = 0
    col_sizes: tuple[int, ...] = ()
    for m in matrices:
        if m.row_sizes != row_sizes:
            raise DimensionMismatch(
                "Horizontally concatenated matrices must share their row "
                f"partitioning; got {row_sizes} and {m.row_sizes}"
            )
        for i in range(m.row_blocks):
            for j in range(m.col_blocks):
                blocks[i, j + offset] = m.tile(i, j)
        offset += m.col_blocks
        col_sizes += m.col_sizes
    return PartitionedMatrix(blocks, row_sizes, col_sizes)


def vcat(*matrices: PartitionedMatrix) -> PartitionedMatrix:
    """Stack partitioned matrices on top of each other"""
    if not matrices:
        raise ValueError("At least one matrix is required")
    col_sizes = matrices[0].col_sizes
    blocks = {}
    offset = 0
    row_sizes: tuple[int, ...] = ()
    for m in matrices:
        if m.col_sizes != col_sizes:
            raise DimensionMismatch(
                "Vertically concatenated matrices must share their column "
                f"partitioning; got {col_sizes} and {m.col_sizes}"
            )
        for i in range(m.row_blocks):
            for j in range(m.col_blocks):
                blocks[i + offset, j] = m.tile(i, j)
        offset += m.row_blocks
        row_sizes += m.row_sizes
    return PartitionedMatrix(blocks, row_sizes, col_sizes)
