# mypy: ignore-errors

import numpy as np
import pytest
from scipy import linalg as scipy_linalg

from blockgp.errors import DimensionMismatch, NotPositiveDefinite
from blockgp.partitioned import (
    LowerTriPartitionedMatrix,
    PartitionedMatrix,
    PartitionedPSDMatrix,
    PartitionedVector,
    UpperTriPartitionedMatrix,
    linalg,
)
from blockgp.test_utils import assert_allclose, random_psd


@pytest.mark.parametrize("size, block_size", [(6, 2), (7, 3), (10, 4), (5, 5), (5, 8), (9, 1)])
def test_cholesky(random, size, block_size):
    K = random_psd(random, size)
    L = linalg.cholesky(PartitionedPSDMatrix.from_dense(K, block_size))
    assert isinstance(L, LowerTriPartitionedMatrix)
    assert L.row_sizes == L.col_sizes
    dense = L.to_dense()
    assert_allclose(dense @ dense.T, K, rtol=1e-8, atol=1e-8)
    assert_allclose(dense, np.linalg.cholesky(K))


def test_cholesky_ragged_last_block(random):
    # The last block row is shorter; every tile it touches is rectangular
    K = random_psd(random, 11)
    L = linalg.cholesky(PartitionedPSDMatrix.from_dense(K, 4))
    assert L.row_sizes == (4, 4, 3)
    assert L.tile(2, 0).shape == (3, 4)
    assert L.tile(2, 2).shape == (3, 3)
    assert_allclose(L.to_dense(), np.linalg.cholesky(K))


def test_cholesky_not_positive_definite(random):
    K = random_psd(random, 6)
    K[4, 4] = -10.0
    with pytest.raises(NotPositiveDefinite) as excinfo:
        linalg.cholesky(PartitionedPSDMatrix.from_dense(K, 2))
    assert excinfo.value.block == 2
    assert isinstance(excinfo.value, np.linalg.LinAlgError)


def test_cholesky_requires_square():
    M = PartitionedMatrix.from_dense(np.eye(4), 2, 3)
    with pytest.raises(DimensionMismatch):
        linalg.cholesky(M)


@pytest.mark.parametrize("block_size", [1, 2, 3, 7])
def test_triangular_solves(random, block_size):
    K = random_psd(random, 7)
    b = random.normal(size=7)
    B = random.normal(size=(7, 3))
    L = linalg.cholesky(PartitionedPSDMatrix.from_dense(K, block_size))
    Ld = np.asarray(L.to_dense())
    pb = PartitionedVector.from_dense(b, block_size)
    pB = PartitionedMatrix.from_dense(B, block_size, 2)

    x = linalg.forward_substitution(L, pb)
    assert x.partitioning == pb.partitioning
    assert_allclose((L @ x).to_dense(), b)
    assert_allclose(x.to_dense(), scipy_linalg.solve_triangular(Ld, b, lower=True))

    x = linalg.back_substitution(L, pb)
    assert_allclose((L.T @ x).to_dense(), b)

    X = linalg.forward_substitution(L, pB)
    assert X.row_sizes == pB.row_sizes and X.col_sizes == pB.col_sizes
    assert_allclose((L @ X).to_dense(), B)

    X = linalg.solve_triangular(L, pB, transpose=True)
    assert_allclose(Ld.T @ np.asarray(X.to_dense()), B)


def test_upper_solve(random):
    K = random_psd(random, 5)
    b = random.normal(size=5)
    U = linalg.cholesky(PartitionedPSDMatrix.from_dense(K, 2)).T
    assert isinstance(U, UpperTriPartitionedMatrix)
    x = linalg.back_substitution(U, PartitionedVector.from_dense(b, 2))
    assert_allclose(U.to_dense() @ x.to_dense(), b)


def test_solve_errors(random):
    K = random_psd(random, 6)
    L = linalg.cholesky(PartitionedPSDMatrix.from_dense(K, 2))
    with pytest.raises(DimensionMismatch):
        linalg.forward_substitution(L, PartitionedVector.from_dense(np.ones(6), 3))
    with pytest.raises(TypeError):
        linalg.solve_triangular(
            PartitionedPSDMatrix.from_dense(K, 2), PartitionedVector.from_dense(np.ones(6), 2)
        )


def test_cho_solve_and_inverse(random):
    K = random_psd(random, 8)
    b = random.normal(size=8)
    L = linalg.cholesky(PartitionedPSDMatrix.from_dense(K, 3))
    x = linalg.cho_solve(L, PartitionedVector.from_dense(b, 3))
    assert_allclose(x.to_dense(), np.linalg.solve(K, b))

    inv = linalg.cho_inverse(L)
    assert isinstance(inv, PartitionedPSDMatrix)
    assert_allclose(inv.to_dense(), np.linalg.inv(K))
    assert_allclose(linalg.log_det(L), np.linalg.slogdet(K)[1])


def test_dot_triangular(random):
    K = random_psd(random, 5)
    z = random.normal(size=5)
    L = linalg.cholesky(PartitionedPSDMatrix.from_dense(K, 2))
    result = linalg.dot_triangular(L, PartitionedVector.from_dense(z, 2))
    assert_allclose(result.to_dense(), np.linalg.cholesky(K) @ z)
