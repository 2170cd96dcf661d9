# mypy: ignore-errors

import jax.numpy as jnp
import numpy as np
import pytest

from blockgp.errors import DimensionMismatch, InvalidPartitioning
from blockgp.partitioned import (
    LowerTriPartitionedMatrix,
    PartitionedMatrix,
    PartitionedPSDMatrix,
    PartitionedVector,
    UpperTriPartitionedMatrix,
)
from blockgp.test_utils import assert_allclose, random_psd


@pytest.fixture
def dense(random):
    return random.normal(size=(7, 5))


def test_from_dense_roundtrip(dense):
    M = PartitionedMatrix.from_dense(dense, 3, 2)
    assert M.row_sizes == (3, 3, 1)
    assert M.col_sizes == (2, 2, 1)
    assert M.shape == (7, 5)
    np.testing.assert_array_equal(np.asarray(M.to_dense()), dense)


def test_missing_tiles():
    with pytest.raises(InvalidPartitioning):
        PartitionedMatrix({(0, 0): jnp.ones((2, 2))}, (2, 2))
    with pytest.raises(InvalidPartitioning):
        PartitionedMatrix({(0, 0): jnp.ones((2, 3))}, (2,))
    with pytest.raises(InvalidPartitioning):
        LowerTriPartitionedMatrix(
            {(0, 0): jnp.eye(2), (0, 1): jnp.ones((2, 2)), (1, 1): jnp.eye(2)},
            (2, 2),
        )
    with pytest.raises(InvalidPartitioning):
        PartitionedPSDMatrix.from_dense(jnp.ones((4, 3)), 2)


def test_arithmetic(random, dense):
    other = random.normal(size=dense.shape)
    A = PartitionedMatrix.from_dense(dense, 3, 2)
    B = PartitionedMatrix.from_dense(other, 3, 2)
    assert_allclose((A + B).to_dense(), dense + other)
    assert_allclose((A - B).to_dense(), dense - other)
    assert_allclose((3.0 * A).to_dense(), 3 * dense)
    assert_allclose((-A).to_dense(), -dense)

    C = PartitionedMatrix.from_dense(other, 2, 2)
    with pytest.raises(DimensionMismatch):
        A + C


def test_matmul(random, dense):
    x = random.normal(size=dense.shape[1])
    other = random.normal(size=(dense.shape[1], 4))
    A = PartitionedMatrix.from_dense(dense, 3, 2)
    v = PartitionedVector.from_dense(x, 2)
    B = PartitionedMatrix.from_dense(other, 2, 3)

    result = A @ v
    assert isinstance(result, PartitionedVector)
    assert result.partitioning == A.row_sizes
    assert_allclose(result.to_dense(), dense @ x)

    product = A @ B
    assert product.row_sizes == A.row_sizes
    assert product.col_sizes == B.col_sizes
    assert_allclose(product.to_dense(), dense @ other)

    with pytest.raises(DimensionMismatch):
        A @ PartitionedVector.from_dense(x, 3)


def test_transpose(random, dense):
    A = PartitionedMatrix.from_dense(dense, 3, 2)
    assert A.T.row_sizes == A.col_sizes
    assert_allclose(A.T.to_dense(), dense.T)

    L = LowerTriPartitionedMatrix.from_dense(np.tril(random.normal(size=(5, 5))), 2)
    U = L.T
    assert isinstance(U, UpperTriPartitionedMatrix)
    assert isinstance(U.T, LowerTriPartitionedMatrix)
    assert_allclose(U.to_dense(), L.to_dense().T)


def test_triangular_storage(random):
    M = random.normal(size=(5, 5))
    L = LowerTriPartitionedMatrix.from_dense(M, 2)
    assert set(L.blocks) == {(i, j) for i in range(3) for j in range(3) if i >= j}
    assert_allclose(L.to_dense(), np.tril(M))
    assert_allclose(L.tile(0, 2), np.zeros((2, 1)))

    U = UpperTriPartitionedMatrix.from_dense(M, 2)
    assert_allclose(U.to_dense(), np.triu(M))


def test_block_slice(random):
    K = random_psd(random, 7)
    P = PartitionedPSDMatrix.from_dense(K, 3)
    sub = P[1:3, 1:3]
    assert isinstance(sub, PartitionedPSDMatrix)
    assert sub.row_sizes == (3, 1)
    assert_allclose(sub.to_dense(), K[3:, 3:])

    rect = P[0:1, 1:3]
    assert type(rect) is PartitionedMatrix
    assert_allclose(rect.to_dense(), K[:3, 3:])


def test_diagonal(random):
    K = random_psd(random, 7)
    P = PartitionedPSDMatrix.from_dense(K, 3)
    assert_allclose(P.diagonal().to_dense(), np.diag(K))
    assert_allclose(P.add_diagonal(0.5).to_dense(), K + 0.5 * np.eye(7))
    shifted = P.add_diagonal(PartitionedVector.from_dense(np.arange(7.0), 3))
    assert isinstance(shifted, PartitionedPSDMatrix)
    assert_allclose(shifted.to_dense(), K + np.diag(np.arange(7.0)))

    with pytest.raises(DimensionMismatch):
        PartitionedMatrix.from_dense(random.normal(size=(4, 3)), 2).diagonal()


def test_identity():
    eye = PartitionedMatrix.identity(5, 2)
    assert_allclose(eye.to_dense(), np.eye(5))


def test_scalar_arithmetic_on_triangular():
    M = np.tril(np.arange(1.0, 17.0).reshape(4, 4))
    L = LowerTriPartitionedMatrix.from_dense(M, 2)

    shifted = L + 1.0
    assert type(shifted) is PartitionedMatrix
    assert_allclose(shifted.to_dense(), M + 1.0)
    assert_allclose((1.0 - L).to_dense(), 1.0 - M)
    assert_allclose(L.map(jnp.cos).to_dense(), np.cos(M))

    scaled = 2.0 * L
    assert isinstance(scaled, LowerTriPartitionedMatrix)
    assert_allclose(scaled.to_dense(), 2.0 * M)
    assert isinstance(-L.T, UpperTriPartitionedMatrix)
    assert_allclose((L.T / 4.0).to_dense(), M.T / 4.0)


def test_scalar_arithmetic_on_psd(random):
    K = random_psd(random, 6)
    A = PartitionedPSDMatrix.from_dense(K, 4)

    assert isinstance(A * 2.0, PartitionedPSDMatrix)
    assert isinstance(A + 0.5, PartitionedPSDMatrix)
    assert isinstance(A - (-0.5), PartitionedPSDMatrix)

    for M in (A * -1.0, -2.0 * A, -A, A / -3.0, A - 0.5, A + -0.5, 1.0 - A):
        assert type(M) is PartitionedMatrix
    assert_allclose((A * -1.0).to_dense(), -K)
    assert_allclose((1.0 - A).to_dense(), 1.0 - K)
