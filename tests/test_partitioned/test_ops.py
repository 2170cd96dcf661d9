# mypy: ignore-errors

import numpy as np
import pytest

from blockgp.errors import DimensionMismatch
from blockgp.partitioned import (
    LowerTriPartitionedMatrix,
    PartitionedMatrix,
    PartitionedPSDMatrix,
    PartitionedVector,
    linalg,
    ops,
)
from blockgp.test_utils import assert_allclose, random_psd


def test_reductions(random):
    K = random_psd(random, 8)
    P = PartitionedPSDMatrix.from_dense(K, 3)
    assert_allclose(ops.bdiag(P).to_dense(), np.diag(K))
    assert_allclose(ops.btrace(P), np.trace(K))

    x = random.uniform(0.5, 1.5, size=8)
    v = PartitionedVector.from_dense(x, 3)
    assert_allclose(ops.bsum(v), np.sum(x))
    assert_allclose(ops.bproduct(v), np.prod(x))
    assert_allclose(ops.blog(v).to_dense(), np.log(x))


def test_bdet(random):
    K = random_psd(random, 6)
    assert_allclose(ops.bdet(PartitionedPSDMatrix.from_dense(K, 4)), np.linalg.det(K))

    M = np.tril(random.uniform(0.5, 2.0, size=(6, 6)))
    L = LowerTriPartitionedMatrix.from_dense(M, 4)
    assert_allclose(ops.bdet(L), np.prod(np.diag(M)))
    assert_allclose(ops.bdet(L.T), np.prod(np.diag(M)))

    with pytest.raises(TypeError):
        ops.bdet(PartitionedMatrix.from_dense(K, 4))


def test_axpy_and_outer(random):
    x = random.normal(size=5)
    y = random.normal(size=5)
    a = PartitionedVector.from_dense(x, 2)
    b = PartitionedVector.from_dense(y, 2)
    assert_allclose(ops.axpy(0.5, a, b).to_dense(), 0.5 * x + y)

    O = ops.outer(a)
    assert isinstance(O, PartitionedPSDMatrix)
    assert_allclose(O.to_dense(), np.outer(x, x))

    z = random.normal(size=3)
    c = PartitionedVector.from_dense(z, 2)
    assert_allclose(ops.outer(a, c).to_dense(), np.outer(x, z))


def test_trace_of_product(random):
    A = random.normal(size=(5, 4))
    B = random.normal(size=(4, 5))
    PA = PartitionedMatrix.from_dense(A, 2, 3)
    PB = PartitionedMatrix.from_dense(B, 3, 2)
    assert_allclose(ops.trace_of_product(PA, PB), np.trace(A @ B))

    with pytest.raises(DimensionMismatch):
        ops.trace_of_product(PA, PartitionedMatrix.from_dense(B, 2, 2))


def test_quadratic_forms(random):
    K = random_psd(random, 7)
    x = random.normal(size=7)
    y = random.normal(size=7)
    L = linalg.cholesky(PartitionedPSDMatrix.from_dense(K, 3))
    px = PartitionedVector.from_dense(x, 3)
    py = PartitionedVector.from_dense(y, 3)
    assert_allclose(ops.quadratic_form(L, px), x @ np.linalg.solve(K, x))
    assert_allclose(ops.cross_quadratic_form(py, L, px), y @ np.linalg.solve(K, x))


def test_concatenation(random):
    x = random.normal(size=5)
    y = random.normal(size=3)
    v = ops.vertcat(PartitionedVector.from_dense(x, 2), PartitionedVector.from_dense(y, 2))
    assert v.partitioning == (2, 2, 1, 2, 1)
    assert_allclose(v.to_dense(), np.concatenate([x, y]))

    A = random.normal(size=(4, 3))
    B = random.normal(size=(4, 2))
    C = random.normal(size=(2, 3))
    PA = PartitionedMatrix.from_dense(A, 2)
    PB = PartitionedMatrix.from_dense(B, 2)
    PC = PartitionedMatrix.from_dense(C, 2)

    H = ops.hcat(PA, PB)
    assert H.col_sizes == (2, 1, 2)
    assert_allclose(H.to_dense(), np.hstack([A, B]))

    V = ops.vcat(PA, PC)
    assert V.row_sizes == (2, 2, 2)
    assert_allclose(V.to_dense(), np.vstack([A, C]))

    with pytest.raises(DimensionMismatch):
        ops.hcat(PA, PC)
    with pytest.raises(DimensionMismatch):
        ops.vcat(PA, PB)
