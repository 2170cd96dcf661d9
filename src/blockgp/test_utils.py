from typing import Any

import jax
import numpy as np
from jax._src.public_test_util import check_close

from blockgp.helpers import JAXArray
from blockgp.partitioned import PartitionedMatrix, PartitionedVector


def _dense(x: Any) -> Any:
    if isinstance(x, (PartitionedVector, PartitionedMatrix)):
        return x.to_dense()
    return x


def assert_allclose(
    calculated: JAXArray, expected: JAXArray, *args: Any, **kwargs: Any
):
    """Compare arrays, or partitioned structures by their dense values"""
    kwargs["atol"] = kwargs.get(
        "atol",
        {
            "float32": 5e-4,
            "float64": 5e-7,
        },
    )
    kwargs["rtol"] = kwargs.get(
        "rtol",
        {
            "float32": 5e-4,
            "float64": 5e-7,
        },
    )
    check_close(_dense(calculated), _dense(expected), *args, **kwargs)


def assert_pytrees_allclose(calculated: Any, expected: Any, *args: Any, **kwargs: Any):
    jax.tree_util.tree_map(
        lambda a, b: assert_allclose(a, b, *args, **kwargs), calculated, expected
    )


def assert_same_partitioning(calculated: Any, expected: Any):
    """Check that two partitioned structures share their block structure"""
    if isinstance(expected, PartitionedVector):
        assert isinstance(calculated, PartitionedVector)
        assert calculated.partitioning == expected.partitioning
    else:
        assert calculated.row_sizes == expected.row_sizes
        assert calculated.col_sizes == expected.col_sizes


def random_psd(random: np.random.Generator, size: int, jitter: float = 1e-3) -> np.ndarray:
    """A well conditioned random symmetric positive definite matrix"""
    A = random.standard_normal((size, size))
    return A @ A.T / size + (1 + jitter) * np.eye(size)
