"""
Block partitioned vectors and matrices, and the blocked linear algebra used to
run Gaussian process inference on them. A :class:`PartitionedVector` is a long
vector split into contiguous blocks, and a :class:`PartitionedMatrix` is a grid
of dense tiles. The triangular variants only store tiles on one side of the
block diagonal, and are what :func:`linalg.cholesky` produces and what
:func:`linalg.solve_triangular` consumes.
"""

__all__ = [
    "linalg",
    "ops",
    "PartitionedVector",
    "PartitionedMatrix",
    "PartitionedPSDMatrix",
    "LowerTriPartitionedMatrix",
    "UpperTriPartitionedMatrix",
    "partition_sizes",
]

from blockgp.partitioned import linalg, ops
from blockgp.partitioned.matrix import (
    LowerTriPartitionedMatrix,
    PartitionedMatrix,
    PartitionedPSDMatrix,
    UpperTriPartitionedMatrix,
)
from blockgp.partitioned.vector import PartitionedVector, partition_sizes
