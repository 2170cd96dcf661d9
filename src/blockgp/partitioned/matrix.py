"""
Dense matrices stored as a grid of tiles keyed by ``(row_block, col_block)``.
The general :class:`PartitionedMatrix` stores every tile. The triangular
variants only store the tiles on their side of the block diagonal; any other
tile is an implicit zero. :class:`PartitionedPSDMatrix` marks a square matrix
that the caller guarantees to be symmetric positive semi-definite; this is not
checked beyond its shape.
"""

from __future__ import annotations

__all__ = [
    "PartitionedMatrix",
    "PartitionedPSDMatrix",
    "LowerTriPartitionedMatrix",
    "UpperTriPartitionedMatrix",
]

from collections.abc import Callable, Mapping, Sequence
from typing import Any, ClassVar

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np

from blockgp.errors import DimensionMismatch, InvalidPartitioning
from blockgp.helpers import JAXArray
from blockgp.partitioned.vector import PartitionedVector, partition_sizes

BlockIndex = tuple[int, int]


def _is_nonnegative(value: Any) -> bool:
    # Traced values have no known sign
    try:
        return bool(value >= 0)
    except jax.errors.ConcretizationTypeError:
        return False


class PartitionedMatrix(eqx.Module):
    """A dense matrix partitioned into tiles

    Args:
        blocks: A mapping from ``(row_block, col_block)`` to the dense tile.
        row_sizes: The number of rows in each block row.
        col_sizes: The number of columns in each block column. Defaults to
            ``row_sizes``.
    """

    blocks: dict[BlockIndex, JAXArray]
    row_sizes: tuple[int, ...] = eqx.field(static=True)
    col_sizes: tuple[int, ...] = eqx.field(static=True)

    __array_priority__ = 1999

    # Whether every tile in the grid must be stored explicitly
    complete: ClassVar[bool] = True

    def __init__(
        self,
        blocks: Mapping[BlockIndex, Any],
        row_sizes: Sequence[int],
        col_sizes: Sequence[int] | None = None,
    ):
        self.blocks = {
            (int(i), int(j)): jnp.asarray(b) for (i, j), b in blocks.items()
        }
        self.row_sizes = tuple(int(s) for s in row_sizes)
        self.col_sizes = (
            self.row_sizes if col_sizes is None else tuple(int(s) for s in col_sizes)
        )

    def __check_init__(self) -> None:
        if any(s <= 0 for s in self.row_sizes + self.col_sizes):
            raise InvalidPartitioning("Block sizes must be positive")
        nr, nc = len(self.row_sizes), len(self.col_sizes)
        for (i, j), tile in self.blocks.items():
            if not (0 <= i < nr and 0 <= j < nc):
                raise InvalidPartitioning(
                    f"Tile {(i, j)} is outside of the {nr} x {nc} block grid"
                )
            if not self.stores(i, j):
                raise InvalidPartitioning(
                    f"Tile {(i, j)} cannot be stored in a {type(self).__name__}"
                )
            expect = (self.row_sizes[i], self.col_sizes[j])
            if jnp.shape(tile) != expect:
                raise InvalidPartitioning(
                    f"Tile {(i, j)} has shape {jnp.shape(tile)}; expected {expect}"
                )
        if self.complete:
            missing = [
                (i, j)
                for i in range(nr)
                for j in range(nc)
                if (i, j) not in self.blocks
            ]
            if missing:
                raise InvalidPartitioning(f"Missing tiles {missing}")

    @staticmethod
    def stores(i: int, j: int) -> bool:
        """Whether the tile at ``(i, j)`` lives in the stored region"""
        del i, j
        return True

    @staticmethod
    def _mask(tile: JAXArray, i: int, j: int) -> JAXArray:
        del i, j
        return tile

    @classmethod
    def from_partitioning(
        cls,
        M: Any,
        row_sizes: Sequence[int],
        col_sizes: Sequence[int] | None = None,
    ) -> Any:
        """Split a dense matrix into tiles with the given block sizes"""
        M = jnp.asarray(M)
        row_sizes = tuple(row_sizes)
        col_sizes = row_sizes if col_sizes is None else tuple(col_sizes)
        if M.ndim != 2 or M.shape != (sum(row_sizes), sum(col_sizes)):
            raise DimensionMismatch(
                f"Cannot split an array of shape {M.shape} into blocks "
                f"{row_sizes} x {col_sizes}"
            )
        ro = np.cumsum((0,) + row_sizes)
        co = np.cumsum((0,) + col_sizes)
        blocks = {
            (i, j): cls._mask(M[ro[i] : ro[i + 1], co[j] : co[j + 1]], i, j)
            for i in range(len(row_sizes))
            for j in range(len(col_sizes))
            if cls.stores(i, j)
        }
        return cls(blocks, row_sizes, col_sizes)

    @classmethod
    def from_dense(
        cls, M: Any, block_size: int, col_block_size: int | None = None
    ) -> Any:
        """Split a dense matrix into (mostly) uniform tiles"""
        M = jnp.asarray(M)
        if M.ndim != 2:
            raise ValueError(f"Expected a 2-D array; got shape {M.shape}")
        if col_block_size is None:
            col_block_size = block_size
        return cls.from_partitioning(
            M,
            partition_sizes(M.shape[0], block_size),
            partition_sizes(M.shape[1], col_block_size),
        )

    @classmethod
    def identity(cls, size: int, block_size: int, dtype: Any = None) -> Any:
        sizes = partition_sizes(size, block_size)
        blocks = {
            (i, j): (
                jnp.eye(sizes[i], dtype=dtype)
                if i == j
                else jnp.zeros((sizes[i], sizes[j]), dtype=dtype)
            )
            for i in range(len(sizes))
            for j in range(len(sizes))
            if cls.stores(i, j)
        }
        return cls(blocks, sizes, sizes)

    @property
    def rows(self) -> int:
        return sum(self.row_sizes)

    @property
    def cols(self) -> int:
        return sum(self.col_sizes)

    @property
    def row_blocks(self) -> int:
        return len(self.row_sizes)

    @property
    def col_blocks(self) -> int:
        return len(self.col_sizes)

    @property
    def shape(self) -> tuple[int, int]:
        return (self.rows, self.cols)

    @property
    def dtype(self) -> Any:
        if not self.blocks:
            return jnp.zeros(()).dtype
        return jnp.result_type(*self.blocks.values())

    @property
    def is_square(self) -> bool:
        return self.row_sizes == self.col_sizes

    def tile(self, i: int, j: int) -> JAXArray:
        """The tile at ``(i, j)``, an explicit zero if it is not stored"""
        tile = self.blocks.get((i, j))
        if tile is None:
            return jnp.zeros((self.row_sizes[i], self.col_sizes[j]), dtype=self.dtype)
        return tile

    def to_dense(self) -> JAXArray:
        if not self.row_sizes or not self.col_sizes:
            return jnp.zeros((self.rows, self.cols), dtype=self.dtype)
        return jnp.block(
            [
                [self.tile(i, j) for j in range(self.col_blocks)]
                for i in range(self.row_blocks)
            ]
        )

    def __array__(self, dtype: Any = None) -> np.ndarray:
        return np.asarray(self.to_dense(), dtype=dtype)

    def _like(self, blocks: Mapping[BlockIndex, Any]) -> Any:
        return type(self)(blocks, self.row_sizes, self.col_sizes)

    def _full(self, func: Callable[[JAXArray], JAXArray]) -> PartitionedMatrix:
        return PartitionedMatrix(
            {
                (i, j): func(self.tile(i, j))
                for i in range(self.row_blocks)
                for j in range(self.col_blocks)
            },
            self.row_sizes,
            self.col_sizes,
        )

    def map(self, func: Callable[[JAXArray], JAXArray]) -> PartitionedMatrix:
        """Apply ``func`` elementwise to every tile

        Implicit zero tiles are materialized, so the result is a general
        :class:`PartitionedMatrix` unless ``self`` already was one.
        """
        if type(self) is PartitionedMatrix:
            return self._like({k: func(v) for k, v in self.blocks.items()})
        return self._full(func)

    def _scalar_op(
        self,
        func: Callable[[JAXArray], JAXArray],
        scaling: bool,
        keeps_psd: bool,
    ) -> Any:
        # Scaling maps implicit zeros to zero, shifting does not
        if scaling or self.complete:
            if keeps_psd or not isinstance(self, PartitionedPSDMatrix):
                return self._like({k: func(v) for k, v in self.blocks.items()})
        return self._full(func)

    def check_partitioning(self, other: PartitionedMatrix) -> None:
        if (self.row_sizes, self.col_sizes) != (other.row_sizes, other.col_sizes):
            raise DimensionMismatch(
                "Partitioned matrices must share the same partitioning; got "
                f"{self.row_sizes} x {self.col_sizes} and "
                f"{other.row_sizes} x {other.col_sizes}"
            )

    def _combine(
        self,
        other: Any,
        op: Callable[[JAXArray, JAXArray], JAXArray],
        closed: bool = True,
        scaling: bool = False,
        sign: int = 1,
    ) -> Any:
        # ``sign`` is the sign a scalar operand must have for a PSD result to
        # stay PSD, or 0 if it never does
        if isinstance(other, PartitionedMatrix):
            self.check_partitioning(other)
            if type(self) is type(other) and closed:
                keys = set(self.blocks) | set(other.blocks)
                return self._like(
                    {k: op(self.tile(*k), other.tile(*k)) for k in keys}
                )
            return PartitionedMatrix(
                {
                    (i, j): op(self.tile(i, j), other.tile(i, j))
                    for i in range(self.row_blocks)
                    for j in range(self.col_blocks)
                },
                self.row_sizes,
                self.col_sizes,
            )
        if jnp.ndim(other) != 0:
            raise DimensionMismatch(
                "Partitioned matrices can only be combined with other "
                "partitioned matrices or scalars"
            )
        keeps_psd = sign != 0 and _is_nonnegative(sign * other)
        return self._scalar_op(lambda b: op(b, other), scaling, keeps_psd)

    def __add__(self, other: Any) -> Any:
        return self._combine(other, jnp.add)

    def __radd__(self, other: Any) -> Any:
        return self._combine(other, lambda a, b: b + a)

    def __sub__(self, other: Any) -> Any:
        # The difference of two PSD matrices need not be PSD
        return self._combine(
            other,
            jnp.subtract,
            closed=not isinstance(self, PartitionedPSDMatrix),
            sign=-1,
        )

    def __rsub__(self, other: Any) -> Any:
        return self._combine(
            other,
            lambda a, b: b - a,
            closed=not isinstance(self, PartitionedPSDMatrix),
            sign=0,
        )

    def __mul__(self, other: Any) -> Any:
        return self._combine(other, jnp.multiply, scaling=True)

    def __rmul__(self, other: Any) -> Any:
        return self._combine(other, lambda a, b: b * a, scaling=True)

    def __truediv__(self, other: Any) -> Any:
        return self._combine(other, jnp.divide, scaling=True)

    def __neg__(self) -> Any:
        return self._scalar_op(jnp.negative, scaling=True, keeps_psd=False)

    def matmul(self, other: Any) -> Any:
        """The block matrix product with a partitioned vector or matrix

        Implicit zero tiles are skipped.
        """
        if isinstance(other, PartitionedVector):
            if self.col_sizes != other.partitioning:
                raise DimensionMismatch(
                    f"Cannot multiply a matrix with column partitioning "
                    f"{self.col_sizes} by a vector partitioned as "
                    f"{other.partitioning}"
                )
            dtype = jnp.result_type(self.dtype, other.dtype)
            out = []
            for i in range(self.row_blocks):
                acc = jnp.zeros(self.row_sizes[i], dtype=dtype)
                for j in range(self.col_blocks):
                    tile = self.blocks.get((i, j))
                    if tile is not None:
                        acc = acc + tile @ other.blocks[j]
                out.append(acc)
            return PartitionedVector(out)

        if isinstance(other, PartitionedMatrix):
            if self.col_sizes != other.row_sizes:
                raise DimensionMismatch(
                    f"Cannot multiply a matrix with column partitioning "
                    f"{self.col_sizes} by a matrix with row partitioning "
                    f"{other.row_sizes}"
                )
            dtype = jnp.result_type(self.dtype, other.dtype)
            blocks = {}
            for i in range(self.row_blocks):
                for k in range(other.col_blocks):
                    acc = jnp.zeros((self.row_sizes[i], other.col_sizes[k]), dtype=dtype)
                    for j in range(self.col_blocks):
                        a = self.blocks.get((i, j))
                        b = other.blocks.get((j, k))
                        if a is not None and b is not None:
                            acc = acc + a @ b
                    blocks[i, k] = acc
            return PartitionedMatrix(blocks, self.row_sizes, other.col_sizes)

        raise TypeError(
            "Partitioned matrices can only be multiplied by partitioned vectors "
            f"or matrices; got {type(other).__name__}"
        )

    def __matmul__(self, other: Any) -> Any:
        if isinstance(other, (PartitionedVector, PartitionedMatrix)):
            return self.matmul(other)
        return NotImplemented

    def transpose(self) -> PartitionedMatrix:
        return PartitionedMatrix(
            {(j, i): b.T for (i, j), b in self.blocks.items()},
            self.col_sizes,
            self.row_sizes,
        )

    @property
    def T(self) -> Any:
        return self.transpose()

    def block_slice(self, rows: slice, cols: slice | None = None) -> Any:
        """Select a contiguous range of block rows and columns

        The result is re-indexed from zero. Structured matrices keep their
        type when the selection is a principal sub-matrix.
        """
        if cols is None:
            cols = rows
        ri = range(self.row_blocks)[rows]
        ci = range(self.col_blocks)[cols]
        if ri.step != 1 or ci.step != 1:
            raise ValueError("Only contiguous block ranges can be selected")
        if ri == ci and self.is_square:
            return type(self)(
                {
                    (i - ri.start, j - ci.start): b
                    for (i, j), b in self.blocks.items()
                    if i in ri and j in ci
                },
                tuple(self.row_sizes[i] for i in ri),
            )
        return PartitionedMatrix(
            {
                (i - ri.start, j - ci.start): self.tile(i, j)
                for i in ri
                for j in ci
            },
            tuple(self.row_sizes[i] for i in ri),
            tuple(self.col_sizes[j] for j in ci),
        )

    def __getitem__(self, idx: tuple[slice, slice]) -> Any:
        rows, cols = idx
        return self.block_slice(rows, cols)

    def diagonal(self) -> PartitionedVector:
        """The diagonal as a vector partitioned like the rows"""
        if not self.is_square:
            raise DimensionMismatch(
                "The block diagonal is only defined for matrices with the same "
                "row and column partitioning"
            )
        return PartitionedVector(
            [jnp.diag(self.tile(i, i)) for i in range(self.row_blocks)]
        )

    def add_diagonal(self, value: Any) -> Any:
        """Add a scalar or a partitioned vector to the diagonal"""
        if not self.is_square:
            raise DimensionMismatch(
                "Only matrices with the same row and column partitioning have "
                "a block diagonal"
            )
        if isinstance(value, PartitionedVector):
            if value.partitioning != self.row_sizes:
                raise DimensionMismatch(
                    f"Cannot add a vector partitioned as {value.partitioning} to "
                    f"the diagonal of a matrix partitioned as {self.row_sizes}"
                )
            diags = value.blocks
        else:
            diags = [jnp.broadcast_to(value, (s,)) for s in self.row_sizes]
        blocks = dict(self.blocks)
        for i, d in enumerate(diags):
            blocks[i, i] = self.tile(i, i) + jnp.diag(d)
        return self._like(blocks)


class PartitionedPSDMatrix(PartitionedMatrix):
    """A symmetric positive semi-definite partitioned matrix"""

    def __check_init__(self) -> None:
        if not self.is_square:
            raise InvalidPartitioning(
                "A PSD matrix must have the same row and column partitioning"
            )

    @classmethod
    def from_matrix(cls, matrix: PartitionedMatrix) -> PartitionedPSDMatrix:
        """Assert that a square partitioned matrix is PSD"""
        return cls(
            {
                (i, j): matrix.tile(i, j)
                for i in range(matrix.row_blocks)
                for j in range(matrix.col_blocks)
            },
            matrix.row_sizes,
            matrix.col_sizes,
        )

    def transpose(self) -> PartitionedPSDMatrix:
        return self


class _TriangularPartitionedMatrix(PartitionedMatrix):
    complete: ClassVar[bool] = False

    def __check_init__(self) -> None:
        if not self.is_square:
            raise InvalidPartitioning(
                "A triangular matrix must have the same row and column "
                "partitioning"
            )


class LowerTriPartitionedMatrix(_TriangularPartitionedMatrix):
    """A lower triangular partitioned matrix

    Only tiles on or below the block diagonal are stored; diagonal tiles are
    lower triangular dense matrices.
    """

    @staticmethod
    def stores(i: int, j: int) -> bool:
        return i >= j

    @staticmethod
    def _mask(tile: JAXArray, i: int, j: int) -> JAXArray:
        return jnp.tril(tile) if i == j else tile

    def transpose(self) -> UpperTriPartitionedMatrix:
        return UpperTriPartitionedMatrix(
            {(j, i): b.T for (i, j), b in self.blocks.items()},
            self.col_sizes,
            self.row_sizes,
        )


class UpperTriPartitionedMatrix(_TriangularPartitionedMatrix):
    """An upper triangular partitioned matrix

    Only tiles on or above the block diagonal are stored; diagonal tiles are
    upper triangular dense matrices.
    """

    @staticmethod
    def stores(i: int, j: int) -> bool:
        return i <= j

    @staticmethod
    def _mask(tile: JAXArray, i: int, j: int) -> JAXArray:
        return jnp.triu(tile) if i == j else tile

    def transpose(self) -> LowerTriPartitionedMatrix:
        return LowerTriPartitionedMatrix(
            {(j, i): b.T for (i, j), b in self.blocks.items()},
            self.col_sizes,
            self.row_sizes,
        )
