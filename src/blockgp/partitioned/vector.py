from __future__ import annotations

__all__ = ["PartitionedVector", "partition_sizes"]

from collections.abc import Callable, Mapping, Sequence
from typing import Any

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np

from blockgp.errors import DimensionMismatch, InvalidPartitioning
from blockgp.helpers import JAXArray


def partition_sizes(length: int, block_size: int) -> tuple[int, ...]:
    """The sizes of the contiguous blocks covering ``length`` elements

    Every block has ``block_size`` elements except the last one, which holds
    whatever remains.
    """
    if block_size <= 0:
        raise InvalidPartitioning(f"block_size must be positive, got {block_size}")
    if length < 0:
        raise InvalidPartitioning(f"length must be non-negative, got {length}")
    full, rest = divmod(length, block_size)
    return (block_size,) * full + ((rest,) if rest else ())


class PartitionedVector(eqx.Module):
    """A dense vector stored as a sequence of contiguous blocks

    The block index of each sub-vector is its position in ``blocks``, so the
    indices are always contiguous and start at zero. Instances are immutable
    and every operation returns a new vector.

    Args:
        blocks: The 1-D sub-vectors, in block order.
    """

    blocks: tuple[JAXArray, ...]

    __array_priority__ = 1999

    def __init__(self, blocks: Sequence[Any]):
        self.blocks = tuple(jnp.asarray(b) for b in blocks)

    def __check_init__(self) -> None:
        for n, b in enumerate(self.blocks):
            if jnp.ndim(b) != 1:
                raise InvalidPartitioning(
                    f"Block {n} must be one dimensional; got shape {jnp.shape(b)}"
                )
            if jnp.shape(b)[0] == 0:
                raise InvalidPartitioning(f"Block {n} is empty")

    @classmethod
    def from_blocks(cls, blocks: Mapping[int, Any]) -> PartitionedVector:
        """Build a vector from an explicit ``{block_index: sub_vector}`` map"""
        indices = sorted(blocks.keys())
        if indices != list(range(len(indices))):
            raise InvalidPartitioning(
                "Block indices must be contiguous and start at zero; "
                f"got {indices}"
            )
        return cls([blocks[i] for i in indices])

    @classmethod
    def from_dense(cls, x: Any, block_size: int) -> PartitionedVector:
        """Group a flat vector into contiguous blocks of ``block_size``"""
        x = jnp.asarray(x)
        if x.ndim != 1:
            raise ValueError(f"Expected a 1-D array; got shape {x.shape}")
        return cls(_split(x, partition_sizes(x.shape[0], block_size)))

    @classmethod
    def from_partitioning(
        cls, x: Any, sizes: Sequence[int]
    ) -> PartitionedVector:
        """Split a flat vector following an explicit list of block sizes"""
        x = jnp.asarray(x)
        if x.ndim != 1 or x.shape[0] != sum(sizes):
            raise DimensionMismatch(
                f"Cannot split an array of shape {x.shape} into blocks {sizes}"
            )
        return cls(_split(x, tuple(sizes)))

    @classmethod
    def fill(
        cls, length: int, block_size: int, value: Any, dtype: Any = None
    ) -> PartitionedVector:
        return cls(
            [jnp.full(s, value, dtype=dtype) for s in partition_sizes(length, block_size)]
        )

    @classmethod
    def zeros(cls, length: int, block_size: int, dtype: Any = None) -> PartitionedVector:
        return cls.fill(length, block_size, 0.0, dtype=dtype)

    @classmethod
    def ones(cls, length: int, block_size: int, dtype: Any = None) -> PartitionedVector:
        return cls.fill(length, block_size, 1.0, dtype=dtype)

    @classmethod
    def normal(
        cls,
        key: JAXArray,
        length: int,
        block_size: int,
        dtype: Any = None,
    ) -> PartitionedVector:
        """A vector of i.i.d. standard normal entries"""
        sizes = partition_sizes(length, block_size)
        keys = jax.random.split(key, max(len(sizes), 1))
        if dtype is None:
            dtype = jnp.zeros(()).dtype
        return cls(
            [jax.random.normal(k, (s,), dtype=dtype) for k, s in zip(keys, sizes)]
        )

    @property
    def partitioning(self) -> tuple[int, ...]:
        """The size of each block"""
        return tuple(int(b.shape[0]) for b in self.blocks)

    @property
    def rows(self) -> int:
        return sum(self.partitioning)

    @property
    def row_blocks(self) -> int:
        return len(self.blocks)

    @property
    def shape(self) -> tuple[int]:
        return (self.rows,)

    @property
    def dtype(self) -> Any:
        if not self.blocks:
            return jnp.zeros(()).dtype
        return jnp.result_type(*self.blocks)

    def __len__(self) -> int:
        return self.rows

    def to_dense(self) -> JAXArray:
        if not self.blocks:
            return jnp.zeros((0,))
        return jnp.concatenate(self.blocks)

    def __array__(self, dtype: Any = None) -> np.ndarray:
        return np.asarray(self.to_dense(), dtype=dtype)

    def __getitem__(self, idx: slice | int) -> PartitionedVector:
        """Select a contiguous range of blocks, re-indexed from zero"""
        if isinstance(idx, int):
            if not -self.row_blocks <= idx < self.row_blocks:
                raise IndexError(f"Block index {idx} out of range")
            idx = idx % self.row_blocks
            idx = slice(idx, idx + 1)
        if not isinstance(idx, slice) or idx.step not in (None, 1):
            raise ValueError("Only contiguous block ranges can be selected")
        return PartitionedVector(self.blocks[idx])

    def block(self, index: int) -> JAXArray:
        return self.blocks[index]

    def map(self, func: Callable[[JAXArray], JAXArray]) -> PartitionedVector:
        """Apply ``func`` to every block, preserving the partitioning"""
        return PartitionedVector([func(b) for b in self.blocks])

    def check_partitioning(self, other: PartitionedVector) -> None:
        if self.partitioning != other.partitioning:
            raise DimensionMismatch(
                "Partitioned vectors must share the same partitioning; got "
                f"{self.partitioning} and {other.partitioning}"
            )

    def _combine(
        self, other: Any, op: Callable[[JAXArray, JAXArray], JAXArray]
    ) -> PartitionedVector:
        if isinstance(other, PartitionedVector):
            self.check_partitioning(other)
            return PartitionedVector(
                [op(a, b) for a, b in zip(self.blocks, other.blocks)]
            )
        if jnp.ndim(other) != 0:
            raise DimensionMismatch(
                "Partitioned vectors can only be combined with other partitioned "
                "vectors or scalars"
            )
        return self.map(lambda b: op(b, other))

    def __add__(self, other: Any) -> PartitionedVector:
        return self._combine(other, jnp.add)

    def __radd__(self, other: Any) -> PartitionedVector:
        return self._combine(other, lambda a, b: b + a)

    def __sub__(self, other: Any) -> PartitionedVector:
        return self._combine(other, jnp.subtract)

    def __rsub__(self, other: Any) -> PartitionedVector:
        return self._combine(other, lambda a, b: b - a)

    def __mul__(self, other: Any) -> PartitionedVector:
        return self._combine(other, jnp.multiply)

    def __rmul__(self, other: Any) -> PartitionedVector:
        return self._combine(other, lambda a, b: b * a)

    def __truediv__(self, other: Any) -> PartitionedVector:
        return self._combine(other, jnp.divide)

    def __neg__(self) -> PartitionedVector:
        return self.map(jnp.negative)

    def dot(self, other: PartitionedVector) -> JAXArray:
        """The inner product, accumulated block by block"""
        self.check_partitioning(other)
        total = jnp.zeros((), dtype=jnp.result_type(self.dtype, other.dtype))
        for a, b in zip(self.blocks, other.blocks):
            total = total + jnp.dot(a, b)
        return total

    def __matmul__(self, other: Any) -> JAXArray:
        if isinstance(other, PartitionedVector):
            return self.dot(other)
        return NotImplemented

    def sum(self) -> JAXArray:
        return sum((jnp.sum(b) for b in self.blocks), jnp.zeros((), self.dtype))


def _split(x: JAXArray, sizes: tuple[int, ...]) -> list[JAXArray]:
    offsets = np.cumsum((0,) + sizes)
    return [x[offsets[n] : offsets[n + 1]] for n in range(len(sizes))]
