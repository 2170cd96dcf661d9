"""
Builders turning a kernel and a set of input coordinates into (partitioned)
kernel matrices. Each tile is evaluated with a nested ``jax.vmap`` over the
pairs of points in the corresponding row and column blocks. Symmetric matrices
only evaluate the tiles on or below the block diagonal and mirror the rest.
"""

from __future__ import annotations

__all__ = [
    "build_kernel_matrix",
    "build_blocked_kernel_matrix",
    "build_blocked_cross_kernel_matrix",
    "build_blocked_gradient_matrices",
]

import logging
from typing import TYPE_CHECKING, Any

import jax
import jax.numpy as jnp
import numpy as np

from blockgp.helpers import JAXArray, Path, num_data, take
from blockgp.partitioned import (
    PartitionedMatrix,
    PartitionedPSDMatrix,
    partition_sizes,
)

if TYPE_CHECKING:
    from blockgp.kernels.base import Kernel, Params

logger = logging.getLogger(__name__)


def _pairwise(func: Any, X1: Any, X2: Any) -> Any:
    return jax.vmap(jax.vmap(func, in_axes=(None, 0)), in_axes=(0, None))(X1, X2)


def _evaluate_tile(kernel: Kernel, params: Params, X1: Any, X2: Any) -> JAXArray:
    tile = _pairwise(lambda a, b: kernel.evaluate_at(params, a, b), X1, X2)
    if jnp.ndim(tile) != 2:
        raise ValueError(
            "Invalid kernel matrix shape: "
            f"expected ndim = 2, got ndim={jnp.ndim(tile)} "
            "check the dimensions of parameters and custom kernels"
        )
    return tile


def _offsets(sizes: tuple[int, ...]) -> np.ndarray:
    return np.cumsum((0,) + sizes)


def build_kernel_matrix(
    kernel: Kernel, X1: Any, X2: Any = None, params: Params | None = None
) -> JAXArray:
    """The dense matrix of ``kernel`` evaluated at every pair of inputs"""
    params = {} if params is None else params
    if X2 is None:
        X2 = X1
    return _evaluate_tile(kernel, params, X1, X2)


def build_blocked_kernel_matrix(
    kernel: Kernel, X: Any, block_size: int, params: Params | None = None
) -> PartitionedPSDMatrix:
    """The Gram matrix of ``kernel`` over ``X``, partitioned in ``block_size`` tiles

    Tiles with ``i >= j`` are evaluated and tile ``(j, i)`` is set to the
    transpose of tile ``(i, j)``.
    """
    params = {} if params is None else params
    sizes = partition_sizes(num_data(X), block_size)
    offsets = _offsets(sizes)
    logger.debug(
        "Building a %d x %d blocked kernel matrix of %s", len(sizes), len(sizes), kernel.name
    )

    blocks = {}
    for i in range(len(sizes)):
        Xi = take(X, offsets[i], offsets[i + 1])
        for j in range(i + 1):
            tile = _evaluate_tile(kernel, params, Xi, take(X, offsets[j], offsets[j + 1]))
            blocks[i, j] = tile
            if i != j:
                blocks[j, i] = tile.T
    return PartitionedPSDMatrix(blocks, sizes)


def build_blocked_cross_kernel_matrix(
    kernel: Kernel,
    X1: Any,
    X2: Any,
    block_size: int,
    col_block_size: int | None = None,
    params: Params | None = None,
) -> PartitionedMatrix:
    """The rectangular matrix of ``kernel`` between ``X1`` (rows) and ``X2``"""
    params = {} if params is None else params
    col_block_size = block_size if col_block_size is None else col_block_size
    row_sizes = partition_sizes(num_data(X1), block_size)
    col_sizes = partition_sizes(num_data(X2), col_block_size)
    row_offsets = _offsets(row_sizes)
    col_offsets = _offsets(col_sizes)

    blocks = {}
    for i in range(len(row_sizes)):
        Xi = take(X1, row_offsets[i], row_offsets[i + 1])
        for j in range(len(col_sizes)):
            blocks[i, j] = _evaluate_tile(
                kernel, params, Xi, take(X2, col_offsets[j], col_offsets[j + 1])
            )
    return PartitionedMatrix(blocks, row_sizes, col_sizes)


def build_blocked_gradient_matrices(
    kernel: Kernel, X: Any, block_size: int, params: Params | None = None
) -> dict[Path, PartitionedMatrix]:
    """The elementwise derivative of the Gram matrix for each free hyperparameter

    Returns:
        A mapping from every non-blocked hyperparameter path to the partitioned
        matrix of ``dk(x_i, x_j) / dh`` over all pairs of inputs.
    """
    params = {} if params is None else params
    sizes = partition_sizes(num_data(X), block_size)
    offsets = _offsets(sizes)

    def func(a: Any, b: Any) -> dict[Path, JAXArray]:
        return kernel.gradient_at(params, a, b)

    blocks: dict[Path, dict[tuple[int, int], JAXArray]] = {}
    for i in range(len(sizes)):
        Xi = take(X, offsets[i], offsets[i + 1])
        for j in range(i + 1):
            tiles = _pairwise(func, Xi, take(X, offsets[j], offsets[j + 1]))
            for path, tile in tiles.items():
                target = blocks.setdefault(Path.parse(path), {})
                target[i, j] = tile
                if i != j:
                    target[j, i] = tile.T
    return {
        path: PartitionedMatrix(tiles, sizes, sizes) for path, tiles in blocks.items()
    }
