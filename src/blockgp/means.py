"""
In ``blockgp``, the Gaussian process mean function can be defined using any
callable object, but this submodule includes two helper classes for defining
means. When defining your own mean function, it's important to remember that
your callable should accept as input a single input coordinate (i.e. not a
*vector* of coordinates), and return the scalar value of the mean at that
coordinate. ``blockgp`` will handle all the relevant ``vmap``-ing and
partitioning.
"""

from __future__ import annotations

__all__ = ["MeanBase", "Mean", "LinearTrend"]

from abc import abstractmethod
from typing import Any, Callable

import equinox as eqx
import jax
import jax.numpy as jnp

from blockgp.helpers import JAXArray, num_data, take
from blockgp.partitioned import PartitionedVector, partition_sizes


class MeanBase(eqx.Module):
    @abstractmethod
    def __call__(self, X: JAXArray) -> JAXArray:
        raise NotImplementedError

    def partitioned(self, X: Any, block_size: int) -> PartitionedVector:
        """The mean evaluated at every input, partitioned like the data"""
        blocks = []
        start = 0
        for size in partition_sizes(num_data(X), block_size):
            Xb = take(X, start, start + size)
            blocks.append(jnp.broadcast_to(jax.vmap(self)(Xb), (size,)))
            start += size
        return PartitionedVector(blocks)


class Mean(MeanBase):
    """A wrapper for the GP mean which supports a constant value or a callable

    In ``blockgp``, a mean function can be any callable which takes as input a
    single coordinate and returns the scalar mean at that location.

    Args:
        value: Either a *scalar* constant, or a callable with the correct
            signature.
    """

    value: JAXArray | None = None
    func: Callable[[JAXArray], JAXArray] | None = eqx.field(default=None, static=True)

    def __init__(self, value: JAXArray | float | Callable[[JAXArray], JAXArray]):
        if callable(value):
            self.func = value
        else:
            self.value = jnp.asarray(value)

    def __call__(self, X: JAXArray) -> JAXArray:
        if self.value is None:
            assert self.func is not None
            return self.func(X)
        return self.value


class LinearTrend(MeanBase):
    r"""A linear trend mean function

    .. math::

        m(\mathbf{x}) = \mathbf{w} \cdot \mathbf{x} + b

    Args:
        weights: The slope :math:`\mathbf{w}`; a scalar for scalar inputs.
        intercept: The offset :math:`b`.
    """

    weights: JAXArray | float
    intercept: JAXArray | float = eqx.field(default_factory=lambda: jnp.zeros(()))

    def __call__(self, X: JAXArray) -> JAXArray:
        weights = jnp.asarray(self.weights)
        if jnp.ndim(X) == 0:
            return weights * X + self.intercept
        return jnp.dot(weights, X) + self.intercept
