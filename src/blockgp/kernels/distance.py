"""
The metrics behind :class:`blockgp.kernels.stationary.Stationary` kernels. A
metric turns a pair of input coordinates into a scalar separation, and also
reports how that separation, measured in units of a length scale, moves with
the scale. The stationary kernels get their ``scale`` gradients from the
latter by the chain rule, so a custom :class:`Distance` only has to say how far
apart two points are.
"""

from __future__ import annotations

__all__ = ["Distance", "L1Distance", "L2Distance"]

from abc import abstractmethod

import equinox as eqx
import jax.numpy as jnp

from blockgp.helpers import JAXArray


def _sqrt_from_zero(r2: JAXArray) -> JAXArray:
    # Zero gradient at r2 = 0 instead of a NaN
    positive = r2 > 0
    return jnp.where(positive, jnp.sqrt(jnp.where(positive, r2, 1.0)), 0.0)


class Distance(eqx.Module):
    """An abstract base class defining a distance metric interface"""

    @abstractmethod
    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        raise NotImplementedError()

    def squared_distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.square(self.distance(X1, X2))

    def scaled_distance(
        self, X1: JAXArray, X2: JAXArray, scale: JAXArray
    ) -> tuple[JAXArray, JAXArray]:
        """The separation ``r = d / scale`` and its derivative ``dr / dscale``"""
        r = self.distance(X1, X2) / scale
        return r, -r / scale

    def scaled_squared_distance(
        self, X1: JAXArray, X2: JAXArray, scale: JAXArray
    ) -> tuple[JAXArray, JAXArray]:
        """The squared separation ``r2 = d**2 / scale**2`` and ``dr2 / dscale``"""
        r2 = self.squared_distance(X1, X2) / jnp.square(scale)
        return r2, -2 * r2 / scale


class L1Distance(Distance):
    """The L1 or Manhattan distance between two coordinates"""

    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.sum(jnp.abs(X1 - X2))


class L2Distance(Distance):
    """The L2 or Euclidean distance between two coordinates

    The distance is differentiable everywhere, with a zero gradient for
    coincident points.
    """

    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return _sqrt_from_zero(self.squared_distance(X1, X2))

    def squared_distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.sum(jnp.square(X1 - X2))
