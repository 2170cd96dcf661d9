"""
This submodule provides the observation noise models for ``blockgp`` Gaussian
process models. A noise model is a kernel like any other: it has its own
hyperparameters and gradients, and it is added to the process covariance when
building the training Gram matrix. The most commonly used noise model is
:class:`WhiteNoise`, which adds a constant variance for coincident inputs.
"""

from __future__ import annotations

__all__ = ["Noise", "WhiteNoise", "Zero"]

from typing import Any, ClassVar

import jax
import jax.numpy as jnp

from blockgp.helpers import JAXArray
from blockgp.kernels.base import Kernel


def _coincident(X1: Any, X2: Any) -> JAXArray:
    leaves = zip(jax.tree_util.tree_leaves(X1), jax.tree_util.tree_leaves(X2))
    same = jnp.asarray(True)
    for a, b in leaves:
        same = jnp.logical_and(same, jnp.all(jnp.equal(a, b)))
    return same


class Noise(Kernel):
    """An abstract base class for the observation noise models"""


class WhiteNoise(Noise):
    r"""Independent Gaussian noise with a constant variance

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \sigma^2\,\delta(\mathbf{x}_i,\,\mathbf{x}_j)

    Args:
        variance: The noise variance :math:`\sigma^2`.
    """

    hyperparameters: ClassVar[tuple[str, ...]] = ("variance",)
    variance: JAXArray | float

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        variance = jnp.asarray(params["variance"])
        return jnp.where(_coincident(X1, X2), variance, jnp.zeros_like(variance))

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        variance = jnp.asarray(params["variance"])
        return {
            "variance": jnp.where(
                _coincident(X1, X2), jnp.ones_like(variance), jnp.zeros_like(variance)
            )
        }


class Zero(Noise):
    """A noise free observation model"""

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        del params, X1, X2
        return jnp.zeros(())
