from __future__ import annotations

__all__ = ["GaussianSpectral"]

from typing import Any, ClassVar

import equinox as eqx
import jax.numpy as jnp

from blockgp.helpers import JAXArray
from blockgp.kernels.base import Kernel


class GaussianSpectral(Kernel):
    r"""A single component of a Gaussian spectral mixture kernel

    This is the inverse Fourier transform of a Gaussian spectral density
    centered at :math:`\mu` with standard deviation :math:`\sigma`:

    .. math::

        k(\tau) = \exp(-2\,\pi^2\,\sigma^2\,\tau^2)\,\cos(2\,\pi\,\mu\,\tau)

    where :math:`\tau = x_i - x_j`. Inputs must be scalars (or length one
    vectors); multidimensional spectral mixtures can be assembled per input
    dimension with :class:`blockgp.kernels.Decomposable`, and mixtures by
    summing components.

    Args:
        center: The parameter :math:`\mu`.
        scale: The parameter :math:`\sigma`.
    """

    hyperparameters: ClassVar[tuple[str, ...]] = ("center", "scale")
    center: JAXArray | float = eqx.field(default_factory=lambda: jnp.zeros(()))
    scale: JAXArray | float = eqx.field(default_factory=lambda: jnp.ones(()))

    def _lag(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        if jnp.size(X1) != 1 or jnp.size(X2) != 1:
            raise ValueError(
                "The Gaussian spectral kernel is only defined for scalar inputs"
            )
        return jnp.sum(X1 - X2)

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        tau = self._lag(X1, X2)
        center, scale = params["center"], params["scale"]
        return jnp.cos(2 * jnp.pi * center * tau) * jnp.exp(
            -2 * jnp.pi**2 * jnp.square(scale * tau)
        )

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        tau = self._lag(X1, X2)
        center, scale = params["center"], params["scale"]
        envelope = jnp.exp(-2 * jnp.pi**2 * jnp.square(scale * tau))
        k = jnp.cos(2 * jnp.pi * center * tau) * envelope
        return {
            "center": -2 * jnp.pi * tau * jnp.sin(2 * jnp.pi * center * tau) * envelope,
            "scale": -4 * jnp.pi**2 * jnp.square(tau) * scale * k,
        }
