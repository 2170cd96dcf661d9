"""
Many of the most commonly used kernels are implemented as subclasses of the
:class:`Stationary` kernel. This means that each kernel in this section has (at
least) the two parameters:

- ``scale``: A scalar lengthscale for the kernel in the radial distance
  specified by ``distance``, and
- ``distance``: A :class:`blockgp.kernels.distance.Distance` metric specifying
  how to compute the scalar distance between two input coordinates.

Only ``scale`` (and the kernel specific parameters like ``gamma`` or
``alpha``) are hyperparameters; the metric is fixed. Every kernel here provides
the analytic derivative with respect to each of its hyperparameters.
"""

from __future__ import annotations

__all__ = [
    "Stationary",
    "Exp",
    "ExpSquared",
    "Matern32",
    "Matern52",
    "Cosine",
    "ExpSineSquared",
    "RationalQuadratic",
]

from typing import Any, ClassVar

import equinox as eqx
import jax.numpy as jnp
import numpy as np

from blockgp.helpers import JAXArray
from blockgp.kernels.base import Kernel
from blockgp.kernels.distance import Distance, L1Distance, L2Distance


class Stationary(Kernel):
    """A stationary kernel is defined with respect to a distance metric

    Note that a stationary kernel is *always* isotropic.

    Args:
        scale: The length scale, in the same units as ``distance`` for the
            kernel. This must be a scalar.
        distance: An object that implements ``distance`` and
            ``squared_distance`` methods. Typically a subclass of
            :class:`blockgp.kernels.distance.Distance`.
    """

    hyperparameters: ClassVar[tuple[str, ...]] = ("scale",)
    scale: JAXArray | float = eqx.field(default_factory=lambda: jnp.ones(()))
    distance: Distance = eqx.field(default_factory=L1Distance)

    def _check_scale(self, params: Any) -> JAXArray:
        if jnp.ndim(params["scale"]):
            raise ValueError(
                "Only scalar scales are permitted for stationary kernels"
            )
        return params["scale"]

    def _scaled(self, params: Any, X1: JAXArray, X2: JAXArray) -> Any:
        return self.distance.scaled_distance(X1, X2, self._check_scale(params))

    def _scaled_squared(self, params: Any, X1: JAXArray, X2: JAXArray) -> Any:
        return self.distance.scaled_squared_distance(
            X1, X2, self._check_scale(params)
        )


class Exp(Stationary):
    r"""The exponential kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \exp(-r)

    where, by default,

    .. math::

        r = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_1

    Args:
        scale: The parameter :math:`\ell`.
    """

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r, _ = self._scaled(params, X1, X2)
        return jnp.exp(-r)

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        r, dr = self._scaled(params, X1, X2)
        return {"scale": -jnp.exp(-r) * dr}


class ExpSquared(Stationary):
    r"""The exponential squared or radial basis function kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \exp(-r^2 / 2)

    where, by default,

    .. math::

        r^2 = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_2^2

    Args:
        scale: The parameter :math:`\ell`.
    """

    distance: Distance = eqx.field(default_factory=L2Distance)

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r2, _ = self._scaled_squared(params, X1, X2)
        return jnp.exp(-0.5 * r2)

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        r2, dr2 = self._scaled_squared(params, X1, X2)
        return {"scale": -0.5 * jnp.exp(-0.5 * r2) * dr2}


class Matern32(Stationary):
    r"""The Matern-3/2 kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = (1 + \sqrt{3}\,r)\,\exp(-\sqrt{3}\,r)

    where, by default,

    .. math::

        r = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_1

    Args:
        scale: The parameter :math:`\ell`.
    """

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r, _ = self._scaled(params, X1, X2)
        arg = np.sqrt(3) * r
        return (1 + arg) * jnp.exp(-arg)

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        r, dr = self._scaled(params, X1, X2)
        arg = np.sqrt(3) * r
        return {"scale": -3 * r * jnp.exp(-arg) * dr}


class Matern52(Stationary):
    r"""The Matern-5/2 kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = (1 + \sqrt{5}\,r +
            5\,r^2/3)\,\exp(-\sqrt{5}\,r)

    where, by default,

    .. math::

        r = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_1

    Args:
        scale: The parameter :math:`\ell`.
    """

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r, _ = self._scaled(params, X1, X2)
        arg = np.sqrt(5) * r
        return (1 + arg + jnp.square(arg) / 3) * jnp.exp(-arg)

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        r, dr = self._scaled(params, X1, X2)
        arg = np.sqrt(5) * r
        return {"scale": -5 * r * (1 + arg) * jnp.exp(-arg) * dr / 3}


class Cosine(Stationary):
    r"""The cosine kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \cos(2\,\pi\,r)

    where, by default,

    .. math::

        r = ||(\mathbf{x}_i - \mathbf{x}_j) / P||_1

    Args:
        scale: The parameter :math:`P`.
    """

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r, _ = self._scaled(params, X1, X2)
        return jnp.cos(2 * jnp.pi * r)

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        r, dr = self._scaled(params, X1, X2)
        return {"scale": -2 * jnp.pi * jnp.sin(2 * jnp.pi * r) * dr}


class ExpSineSquared(Stationary):
    r"""The exponential sine squared or quasiperiodic kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \exp(-\Gamma\,\sin^2 \pi r)

    where, by default,

    .. math::

        r = ||(\mathbf{x}_i - \mathbf{x}_j) / P||_1

    Args:
        scale: The parameter :math:`P`.
        gamma: The parameter :math:`\Gamma`.
    """

    hyperparameters: ClassVar[tuple[str, ...]] = ("scale", "gamma")
    gamma: JAXArray | float | None = None

    def __check_init__(self):
        if self.gamma is None:
            raise ValueError("Missing required argument 'gamma'")

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r, _ = self._scaled(params, X1, X2)
        return jnp.exp(-params["gamma"] * jnp.square(jnp.sin(jnp.pi * r)))

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        gamma = params["gamma"]
        r, dr = self._scaled(params, X1, X2)
        s2 = jnp.square(jnp.sin(jnp.pi * r))
        k = jnp.exp(-gamma * s2)
        return {
            "scale": -jnp.pi * gamma * k * jnp.sin(2 * jnp.pi * r) * dr,
            "gamma": -s2 * k,
        }


class RationalQuadratic(Stationary):
    r"""The rational quadratic

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = (1 + r^2 / 2\,\alpha)^{-\alpha}

    where, by default,

    .. math::

        r^2 = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_2^2

    Args:
        scale: The parameter :math:`\ell`.
        alpha: The parameter :math:`\alpha`.
    """

    hyperparameters: ClassVar[tuple[str, ...]] = ("scale", "alpha")
    alpha: JAXArray | float | None = None

    def __check_init__(self):
        if self.alpha is None:
            raise ValueError("Missing required argument 'alpha'")

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        alpha = params["alpha"]
        r2, _ = self._scaled_squared(params, X1, X2)
        return (1.0 + 0.5 * r2 / alpha) ** -alpha

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        alpha = params["alpha"]
        r2, dr2 = self._scaled_squared(params, X1, X2)
        u = 1.0 + 0.5 * r2 / alpha
        k = u**-alpha
        return {
            "scale": -0.5 * u ** (-alpha - 1) * dr2,
            "alpha": k * (-jnp.log(u) + 0.5 * r2 / (alpha * u)),
        }
