from __future__ import annotations

__all__ = ["Decomposable"]

import dataclasses
from collections.abc import Sequence
from typing import Any

import equinox as eqx
import jax.numpy as jnp

from blockgp.helpers import JAXArray
from blockgp.kernels.base import Composite, Kernel


class Decomposable(Composite):
    r"""A kernel acting separately on each element of a tuple input

    The inputs are tuples ``(x_1, ..., x_m)`` (or any sequence pytree with one
    entry per component) and the ``n``-th component kernel only sees ``x_n``.
    The component values are combined with ``reducer``:

    .. math::

        k((x_1, \ldots),\,(y_1, \ldots)) = \sum_n k_n(x_n,\,y_n)
        \quad \mathrm{or} \quad \prod_n k_n(x_n,\,y_n)

    Args:
        kernels: The component kernels, one per element of the input tuple.
        reducer: Either ``"sum"`` or ``"product"``.
        names: Optional labels namespacing the component hyperparameters.
    """

    kernels: tuple[Kernel, ...]
    reducer: str = eqx.field(default="sum", static=True)
    names: tuple[str, ...] | None = eqx.field(default=None, static=True)

    def __check_init__(self):
        if self.reducer not in ("sum", "product"):
            raise ValueError(
                f"reducer must be either 'sum' or 'product'; got {self.reducer!r}"
            )
        if not self.kernels:
            raise ValueError("At least one component kernel is required")

    @property
    def components(self) -> tuple[Kernel, ...]:
        return tuple(self.kernels)

    def _rebuild(self, components: Sequence[Kernel]) -> Decomposable:
        return dataclasses.replace(self, kernels=tuple(components))

    def _values(self, params: Any, X1: Any, X2: Any) -> list[JAXArray]:
        if len(X1) != len(self.kernels) or len(X2) != len(self.kernels):
            raise ValueError(
                f"Expected inputs with {len(self.kernels)} components; got "
                f"{len(X1)} and {len(X2)}"
            )
        return [
            k.evaluate_at(p, x1, x2)
            for k, p, x1, x2 in zip(self.kernels, params, X1, X2)
        ]

    def _evaluate(self, params: Any, X1: Any, X2: Any) -> JAXArray:
        values = self._values(params, X1, X2)
        if self.reducer == "sum":
            return sum(values[1:], values[0])
        return jnp.prod(jnp.stack(values))

    def _gradient(self, params: Any, X1: Any, X2: Any) -> dict[Any, JAXArray]:
        labels = self.labels
        grads = {}
        values = self._values(params, X1, X2) if self.reducer == "product" else []
        for n, (label, kernel, p) in enumerate(zip(labels, self.kernels, params)):
            if self.reducer == "product":
                others = values[:n] + values[n + 1 :]
                factor = jnp.prod(jnp.stack(others)) if others else 1.0
            else:
                factor = 1.0
            for path, g in kernel.gradient_at(p, X1[n], X2[n]).items():
                grads[path.prefixed(label)] = factor * g
        return grads
