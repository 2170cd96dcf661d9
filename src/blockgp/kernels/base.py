from __future__ import annotations

__all__ = [
    "Kernel",
    "Composite",
    "Custom",
    "Sum",
    "Product",
    "Scaled",
    "Constant",
    "DotProduct",
    "Polynomial",
]

import dataclasses
from abc import abstractmethod
from collections import Counter
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Union

import equinox as eqx
import jax
import jax.numpy as jnp

from blockgp.helpers import JAXArray, Path

if TYPE_CHECKING:
    from blockgp.partitioned import PartitionedMatrix, PartitionedPSDMatrix

Params = Mapping[Union[Path, str], Any]


class Kernel(eqx.Module):
    """The base class for all kernel implementations

    A kernel's current hyperparameters are simply its fields, listed by name in
    the ``hyperparameters`` class attribute. Kernels are immutable: methods
    like :func:`Kernel.with_state` and :func:`Kernel.block` return new kernels.
    All evaluations go through :func:`Kernel.evaluate_at` and
    :func:`Kernel.gradient_at`, which take an explicit hyperparameter
    configuration; names missing from the configuration fall back to the
    current state.

    Subclasses should accept parameters as fields and then override
    :func:`Kernel._evaluate` and :func:`Kernel._gradient`.

    Args:
        blocked: Names of hyperparameters to exclude from optimization and
            from gradients.
    """

    hyperparameters: ClassVar[tuple[str, ...]] = ()
    blocked: frozenset[str] = eqx.field(
        default=frozenset(), static=True, kw_only=True
    )

    @abstractmethod
    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        """Evaluate the kernel at a pair of input coordinates

        This should be overridden be subclasses to return the kernel-specific
        value. ``params`` maps each name in ``hyperparameters`` to its value,
        and should be used instead of reading the fields directly. ``X1`` and
        ``X2`` are single datapoints; the :class:`Kernel` ``vmap`` magic
        handles all the broadcasting.
        """
        del params, X1, X2
        raise NotImplementedError

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        """The analytic derivative with respect to each hyperparameter"""
        del X1, X2
        if self.hyperparameters:
            raise NotImplementedError(
                f"{type(self).__name__} does not implement gradients"
            )
        return {}

    @property
    def name(self) -> str:
        """The label used to namespace this kernel inside a composite"""
        return type(self).__name__

    @property
    def state(self) -> dict[Path, Any]:
        """The current value of every hyperparameter"""
        return {Path(n): getattr(self, n) for n in self.hyperparameters}

    @property
    def blocked_hyperparameters(self) -> frozenset[Path]:
        return frozenset(Path(n) for n in self.blocked)

    @property
    def effective_hyperparameters(self) -> list[Path]:
        """The hyperparameters that are not blocked, in a stable order"""
        blocked = self.blocked_hyperparameters
        return [p for p in self.state if p not in blocked]

    def _resolve(self, params: Params) -> Any:
        resolved = {n: getattr(self, n) for n in self.hyperparameters}
        for key, value in params.items():
            path = Path.parse(key)
            if len(path) == 1 and path.head in resolved:
                resolved[path.head] = value
        return resolved

    def _check_names(self, names: Sequence[Path | str]) -> list[str]:
        result = []
        for name in names:
            path = Path.parse(name)
            if len(path) != 1 or path.head not in self.hyperparameters:
                raise ValueError(
                    f"{type(self).__name__} has no hyperparameter {str(path)!r}"
                )
            result.append(path.head)
        return result

    def with_state(self, params: Params) -> Kernel:
        """A copy of this kernel with some hyperparameters replaced"""
        updates = {}
        for key, value in params.items():
            path = Path.parse(key)
            if len(path) == 1 and path.head in self.hyperparameters:
                updates[path.head] = value
        if not updates:
            return self
        return dataclasses.replace(self, **updates)

    def block(self, *names: Path | str) -> Kernel:
        """A copy of this kernel with the given hyperparameters blocked"""
        return dataclasses.replace(
            self, blocked=self.blocked | frozenset(self._check_names(names))
        )

    def unblock(self, *names: Path | str) -> Kernel:
        """Unblock the given hyperparameters, or all of them by default"""
        if not names:
            return dataclasses.replace(self, blocked=frozenset())
        return dataclasses.replace(
            self, blocked=self.blocked - frozenset(self._check_names(names))
        )

    def evaluate_at(self, params: Params, X1: JAXArray, X2: JAXArray) -> JAXArray:
        """Evaluate the kernel for an explicit hyperparameter configuration

        This does not depend on or change the state of the kernel, except for
        names missing from ``params``.
        """
        return self._evaluate(self._resolve(params), X1, X2)

    def gradient_at(
        self, params: Params, X1: JAXArray, X2: JAXArray
    ) -> dict[Path, JAXArray]:
        """The derivative of :func:`evaluate_at` for each non-blocked hyperparameter"""
        blocked = self.blocked_hyperparameters
        grads = self._gradient(self._resolve(params), X1, X2)
        result = {}
        for name, value in grads.items():
            path = Path.parse(name)
            if path not in blocked:
                result[path] = value
        return result

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        """Evaluate the kernel at a pair of points using the current state"""
        return self.evaluate_at({}, X1, X2)

    def gradient(self, X1: JAXArray, X2: JAXArray) -> dict[Path, JAXArray]:
        return self.gradient_at({}, X1, X2)

    def evaluate_diag(self, X: JAXArray) -> JAXArray:
        return self.evaluate(X, X)

    def __call__(self, X1: JAXArray, X2: JAXArray | None = None) -> JAXArray:
        if X2 is None:
            k = jax.vmap(self.evaluate_diag, in_axes=0)(X1)
            if k.ndim != 1:
                raise ValueError(
                    "Invalid kernel diagonal shape: "
                    f"expected ndim = 1, got ndim={k.ndim} "
                    "check the dimensions of parameters and custom kernels"
                )
            return k
        from blockgp.kernels.matrix import build_kernel_matrix

        return build_kernel_matrix(self, X1, X2)

    def build_kernel_matrix(
        self, X: JAXArray, params: Params | None = None
    ) -> JAXArray:
        from blockgp.kernels.matrix import build_kernel_matrix

        return build_kernel_matrix(self, X, params=params)

    def build_blocked_kernel_matrix(
        self, X: JAXArray, block_size: int, params: Params | None = None
    ) -> PartitionedPSDMatrix:
        from blockgp.kernels.matrix import build_blocked_kernel_matrix

        return build_blocked_kernel_matrix(self, X, block_size, params=params)

    def build_blocked_cross_kernel_matrix(
        self,
        X1: JAXArray,
        X2: JAXArray,
        block_size: int,
        col_block_size: int | None = None,
        params: Params | None = None,
    ) -> PartitionedMatrix:
        from blockgp.kernels.matrix import build_blocked_cross_kernel_matrix

        return build_blocked_cross_kernel_matrix(
            self, X1, X2, block_size, col_block_size, params=params
        )

    def build_blocked_gradient_matrices(
        self, X: JAXArray, block_size: int, params: Params | None = None
    ) -> dict[Path, PartitionedMatrix]:
        from blockgp.kernels.matrix import build_blocked_gradient_matrices

        return build_blocked_gradient_matrices(self, X, block_size, params=params)

    def __add__(self, other: Kernel | JAXArray) -> Kernel:
        if isinstance(other, Kernel):
            return Sum(self, other)
        return Sum(self, Constant(other))

    def __radd__(self, other: Any) -> Kernel:
        # We'll hit this first branch when using the `sum` function
        if isinstance(other, (int, float)) and other == 0:
            return self
        if isinstance(other, Kernel):
            return Sum(other, self)
        return Sum(Constant(other), self)

    def __mul__(self, other: Kernel | JAXArray) -> Kernel:
        if isinstance(other, Kernel):
            return Product(self, other)
        return Product(self, Constant(other))

    def __rmul__(self, other: Any) -> Kernel:
        if isinstance(other, Kernel):
            return Product(other, self)
        return Product(Constant(other), self)


def component_labels(
    kernels: Sequence[Kernel], labels: Sequence[str] | None = None
) -> tuple[str, ...]:
    """Labels namespacing the components of a composite kernel

    By default each component is labelled by its ``name``; components sharing
    a name are suffixed with their position, e.g. ``ExpSquared_1`` for the
    second component of ``ExpSquared(...) + ExpSquared(...)``.
    """
    if labels is not None:
        labels = tuple(labels)
        if len(labels) != len(kernels):
            raise ValueError(
                f"Expected {len(kernels)} labels for the components; got {len(labels)}"
            )
        if len(set(labels)) != len(labels):
            raise ValueError(f"Component labels must be unique; got {labels}")
        for label in labels:
            Path(label)
        return labels
    names = [k.name for k in kernels]
    counts = Counter(names)
    return tuple(
        name if counts[name] == 1 else f"{name}_{n}" for n, name in enumerate(names)
    )


class Composite(Kernel):
    """A kernel built from other kernels

    The hyperparameters of each component are namespaced by the component's
    label, so a ``scale`` in the first ``ExpSquared`` of a sum becomes
    ``ExpSquared/scale`` (or ``ExpSquared_1/scale`` if the name is taken).
    """

    @property
    @abstractmethod
    def components(self) -> tuple[Kernel, ...]:
        raise NotImplementedError

    @abstractmethod
    def _rebuild(self, components: Sequence[Kernel]) -> Composite:
        raise NotImplementedError

    @property
    def labels(self) -> tuple[str, ...]:
        return component_labels(self.components, getattr(self, "names", None))

    def _split(self, params: Params) -> list[dict[Path, Any]]:
        labels = self.labels
        split: dict[str, dict[Path, Any]] = {label: {} for label in labels}
        for key, value in params.items():
            path = Path.parse(key)
            if len(path) > 1 and path.head in split:
                split[path.head][path.tail] = value
        return [split[label] for label in labels]

    def _group_names(self, names: Sequence[Path | str]) -> list[list[Path]]:
        labels = self.labels
        grouped: dict[str, list[Path]] = {label: [] for label in labels}
        for name in names:
            path = Path.parse(name)
            if len(path) < 2 or path.head not in grouped:
                raise ValueError(
                    f"{type(self).__name__} has no hyperparameter {str(path)!r}"
                )
            grouped[path.head].append(path.tail)
        return [grouped[label] for label in labels]

    @property
    def state(self) -> dict[Path, Any]:
        return {
            path.prefixed(label): value
            for label, kernel in zip(self.labels, self.components)
            for path, value in kernel.state.items()
        }

    @property
    def blocked_hyperparameters(self) -> frozenset[Path]:
        return frozenset(
            path.prefixed(label)
            for label, kernel in zip(self.labels, self.components)
            for path in kernel.blocked_hyperparameters
        )

    def with_state(self, params: Params) -> Composite:
        return self._rebuild(
            [k.with_state(p) for k, p in zip(self.components, self._split(params))]
        )

    def block(self, *names: Path | str) -> Composite:
        return self._rebuild(
            [
                k.block(*group) if group else k
                for k, group in zip(self.components, self._group_names(names))
            ]
        )

    def unblock(self, *names: Path | str) -> Composite:
        if not names:
            return self._rebuild([k.unblock() for k in self.components])
        return self._rebuild(
            [
                k.unblock(*group) if group else k
                for k, group in zip(self.components, self._group_names(names))
            ]
        )

    def _resolve(self, params: Params) -> Any:
        return self._split(params)

    def _component_gradients(
        self, params: list[dict[Path, Any]], X1: JAXArray, X2: JAXArray
    ) -> list[dict[Path, JAXArray]]:
        return [
            {
                path.prefixed(label): value
                for path, value in kernel.gradient_at(p, X1, X2).items()
            }
            for label, kernel, p in zip(self.labels, self.components, params)
        ]


class Custom(Kernel):
    """A custom kernel class implemented as a callable

    The callable has no hyperparameters of its own, so its gradient is empty.

    Args:
        function: A callable with a signature ``function(X1, X2)`` returning
            the scalar covariance between two single datapoints.
    """

    function: Callable[[Any, Any], Any] = eqx.field(static=True)

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        del params
        return self.function(X1, X2)


class Sum(Composite):
    """A helper to represent the sum of two kernels"""

    kernel1: Kernel
    kernel2: Kernel
    names: tuple[str, str] | None = eqx.field(default=None, static=True)

    @property
    def components(self) -> tuple[Kernel, ...]:
        return (self.kernel1, self.kernel2)

    def _rebuild(self, components: Sequence[Kernel]) -> Sum:
        kernel1, kernel2 = components
        return dataclasses.replace(self, kernel1=kernel1, kernel2=kernel2)

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        p1, p2 = params
        return self.kernel1.evaluate_at(p1, X1, X2) + self.kernel2.evaluate_at(
            p2, X1, X2
        )

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        g1, g2 = self._component_gradients(params, X1, X2)
        return {**g1, **g2}


class Product(Composite):
    """A helper to represent the product of two kernels

    The gradient follows the product rule, with each factor evaluated for the
    same configuration as the derivative it multiplies.
    """

    kernel1: Kernel
    kernel2: Kernel
    names: tuple[str, str] | None = eqx.field(default=None, static=True)

    @property
    def components(self) -> tuple[Kernel, ...]:
        return (self.kernel1, self.kernel2)

    def _rebuild(self, components: Sequence[Kernel]) -> Product:
        kernel1, kernel2 = components
        return dataclasses.replace(self, kernel1=kernel1, kernel2=kernel2)

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        p1, p2 = params
        return self.kernel1.evaluate_at(p1, X1, X2) * self.kernel2.evaluate_at(
            p2, X1, X2
        )

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        p1, p2 = params
        k1 = self.kernel1.evaluate_at(p1, X1, X2)
        k2 = self.kernel2.evaluate_at(p2, X1, X2)
        g1, g2 = self._component_gradients(params, X1, X2)
        grads = {path: g * k2 for path, g in g1.items()}
        grads.update({path: g * k1 for path, g in g2.items()})
        return grads


class Scaled(Kernel):
    r"""A kernel rescaled by a fixed function of the inputs

    .. math::

        k'(\mathbf{x}_i,\,\mathbf{x}_j) = g(\mathbf{x}_i)\,
            k(\mathbf{x}_i,\,\mathbf{x}_j)\,g(\mathbf{x}_j)

    The wrapped kernel's hyperparameters are exposed unchanged.

    Args:
        kernel: The base kernel :math:`k`.
        scale: The scaling function :math:`g`, evaluated on single points.
    """

    kernel: Kernel
    scale: Callable[[Any], Any] = eqx.field(static=True)

    @property
    def name(self) -> str:
        return self.kernel.name

    @property
    def state(self) -> dict[Path, Any]:
        return self.kernel.state

    @property
    def blocked_hyperparameters(self) -> frozenset[Path]:
        return self.kernel.blocked_hyperparameters

    def with_state(self, params: Params) -> Scaled:
        return dataclasses.replace(self, kernel=self.kernel.with_state(params))

    def block(self, *names: Path | str) -> Scaled:
        return dataclasses.replace(self, kernel=self.kernel.block(*names))

    def unblock(self, *names: Path | str) -> Scaled:
        return dataclasses.replace(self, kernel=self.kernel.unblock(*names))

    def _resolve(self, params: Params) -> Any:
        return params

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return self.scale(X1) * self.kernel.evaluate_at(params, X1, X2) * self.scale(X2)

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        factor = self.scale(X1) * self.scale(X2)
        return {
            path: factor * g
            for path, g in self.kernel.gradient_at(params, X1, X2).items()
        }


class Constant(Kernel):
    r"""This kernel returns the constant

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = c

    where :math:`c` is a parameter.

    Args:
        value: The parameter :math:`c` in the above equation.
    """

    hyperparameters: ClassVar[tuple[str, ...]] = ("value",)
    value: JAXArray | float

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        del X1, X2
        if jnp.ndim(params["value"]) != 0:
            raise ValueError("The value of a constant kernel must be a scalar")
        return jnp.asarray(params["value"])

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        del X1, X2
        return {"value": jnp.ones_like(jnp.asarray(params["value"]))}


def _dot(X1: JAXArray, X2: JAXArray) -> JAXArray:
    if jnp.ndim(X1) == 0:
        return X1 * X2
    return X1 @ X2


class DotProduct(Kernel):
    r"""The dot product kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \mathbf{x}_i \cdot \mathbf{x}_j

    with no parameters. On scalar inputs this is the covariance of a linear
    trend through the origin.
    """

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        del params
        return _dot(X1, X2)


class Polynomial(Kernel):
    r"""A polynomial kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = [(\mathbf{x}_i / \ell) \cdot
            (\mathbf{x}_j / \ell) + \sigma^2]^P

    The order :math:`P` is fixed; only :math:`\ell` and :math:`\sigma` are
    hyperparameters.

    Args:
        order: The power :math:`P`.
        scale: The parameter :math:`\ell`.
        sigma: The parameter :math:`\sigma`.
    """

    hyperparameters: ClassVar[tuple[str, ...]] = ("scale", "sigma")
    order: JAXArray | float = eqx.field(static=True)
    scale: JAXArray | float = eqx.field(default_factory=lambda: jnp.ones(()))
    sigma: JAXArray | float = eqx.field(default_factory=lambda: jnp.zeros(()))

    def _base(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return _dot(X1, X2) / jnp.square(params["scale"]) + jnp.square(params["sigma"])

    def _evaluate(self, params: Any, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return self._base(params, X1, X2) ** self.order

    def _gradient(self, params: Any, X1: JAXArray, X2: JAXArray) -> dict[Any, JAXArray]:
        scale, sigma = params["scale"], params["sigma"]
        dk = self.order * self._base(params, X1, X2) ** (self.order - 1)
        return {
            "scale": dk * (-2 * _dot(X1, X2) / scale**3),
            "sigma": dk * 2 * sigma,
        }
