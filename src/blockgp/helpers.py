from __future__ import annotations

__all__ = ["JAXArray", "Path", "as_path", "default_jitter", "num_data", "take"]

from typing import Any

import jax
import jax.numpy as jnp

JAXArray = jax.Array


class Path(tuple):
    """The fully qualified name of a hyperparameter

    Composite kernels namespace the hyperparameters of their components by
    prepending a label to the component's paths. A ``Path`` is just a tuple of
    these name segments, so it can be used directly as a dictionary key and
    compares equal to the plain tuple with the same segments. The string
    representation joins the segments with ``/``.
    """

    def __new__(cls, *segments: str) -> Path:
        for segment in segments:
            if not isinstance(segment, str) or not segment:
                raise ValueError(f"Invalid hyperparameter name segment: {segment!r}")
        return super().__new__(cls, segments)

    def __getnewargs__(self) -> tuple[str, ...]:
        return tuple(self)

    @classmethod
    def parse(cls, name: str | tuple[str, ...]) -> Path:
        """Convert a ``"a/b/c"`` style string (or a tuple of segments)"""
        if isinstance(name, Path):
            return name
        if isinstance(name, tuple):
            return cls(*name)
        return cls(*name.split("/"))

    @property
    def head(self) -> str:
        return self[0]

    @property
    def tail(self) -> Path:
        return Path(*self[1:])

    def prefixed(self, label: str) -> Path:
        return Path(label, *self)

    def __str__(self) -> str:
        return "/".join(self)

    def __repr__(self) -> str:
        return f"Path({str(self)!r})"


def as_path(name: str | tuple[str, ...]) -> Path:
    return Path.parse(name)


def num_data(X: Any) -> int:
    """The size of the leading dimension shared by all the leaves of ``X``"""
    sizes = {jnp.shape(x)[0] for x in jax.tree_util.tree_leaves(X)}
    if len(sizes) != 1:
        raise ValueError(
            "All the leaves of the input coordinates must share the same "
            f"leading dimension; got sizes {sorted(sizes)}"
        )
    (size,) = sizes
    return size


def take(X: Any, start: int, stop: int) -> Any:
    """Slice the leading dimension of every leaf in ``X``"""
    return jax.tree_util.tree_map(lambda x: x[start:stop], X)


def default_jitter(dtype: Any) -> JAXArray:
    """Default to adding some amount of jitter to the diagonal, just in case,
    we use sqrt(eps) for the dtype of the data because that seems to give
    sensible results in general.
    """
    return jnp.sqrt(jnp.finfo(dtype).eps)
