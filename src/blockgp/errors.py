"""
The conditions raised by ``blockgp``. All of them propagate to the immediate
caller; the only place where one is caught is the hyperparameter search in
:mod:`blockgp.optimize`, which treats :class:`NotPositiveDefinite` as a
configuration with zero likelihood.
"""

from __future__ import annotations

__all__ = [
    "BlockGPError",
    "DimensionMismatch",
    "InvalidPartitioning",
    "MissingHyperParameter",
    "NotPositiveDefinite",
]

from collections.abc import Iterable

import numpy as np


class BlockGPError(Exception):
    """The base class for all ``blockgp`` specific errors"""


class DimensionMismatch(BlockGPError, ValueError):
    """The partitioning or shape of two operands are incompatible"""


class InvalidPartitioning(BlockGPError, ValueError):
    """A partitioned structure was built from inconsistent blocks"""


class MissingHyperParameter(BlockGPError, KeyError):
    """A required hyperparameter was absent from a configuration

    Args:
        names: The (string representation of the) missing names.
    """

    def __init__(self, names: Iterable[str]):
        self.names = tuple(str(n) for n in names)
        super().__init__(self.names)

    def __str__(self) -> str:
        return "Missing required hyperparameters: " + ", ".join(self.names)


class NotPositiveDefinite(BlockGPError, np.linalg.LinAlgError):
    """The dense Cholesky factorization of a diagonal block failed

    Args:
        block: The index of the block row whose diagonal residual is not
            positive definite, if known.
    """

    def __init__(self, block: int | None = None, message: str | None = None):
        self.block = block
        if message is None:
            if block is None:
                message = "Matrix is not positive definite"
            else:
                message = (
                    f"Diagonal block {block} is not positive definite; "
                    "the hyperparameter configuration is degenerate"
                )
        super().__init__(message)
