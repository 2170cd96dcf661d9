"""
``blockgp`` is a library for Gaussian Process regression on block partitioned
matrices, built on top of `jax <https://github.com/google/jax>`_. Large
covariance matrices are stored as grids of dense tiles, factorized with a
blocked Cholesky decomposition, and solved against with blocked triangular
solves. The primary way that you will use to interact with ``blockgp`` is by
constructing "kernel" functions using the building blocks provided in the
``kernels`` subpackage, and then passing that to a
:class:`GaussianProcessRegression` object to do all the computations.
"""

__version__ = "0.1.0"
__author__ = "blockgp developers"
__email__ = "blockgp@users.noreply.github.com"
__uri__ = "https://github.com/blockgp/blockgp"
__license__ = "BSD"
__description__ = "Gaussian Process regression on block partitioned matrices"

from blockgp import (
    config as config,
    kernels as kernels,
    means as means,
    noise as noise,
    optimize as optimize,
    partitioned as partitioned,
    solvers as solvers,
)
from blockgp.distributions import (
    BlockedMultivariateNormal as BlockedMultivariateNormal,
)
from blockgp.errors import (
    BlockGPError as BlockGPError,
    DimensionMismatch as DimensionMismatch,
    InvalidPartitioning as InvalidPartitioning,
    MissingHyperParameter as MissingHyperParameter,
    NotPositiveDefinite as NotPositiveDefinite,
)
from blockgp.gp import (
    GaussianProcessRegression as GaussianProcessRegression,
    ModelState as ModelState,
)
from blockgp.helpers import Path as Path
from blockgp.prior import GaussianProcessPrior as GaussianProcessPrior
