"""
The primary model building interface in ``blockgp`` is via "kernels", which are
typically constructed as sums and products of objects defined in this
subpackage, or by subclassing :class:`Kernel`. Every kernel carries a named
hyperparameter state, can be evaluated for an explicit hyperparameter
configuration, and reports the analytic derivative with respect to each of its
non-blocked hyperparameters. The functions in :mod:`blockgp.kernels.matrix`
turn a kernel into (blocked) kernel matrices.
"""

__all__ = [
    "Distance",
    "L1Distance",
    "L2Distance",
    "Kernel",
    "Composite",
    "Custom",
    "Sum",
    "Product",
    "Scaled",
    "Decomposable",
    "Constant",
    "DotProduct",
    "Polynomial",
    "Stationary",
    "Exp",
    "ExpSquared",
    "Matern32",
    "Matern52",
    "Cosine",
    "ExpSineSquared",
    "RationalQuadratic",
    "GaussianSpectral",
    "build_kernel_matrix",
    "build_blocked_kernel_matrix",
    "build_blocked_cross_kernel_matrix",
    "build_blocked_gradient_matrices",
]

from blockgp.kernels.base import (
    Composite,
    Constant,
    Custom,
    DotProduct,
    Kernel,
    Polynomial,
    Product,
    Scaled,
    Sum,
)
from blockgp.kernels.decomposable import Decomposable
from blockgp.kernels.distance import Distance, L1Distance, L2Distance
from blockgp.kernels.matrix import (
    build_blocked_cross_kernel_matrix,
    build_blocked_gradient_matrices,
    build_blocked_kernel_matrix,
    build_kernel_matrix,
)
from blockgp.kernels.spectral import GaussianSpectral
from blockgp.kernels.stationary import (
    Cosine,
    Exp,
    ExpSineSquared,
    ExpSquared,
    Matern32,
    Matern52,
    RationalQuadratic,
    Stationary,
)
