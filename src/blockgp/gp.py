from __future__ import annotations

__all__ = ["GaussianProcessRegression", "ModelState"]

import enum
import logging
import threading
from collections.abc import Mapping
from typing import Any, Callable, NamedTuple

import jax
import jax.numpy as jnp

from blockgp import config, means
from blockgp.distributions import BlockedMultivariateNormal
from blockgp.errors import DimensionMismatch, MissingHyperParameter
from blockgp.helpers import JAXArray, Path, default_jitter, num_data
from blockgp.kernels.base import Kernel
from blockgp.noise import Zero
from blockgp.partitioned import PartitionedVector, ops
from blockgp.solvers import BlockedSolver
from blockgp.solvers.solver import Solver

logger = logging.getLogger(__name__)

KERNEL = "kernel"
NOISE = "noise"


class ModelState(enum.Enum):
    """The life cycle of the cached factorization of a model"""

    UNINITIALIZED = "uninitialized"
    TRAINED = "trained"
    STALE = "stale"


class _Fit(NamedTuple):
    version: int
    solver: Solver
    residual: PartitionedVector
    alpha: PartitionedVector
    log_likelihood: JAXArray


class GaussianProcessRegression:
    """A Gaussian Process regression model on block partitioned matrices

    The model owns the training data, a covariance kernel, and a noise kernel.
    The Gram matrix ``kernel(X, X) + noise(X, X)`` and its blocked Cholesky
    factor are computed lazily the first time a likelihood, gradient, or
    prediction is requested, and reused until a hyperparameter changes.

    Hyperparameters are addressed by :class:`blockgp.helpers.Path`, with the
    names of the covariance kernel under ``kernel/`` and the names of the noise
    model under ``noise/``, e.g. ``"kernel/scale"`` or ``"noise/variance"``.

    Args:
        kernel (Kernel): The covariance kernel.
        X: The input coordinates. This can be any PyTree that is compatible
            with ``kernel`` where the zeroth dimension is ``N_data``, the size
            of the data set.
        y (JAXArray): The observed responses, with shape ``(N_data,)``.
        noise (Kernel, optional): The noise model. Defaults to no noise.
        mean (Callable, optional): A callable or constant mean function that
            will be evaluated on each input coordinate.
        block_size (int, optional): The number of rows per block. Defaults to
            :func:`blockgp.config.get_block_size`.
        jitter (float, optional): A constant added to the diagonal of the Gram
            matrix and of the posterior covariance. If not provided, this will
            default to :func:`blockgp.config.get_jitter` or, if that is unset,
            to the square root of machine epsilon for the data type being used.
        solver: The solver type to be used to execute the required linear
            algebra. Defaults to :class:`blockgp.solvers.BlockedSolver`.
    """

    def __init__(
        self,
        kernel: Kernel,
        X: Any,
        y: Any,
        *,
        noise: Kernel | None = None,
        mean: means.MeanBase | Callable[[JAXArray], JAXArray] | JAXArray | None = None,
        block_size: int | None = None,
        jitter: Any | None = None,
        solver: type[Solver] | None = None,
    ):
        y = jnp.asarray(y)
        if y.ndim != 1:
            raise ValueError(
                f"Invalid response shape: expected ndim = 1, got ndim={y.ndim}"
            )
        n = num_data(X)
        if n != y.shape[0]:
            raise DimensionMismatch(
                f"Got {n} input coordinates and {y.shape[0]} responses"
            )

        if isinstance(mean, means.MeanBase):
            self.mean_function = mean
        elif mean is None:
            self.mean_function = means.Mean(jnp.zeros(()))
        else:
            self.mean_function = means.Mean(mean)

        self.block_size = config.get_block_size() if block_size is None else int(block_size)
        if self.block_size <= 0:
            raise ValueError(f"block_size must be positive, got {self.block_size}")
        if jitter is None:
            jitter = config.get_jitter()
        if jitter is None:
            jitter = default_jitter(y.dtype)
        self.jitter = jitter

        self.kernel = kernel
        self.noise = Zero() if noise is None else noise
        self.X = X
        self.y = PartitionedVector.from_dense(y, self.block_size)
        self.solver = BlockedSolver if solver is None else solver

        self._lock = threading.RLock()
        self._version = 0
        self._fit: _Fit | None = None
        self._status = ModelState.UNINITIALIZED

    def __repr__(self) -> str:
        return (
            f"GaussianProcessRegression(kernel={self.kernel.name}, "
            f"num_data={self.num_data}, block_size={self.block_size}, "
            f"status={self.status.value})"
        )

    @property
    def num_data(self) -> int:
        return self.y.rows

    @property
    def status(self) -> ModelState:
        return self._status

    @property
    def version(self) -> int:
        """A counter bumped on every hyperparameter change"""
        return self._version

    @property
    def state(self) -> dict[Path, Any]:
        """The current value of every hyperparameter"""
        result = {p.prefixed(KERNEL): v for p, v in self.kernel.state.items()}
        result.update({p.prefixed(NOISE): v for p, v in self.noise.state.items()})
        return result

    @property
    def hyperparameters(self) -> list[Path]:
        return list(self.state)

    @property
    def blocked_hyperparameters(self) -> frozenset[Path]:
        return frozenset(
            {p.prefixed(KERNEL) for p in self.kernel.blocked_hyperparameters}
            | {p.prefixed(NOISE) for p in self.noise.blocked_hyperparameters}
        )

    @property
    def effective_hyperparameters(self) -> list[Path]:
        """The hyperparameters that are not blocked, in a stable order"""
        blocked = self.blocked_hyperparameters
        return [p for p in self.state if p not in blocked]

    def _split(self, params: Mapping[Path | str, Any]) -> tuple[dict, dict]:
        kernel_params: dict[Path, Any] = {}
        noise_params: dict[Path, Any] = {}
        for key, value in params.items():
            path = Path.parse(key)
            if len(path) > 1 and path.head == KERNEL:
                kernel_params[path.tail] = value
            elif len(path) > 1 and path.head == NOISE:
                noise_params[path.tail] = value
            else:
                logger.debug("Ignoring unknown hyperparameter %s", path)
        return kernel_params, noise_params

    def _check_complete(self, params: Mapping[Path | str, Any]) -> None:
        given = {Path.parse(k) for k in params}
        missing = [p for p in self.effective_hyperparameters if p not in given]
        if missing:
            raise MissingHyperParameter(missing)

    def set_hyperparameters(
        self, params: Mapping[Path | str, Any]
    ) -> GaussianProcessRegression:
        """Update the kernel and noise hyperparameters in place

        Every non-blocked hyperparameter must be present in ``params``. The
        cached factorization is invalidated and will be rebuilt by the next
        query.

        Raises:
            MissingHyperParameter: If a non-blocked hyperparameter is absent.
        """
        self._check_complete(params)
        kernel_params, noise_params = self._split(params)
        with self._lock:
            self.kernel = self.kernel.with_state(kernel_params)
            self.noise = self.noise.with_state(noise_params)
            self._version += 1
            if self._status is ModelState.TRAINED:
                self._status = ModelState.STALE
        logger.debug("Hyperparameters updated; model version %d", self._version)
        return self

    def with_hyperparameters(
        self, params: Mapping[Path | str, Any]
    ) -> GaussianProcessRegression:
        """A new, untrained model with updated hyperparameters

        This is the non-mutating counterpart of :func:`set_hyperparameters`,
        and the one to use when several threads share a model.
        """
        self._check_complete(params)
        kernel_params, noise_params = self._split(params)
        return self._replace(
            kernel=self.kernel.with_state(kernel_params),
            noise=self.noise.with_state(noise_params),
        )

    def _replace(self, **changes: Any) -> GaussianProcessRegression:
        kwargs = dict(
            kernel=self.kernel,
            X=self.X,
            y=self.y.to_dense(),
            noise=self.noise,
            mean=self.mean_function,
            block_size=self.block_size,
            jitter=self.jitter,
            solver=self.solver,
        )
        kwargs.update(changes)
        return type(self)(**kwargs)

    def block(self, *names: Path | str) -> GaussianProcessRegression:
        """A new model with the given hyperparameters excluded from tuning"""
        kernel_names, noise_names = self._split({n: None for n in names})
        return self._replace(
            kernel=self.kernel.block(*kernel_names) if kernel_names else self.kernel,
            noise=self.noise.block(*noise_names) if noise_names else self.noise,
        )

    def _train(self) -> _Fit:
        with self._lock:
            fit = self._fit
            if fit is not None and fit.version == self._version:
                return fit

            logger.debug(
                "Rebuilding the Gram matrix of %d points (model version %d)",
                self.num_data,
                self._version,
            )
            solver = self.solver(
                self.kernel,
                self.X,
                self.noise,
                block_size=self.block_size,
                jitter=self.jitter,
            )
            residual = self.y - self.mean_function.partitioned(self.X, self.block_size)
            alpha = solver.solve(residual)
            loglike = -0.5 * residual.dot(alpha) - solver.normalization()
            loglike = jnp.where(jnp.isfinite(loglike), loglike, -jnp.inf)
            fit = _Fit(self._version, solver, residual, alpha, loglike)
            self._fit = fit
            self._status = ModelState.TRAINED
            return fit

    def log_likelihood(self) -> JAXArray:
        """The log marginal likelihood of the training data

        Returns:
            ``-1/2 y^T K^-1 y - sum(log(diag(L))) - n/2 log(2 pi)``, or
            ``-inf`` if that is not finite.

        Raises:
            NotPositiveDefinite: If the Gram matrix can't be factorized for the
                current hyperparameters.
        """
        return self._train().log_likelihood

    def grad_log_likelihood(self) -> dict[Path, JAXArray]:
        """The derivative of :func:`log_likelihood` for each free hyperparameter

        Computed as ``1/2 trace((alpha alpha^T - K^-1) dK/dh)`` with
        ``alpha = K^-1 y``.
        """
        fit = self._train()
        weights = ops.outer(fit.alpha) - fit.solver.inverse()
        grads: dict[Path, JAXArray] = {}
        for prefix, kernel in ((KERNEL, self.kernel), (NOISE, self.noise)):
            matrices = kernel.build_blocked_gradient_matrices(self.X, self.block_size)
            for path, dK in matrices.items():
                grads[path.prefixed(prefix)] = 0.5 * ops.trace_of_product(weights, dK)
        return grads

    def posterior_distribution(self, X_test: Any) -> BlockedMultivariateNormal:
        """The distribution of the latent process at ``X_test`` given the data

        The mean is ``m(X_test) + K(X_test, X) alpha`` and the covariance is
        ``K(X_test, X_test) - K(X_test, X) K^-1 K(X, X_test)``, both partitioned
        with the model's block size.
        """
        self._check_inputs(X_test)
        fit = self._train()
        cross = self.kernel.build_blocked_cross_kernel_matrix(
            self.X, X_test, self.block_size
        )
        mean = self.mean_function.partitioned(X_test, self.block_size) + cross.T @ fit.alpha
        covariance = fit.solver.condition(
            self.kernel, X_test, cross=cross, jitter=self.jitter
        )
        return BlockedMultivariateNormal(mean, covariance)

    def predict(
        self,
        X_test: Any,
        *,
        return_var: bool = False,
        return_cov: bool = False,
    ) -> JAXArray | tuple[JAXArray, JAXArray]:
        """Predict the GP model at new test points conditioned on the data

        Args:
            X_test: The coordinates where the prediction should be evaluated.
            return_var (bool, optional): If ``True``, the variance of the
                predicted values at ``X_test`` will be returned.
            return_cov (bool, optional): If ``True``, the covariance of the
                predicted values at ``X_test`` will be returned. If
                ``return_var`` is ``True``, this flag will be ignored.

        Returns:
            The mean of the predictive model evaluated at ``X_test``, with shape
            ``(N_test,)``. If either ``return_var`` or ``return_cov`` is
            ``True``, the variance or covariance of the predicted process will
            also be returned with shape ``(N_test,)`` or ``(N_test, N_test)``
            respectively.
        """
        posterior = self.posterior_distribution(X_test)
        loc = posterior.mean.to_dense()
        if return_var:
            return loc, posterior.variance.to_dense()
        if return_cov:
            return loc, posterior.covariance.to_dense()
        return loc

    def _check_inputs(self, X_test: Any) -> None:
        # The tree structure and trailing dimensions of the test inputs must
        # match the training inputs
        try:
            matches = jax.tree_util.tree_map(
                lambda a, b: jnp.ndim(a) == jnp.ndim(b)
                and jnp.shape(a)[1:] == jnp.shape(b)[1:],
                self.X,
                X_test,
            )
        except ValueError as e:
            raise DimensionMismatch(
                "`X_test` must have the same tree structure as the input `X`"
            ) from e
        if not jax.tree_util.tree_reduce(lambda a, b: a and b, matches, True):
            raise DimensionMismatch(
                "`X_test` must have the same tree structure as the input `X`, "
                "and all but the leading dimension must have matching sizes"
            )
