"""
Type II maximum likelihood search for the hyperparameters of a
:class:`blockgp.GaussianProcessRegression` model. A configuration for which the
Gram matrix can't be factorized is rejected, i.e. treated as having a log
likelihood of ``-inf``, and the search moves on.
"""

from __future__ import annotations

__all__ = ["SearchResult", "grid_search", "gradient_ascent"]

import itertools
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, NamedTuple

import jax.numpy as jnp
import numpy as np

from blockgp.errors import NotPositiveDefinite
from blockgp.helpers import Path

if TYPE_CHECKING:
    from blockgp.gp import GaussianProcessRegression

logger = logging.getLogger(__name__)


class SearchResult(NamedTuple):
    """The outcome of a hyperparameter search"""

    model: GaussianProcessRegression
    """A model built with the best configuration found"""

    hyperparameters: dict[Path, Any]
    """The best configuration found"""

    log_likelihood: float
    """The log marginal likelihood of ``model``"""

    num_evaluations: int
    """The number of configurations that were evaluated"""


def _evaluate(
    model: GaussianProcessRegression, params: dict[Path, Any]
) -> tuple[GaussianProcessRegression | None, float]:
    try:
        candidate = model.with_hyperparameters(params)
        value = float(candidate.log_likelihood())
    except NotPositiveDefinite as e:
        logger.warning("Rejecting hyperparameters %s: %s", _format(params), e)
        return None, -np.inf
    return candidate, value


def _format(params: dict[Path, Any]) -> str:
    return ", ".join(f"{p}={float(jnp.asarray(v)):.4g}" for p, v in params.items())


def _grid(value: Any, grid_size: int, step: float) -> list[float]:
    value = float(jnp.asarray(value))
    offsets = step * (np.arange(grid_size) - (grid_size - 1) / 2)
    if value > 0:
        return list(value * np.exp(offsets))
    return list(value + offsets)


def grid_search(
    model: GaussianProcessRegression,
    *,
    grid_size: int = 3,
    step: float = 0.5,
    hyperparameters: Sequence[Path | str] | None = None,
) -> SearchResult:
    """Search a grid of configurations around the current hyperparameters

    Positive hyperparameters are searched on a log spaced grid, i.e. on the
    values ``h * exp(step * k)`` for ``grid_size`` evenly spaced offsets ``k``
    centered on zero; other values use the linear grid ``h + step * k``.

    Args:
        model: The model to tune; it is not modified.
        grid_size: The number of grid points per hyperparameter.
        step: The grid spacing (in log space for positive values).
        hyperparameters: The names to search over. Defaults to every non-blocked
            hyperparameter of ``model``.

    Returns:
        The best configuration found. If every configuration is rejected, the
        log likelihood in the result is ``-inf`` and the model is the input.
    """
    if grid_size <= 0:
        raise ValueError(f"grid_size must be positive, got {grid_size}")
    state = model.state
    names = (
        model.effective_hyperparameters
        if hyperparameters is None
        else [Path.parse(n) for n in hyperparameters]
    )
    free = set(model.effective_hyperparameters)
    fixed = {p: v for p, v in state.items() if p in free and p not in names}
    axes = [_grid(state[p], grid_size, step) for p in names]
    logger.info(
        "Grid search over %d hyperparameters (%d configurations)",
        len(names),
        grid_size ** len(names),
    )

    best_model, best_params, best_value = model, dict(state), -np.inf
    count = 0
    for values in itertools.product(*axes):
        params = dict(fixed)
        params.update(zip(names, values))
        candidate, value = _evaluate(model, params)
        count += 1
        if candidate is not None and value > best_value:
            best_model, best_params, best_value = candidate, params, value
    logger.info("Best log likelihood %.6g at %s", best_value, _format(best_params))
    return SearchResult(best_model, best_params, best_value, count)


def gradient_ascent(
    model: GaussianProcessRegression,
    *,
    learning_rate: float = 0.1,
    num_steps: int = 100,
    tol: float = 1e-8,
) -> SearchResult:
    """Maximize the log marginal likelihood with gradient ascent

    Positive hyperparameters are updated in log space, using the chain rule
    ``dL/dlog(h) = h dL/dh``, so they stay positive. A step that decreases the
    likelihood, or lands on a configuration that can't be factorized, is
    rejected and the learning rate is halved.

    Args:
        model: The starting point; it is not modified.
        learning_rate: The initial step size.
        num_steps: The maximum number of accepted and rejected steps.
        tol: Stop when an accepted step improves the log likelihood by less
            than this.
    """
    names = model.effective_hyperparameters
    current = model
    params = {p: float(jnp.asarray(v)) for p, v in current.state.items() if p in names}
    try:
        value = float(current.log_likelihood())
    except NotPositiveDefinite as e:
        logger.warning("Cannot start gradient ascent from %s: %s", _format(params), e)
        return SearchResult(model, params, -np.inf, 1)
    count = 1
    rate = learning_rate
    for step in range(num_steps):
        grads = current.grad_log_likelihood()
        proposal = {}
        for p in names:
            h, g = params[p], float(grads[p])
            if h > 0:
                proposal[p] = float(np.exp(np.log(h) + rate * h * g))
            else:
                proposal[p] = h + rate * g
        candidate, new_value = _evaluate(current, proposal)
        count += 1
        if candidate is None or not new_value >= value:
            rate *= 0.5
            logger.debug("Step %d rejected; learning rate is now %g", step, rate)
            continue
        improvement = new_value - value
        current, params, value = candidate, proposal, new_value
        logger.debug("Step %d: log likelihood %.8g", step, value)
        if improvement < tol:
            break
    logger.info("Gradient ascent finished with log likelihood %.6g", value)
    return SearchResult(current, params, value, count)
