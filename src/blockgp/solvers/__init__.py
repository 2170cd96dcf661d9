"""
In ``blockgp``, "solvers" provide a swappable low-level interface for
implementing the linear algebra required to execute Gaussian Process models.
The two built in solvers are:

1. :class:`BlockedSolver`: The default solver. The Gram matrix is assembled
   and factorized block by block with the partitioned linear algebra in
   :mod:`blockgp.partitioned`, so the memory footprint of each dense operation
   is bounded by the block size.

2. :class:`DirectSolver`: A solver that uses a naive approach to solving the
   required linear systems with one dense Cholesky factorization. Up to
   numerical precision, the two solvers give the same results, and this one is
   mostly useful as a reference.

You can use a specific solver using the ``solver`` argument to
:class:`blockgp.GaussianProcessRegression` as follows:

.. code-block:: python

    model = blockgp.GaussianProcessRegression(..., solver=blockgp.solvers.DirectSolver)
"""

__all__ = ["Solver", "BlockedSolver", "DirectSolver"]

from blockgp.solvers.blocked import BlockedSolver
from blockgp.solvers.direct import DirectSolver
from blockgp.solvers.solver import Solver
