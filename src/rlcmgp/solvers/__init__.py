"""
In ``rlcmgp``, "solvers" provide a swappable low-level interface for
implementing the linear algebra required to execute Gaussian Process models.
The two built in solvers are:

1. :class:`DirectSolver`: A solver that uses a naive approach to solving the
   required linear systems. This is the default solver, and it can be used
   with any kernel implemented by ``rlcmgp``. Up to numerical precision, this
   is an *exact* solver, but its cost grows as the cube of the data size.

2. :class:`RLCMSolver`: A scalable solver that compresses the covariance
   matrix into a recursively low rank structure on a cluster tree of the
   input coordinates, making multiplication, solves and log determinants
   roughly linear in the size of the dataset for a fixed rank. This is an
   *approximate* solver, and it becomes exact once the rank reaches the
   number of data points.

``rlcmgp`` uses the :class:`RLCMSolver` whenever a ``rank`` is passed to
:class:`rlcmgp.GaussianProcess`, but you can select a solver explicitly using
the ``solver`` argument:

.. code-block:: python

    gp = rlcmgp.GaussianProcess(..., solver=rlcmgp.solvers.DirectSolver)
"""

__all__ = ["Solver", "DirectSolver", "RLCMSolver"]

from rlcmgp.solvers.direct import DirectSolver
from rlcmgp.solvers.rlcm import RLCMSolver
from rlcmgp.solvers.solver import Solver
