"""
``rlcmgp`` is a library for Gaussian process regression on large spatial data
sets in Python, built on top of `jax <https://github.com/google/jax>`_. It
follows the usual pattern of constructing "kernel" functions using the
building blocks provided in the ``kernels`` subpackage, and then passing that
to a :class:`GaussianProcess` object to do all the computations. Passing a
``rank`` switches the linear algebra to a recursively low rank compressed
matrix (see :ref:`api-solvers-rlcm`), which makes likelihoods and kriging
tractable for hundreds of thousands of points. The :mod:`rlcmgp.estimation`
module builds parameter estimation and uncertainty quantification on top of
that.
"""

__version__ = "0.1.0"
__author__ = "rlcmgp developers"
__email__ = "rlcmgp@users.noreply.github.com"
__uri__ = "https://github.com/rlcmgp/rlcmgp"
__license__ = "MIT"
__description__ = "Gaussian processes with recursively low rank compressed matrices"

from rlcmgp import (
    estimation as estimation,
    fields as fields,
    kernels as kernels,
    noise as noise,
    points as points,
    solvers as solvers,
)
from rlcmgp.gp import GaussianProcess as GaussianProcess
from rlcmgp.kriging import Kriging as Kriging, Prediction as Prediction
