"""
Covariance models in ``rlcmgp`` are built from "kernels", which are typically
constructed as sums and products of objects defined in this subpackage, or by
subclassing :class:`Kernel`. The hierarchical solvers only ever evaluate a
kernel on pairs of points, so any kernel defined here (or by a user) can be
compressed. The spatial kernels are described in the
:ref:`stationary-kernels` section, while this section introduces the
fundamental building blocks, including the :class:`Nugget` term that the
compressed solvers use for their diagonal correction.
"""

__all__ = [
    "Distance",
    "L1Distance",
    "L2Distance",
    "Kernel",
    "Custom",
    "Sum",
    "Product",
    "Constant",
    "Nugget",
    "Chi2",
    "Stationary",
    "Exp",
    "ExpSquared",
    "Matern32",
    "Matern52",
    "Matern",
]

from rlcmgp.kernels.base import (
    Chi2,
    Constant,
    Custom,
    Kernel,
    Nugget,
    Product,
    Sum,
)
from rlcmgp.kernels.stationary import (
    Distance,
    Exp,
    ExpSquared,
    L1Distance,
    L2Distance,
    Matern,
    Matern32,
    Matern52,
    Stationary,
)
