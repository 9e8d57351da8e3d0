"""
Spatial covariance functions in ``rlcmgp`` are mostly subclasses of the
:class:`Stationary` kernel, which depend on the input coordinates only through
a distance. Each kernel in this section has (at least) the two parameters:

- ``scale``: A scalar length scale for the kernel in the radial distance
  specified by ``distance``, and
- ``distance``: A :class:`Distance` metric specifying how to compute the
  scalar distance between two input coordinates. The Euclidean
  :class:`L2Distance` is the default.

None of these kernels include an amplitude; multiply by a constant (e.g.
``10**alpha * Matern(scale=0.3, nu=1.5)``) to set the variance.
"""

from __future__ import annotations

__all__ = [
    "Distance",
    "L1Distance",
    "L2Distance",
    "Stationary",
    "Exp",
    "ExpSquared",
    "Matern32",
    "Matern52",
    "Matern",
]

from abc import abstractmethod

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np
from jax.scipy.special import gammaln
from scipy import special

from rlcmgp.helpers import JAXArray
from rlcmgp.kernels.base import Kernel


class Distance(eqx.Module):
    """An abstract base class defining a distance metric interface"""

    @abstractmethod
    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        """Compute the distance between two coordinates under this metric"""
        raise NotImplementedError()

    def squared_distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        """Compute the squared distance between two coordinates"""
        return jnp.square(self.distance(X1, X2))


class L1Distance(Distance):
    """The L1 or Manhattan distance between two coordinates"""

    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.sum(jnp.abs(X1 - X2))


class L2Distance(Distance):
    """The L2 or Euclidean distance between two coordinates

    The square root is guarded at zero separation so that gradients with
    respect to the coordinates stay finite.
    """

    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r1 = L1Distance().distance(X1, X2)
        r2 = self.squared_distance(X1, X2)
        zeros = jnp.equal(r2, 0)
        r2 = jnp.where(zeros, jnp.ones_like(r2), r2)
        return jnp.where(zeros, r1, jnp.sqrt(r2))

    def squared_distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.sum(jnp.square(X1 - X2))


class Stationary(Kernel):
    """A stationary kernel is defined with respect to a distance metric

    Note that a stationary kernel is *always* isotropic.

    Args:
        scale: The length scale, in the same units as ``distance`` for the
            kernel. This must be a scalar.
        distance: An object that implements ``distance`` and
            ``squared_distance`` methods. Typically a subclass of
            :class:`Distance`. Defaults to :class:`L2Distance`, under which
            the Matern family is positive definite in any dimension.
    """

    scale: JAXArray | float = eqx.field(default_factory=lambda: jnp.ones(()))
    distance: Distance = eqx.field(default_factory=L2Distance)

    def __check_init__(self) -> None:
        if jnp.ndim(self.scale):
            raise ValueError(
                "Only scalar scales are permitted for stationary kernels"
            )


class Exp(Stationary):
    r"""The exponential kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \exp(-r)

    where, by default,

    .. math::

        r = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_2

    Args:
        scale: The parameter :math:`\ell`.
    """

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.exp(-self.distance.distance(X1, X2) / self.scale)


class ExpSquared(Stationary):
    r"""The exponential squared or radial basis function kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \exp(-r^2 / 2)

    where, by default,

    .. math::

        r^2 = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_2^2

    Args:
        scale: The parameter :math:`\ell`.
    """

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r2 = self.distance.squared_distance(X1, X2) / jnp.square(self.scale)
        return jnp.exp(-0.5 * r2)


class Matern32(Stationary):
    r"""The Matern-3/2 kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = (1 + \sqrt{3}\,r)\,\exp(-\sqrt{3}\,r)

    where, by default,

    .. math::

        r = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_2

    Args:
        scale: The parameter :math:`\ell`.
    """

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r = self.distance.distance(X1, X2) / self.scale
        arg = np.sqrt(3) * r
        return (1 + arg) * jnp.exp(-arg)


class Matern52(Stationary):
    r"""The Matern-5/2 kernel

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = (1 + \sqrt{5}\,r +
            5\,r^2/3)\,\exp(-\sqrt{5}\,r)

    where, by default,

    .. math::

        r = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_2

    Args:
        scale: The parameter :math:`\ell`.
    """

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r = self.distance.distance(X1, X2) / self.scale
        arg = np.sqrt(5) * r
        return (1 + arg + jnp.square(arg) / 3) * jnp.exp(-arg)


class Matern(Stationary):
    r"""The isotropic Matern kernel with arbitrary smoothness

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \frac{2^{1-\nu}}{\Gamma(\nu)}
            \left(\sqrt{2\nu}\,r\right)^\nu K_\nu\left(\sqrt{2\nu}\,r\right)

    where :math:`K_\nu` is the modified Bessel function of the second kind
    and, by default,

    .. math::

        r = ||(\mathbf{x}_i - \mathbf{x}_j) / \ell||_2

    The Bessel function is evaluated by ``scipy`` on the host, so this kernel
    can be ``vmap``-ed and ``jit``-ed but not differentiated.

    Args:
        scale: The parameter :math:`\ell`.
        nu: The smoothness :math:`\nu > 0`.
    """

    nu: JAXArray | float = eqx.field(default_factory=lambda: 0.5 * jnp.ones(()))

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r = self.distance.distance(X1, X2) / self.scale
        arg = jnp.sqrt(2 * self.nu) * r
        positive = arg > 0
        safe = jnp.where(positive, arg, jnp.ones_like(arg))
        log_norm = (1 - self.nu) * np.log(2.0) - gammaln(self.nu)
        value = jnp.exp(log_norm) * safe**self.nu * _bessel_kv(self.nu, safe)
        return jnp.where(positive, value, jnp.ones_like(value))


def _bessel_kv(nu: JAXArray | float, x: JAXArray) -> JAXArray:
    x = jnp.asarray(x)
    nu = jnp.asarray(nu, dtype=x.dtype)

    def impl(nu_: np.ndarray, x_: np.ndarray) -> np.ndarray:
        return np.asarray(special.kv(nu_, x_), dtype=x_.dtype)

    return jax.pure_callback(
        impl,
        jax.ShapeDtypeStruct(x.shape, x.dtype),
        nu,
        x,
        vmap_method="broadcast_all",
    )
