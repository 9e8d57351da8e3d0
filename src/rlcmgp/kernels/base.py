from __future__ import annotations

__all__ = [
    "Kernel",
    "Custom",
    "Sum",
    "Product",
    "Constant",
    "Nugget",
    "Chi2",
]

from abc import abstractmethod
from typing import Any, Callable

import equinox as eqx
import jax
import jax.numpy as jnp

from rlcmgp.helpers import JAXArray


class Kernel(eqx.Module):
    """The base class for all kernel implementations

    This subclass provides default implementations to add and multiply kernels.
    Subclasses should accept parameters in their ``__init__`` and then override
    :func:`Kernel.evaluate` with custom behavior.
    """

    @abstractmethod
    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        """Evaluate the kernel at a pair of input coordinates

        This should be overridden be subclasses to return the kernel-specific
        value. Two things to note:

        1. Users shouldn't generally call :func:`Kernel.evaluate`. Instead,
           always "call" the kernel instance directly; for example, you can
           evaluate the Matern-3/2 kernel using ``Matern32(1.5)(x1, x2)``, for
           arrays of input coordinates ``x1`` and ``x2``.
        2. When implementing a custom kernel, this method should treat ``X1``
           and ``X2`` as single datapoints. In other words, these inputs will
           typically either be scalars of have shape ``n_dim``, where ``n_dim``
           is the number of input dimensions, rather than ``n_data`` or
           ``(n_data, n_dim)``, and you should let the :class:`Kernel` ``vmap``
           magic handle all the broadcasting for you.
        """
        del X1, X2
        raise NotImplementedError

    def evaluate_diag(self, X: JAXArray) -> JAXArray:
        """Evaluate the kernel on its diagonal

        The default implementation simply calls :func:`Kernel.evaluate` with
        ``X`` as both arguments, but subclasses can use this to make diagonal
        calcuations more efficient.
        """
        return self.evaluate(X, X)

    def evaluate_with_nugget(
        self, X1: JAXArray, X2: JAXArray, nugget: JAXArray | float
    ) -> JAXArray:
        """Evaluate the kernel, adding ``nugget`` if the two points coincide"""
        return self.evaluate(X1, X2) + Nugget(nugget).evaluate(X1, X2)

    def with_nugget(self, nugget: JAXArray | float) -> Kernel:
        """This kernel plus a :class:`Nugget` with the value ``nugget``"""
        return Sum(self, Nugget(nugget))

    def __call__(self, X1: JAXArray, X2: JAXArray | None = None) -> JAXArray:
        if X2 is None:
            k = jax.vmap(self.evaluate_diag, in_axes=0)(X1)
            if k.ndim != 1:
                raise ValueError(
                    "Invalid kernel diagonal shape: "
                    f"expected ndim = 1, got ndim={k.ndim} "
                    "check the dimensions of parameters and custom kernels"
                )
            return k
        k = jax.vmap(jax.vmap(self.evaluate, in_axes=(None, 0)), in_axes=(0, None))(
            X1, X2
        )
        if k.ndim != 2:
            raise ValueError(
                "Invalid kernel shape: "
                f"expected ndim = 2, got ndim={k.ndim} "
                "check the dimensions of parameters and custom kernels"
            )
        return k

    def __add__(self, other: Kernel | JAXArray) -> Kernel:
        if isinstance(other, Kernel):
            return Sum(self, other)
        return Sum(self, Constant(other))

    def __radd__(self, other: Any) -> Kernel:
        # We'll hit this first branch when using the `sum` function
        if other == 0:
            return self
        if isinstance(other, Kernel):
            return Sum(other, self)
        return Sum(Constant(other), self)

    def __mul__(self, other: Kernel | JAXArray) -> Kernel:
        if isinstance(other, Kernel):
            return Product(self, other)
        return Product(self, Constant(other))

    def __rmul__(self, other: Any) -> Kernel:
        if isinstance(other, Kernel):
            return Product(other, self)
        return Product(Constant(other), self)


class Custom(Kernel):
    """A custom kernel class implemented as a callable

    Args:
        function: A callable with a signature and behavior that matches
            :func:`Kernel.evaluate`.
    """

    function: Callable[[Any, Any], Any] = eqx.field(static=True)

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return self.function(X1, X2)


class Sum(Kernel):
    """A helper to represent the sum of two kernels"""

    kernel1: Kernel
    kernel2: Kernel

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return self.kernel1.evaluate(X1, X2) + self.kernel2.evaluate(X1, X2)


class Product(Kernel):
    """A helper to represent the product of two kernels"""

    kernel1: Kernel
    kernel2: Kernel

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return self.kernel1.evaluate(X1, X2) * self.kernel2.evaluate(X1, X2)


class Constant(Kernel):
    r"""This kernel returns the constant

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = c

    where :math:`c` is a parameter.

    Args:
        c: The parameter :math:`c` in the above equation.
    """

    value: JAXArray | float

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        del X1, X2
        if jnp.ndim(self.value) != 0:
            raise ValueError("The value of a constant kernel must be a scalar")
        return jnp.asarray(self.value)


class Nugget(Kernel):
    r"""A white noise term that only acts on coincident points

    .. math::

        k(\mathbf{x}_i,\,\mathbf{x}_j) = \lambda\,\delta(\mathbf{x}_i =
            \mathbf{x}_j)

    Unlike a diagonal noise model, this compares coordinates rather than
    positions in the data set, so duplicated coordinates are correlated
    through the nugget too.

    Args:
        value: The parameter :math:`\lambda`.
    """

    value: JAXArray | float

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        if jnp.ndim(self.value) != 0:
            raise ValueError("The value of a nugget kernel must be a scalar")
        same = jnp.all(jnp.equal(X1, X2))
        return jnp.where(same, self.value, jnp.zeros_like(self.value))


class Chi2(Kernel):
    r"""The chi-squared kernel for non-negative (histogram) features

    .. math::

        k(\mathbf{x},\,\mathbf{y}) = \sum_i \frac{2\,x_i\,y_i}{x_i + y_i}

    where terms with :math:`x_i + y_i = 0` are taken to be zero. Multiply by
    a constant to set the overall scale.
    """

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        den = X1 + X2
        nonzero = den > 0
        safe = jnp.where(nonzero, den, jnp.ones_like(den))
        return jnp.sum(jnp.where(nonzero, 2 * X1 * X2 / safe, 0.0))
