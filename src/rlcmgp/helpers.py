from __future__ import annotations

__all__ = ["JAXArray", "NumericalStabilityWarning", "handle_matvec_shapes"]

from functools import wraps
from typing import Any, Callable

import jax
import jax.numpy as jnp

JAXArray = jax.Array


class NumericalStabilityWarning(RuntimeWarning):
    """Emitted when a factorization had to be regularized to proceed

    These conditions are not fatal: the computation continues with the
    regularized value, but the result may be less accurate than requested.
    """


def handle_matvec_shapes(
    func: Callable[[Any, JAXArray], JAXArray]
) -> Callable[[Any, JAXArray], JAXArray]:
    @wraps(func)
    def wrapped(self: Any, x: JAXArray) -> JAXArray:
        output_shape = jnp.shape(x)
        result = func(self, jnp.reshape(x, (output_shape[0], -1)))
        return jnp.reshape(result, output_shape)

    return wrapped
