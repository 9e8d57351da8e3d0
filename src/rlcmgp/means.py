"""
In ``rlcmgp``, the Gaussian process mean function can be defined using any
callable object, or a constant. As with kernels, the callable should accept a
single input coordinate and return the scalar mean at that coordinate; the
process handles the ``vmap``-ing.
"""

from __future__ import annotations

__all__ = ["MeanBase", "Mean"]

from abc import abstractmethod
from typing import Callable

import equinox as eqx

from rlcmgp.helpers import JAXArray


class MeanBase(eqx.Module):
    @abstractmethod
    def __call__(self, X: JAXArray) -> JAXArray:
        raise NotImplementedError


class Mean(MeanBase):
    """A wrapper for the GP mean which supports a constant value or a callable

    Args:
        value: Either a *scalar* constant, or a callable with the correct
            signature.
    """

    value: JAXArray | None = None
    func: Callable[[JAXArray], JAXArray] | None = eqx.field(default=None, static=True)

    def __init__(self, value: JAXArray | Callable[[JAXArray], JAXArray]):
        if callable(value):
            self.func = value
        else:
            self.value = value

    def __call__(self, X: JAXArray) -> JAXArray:
        if self.value is None:
            assert self.func is not None
            return self.func(X)
        return self.value
