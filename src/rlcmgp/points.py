"""
Point sets in ``rlcmgp`` are plain ``(N, d)`` arrays of coordinates. This
module collects the small amount of bookkeeping that the hierarchical solvers
need on top of that: coercing inputs into that shape, generating regular
grids, extracting subsets, and the :class:`Permutation` that maps between the
caller's ordering of the points and the ordering of a cluster tree.
"""

from __future__ import annotations

__all__ = ["as_points", "regular_grid", "subset", "Permutation"]

from collections.abc import Sequence
from typing import Any

import equinox as eqx
import jax.numpy as jnp
import numpy as np

from rlcmgp.helpers import JAXArray


def as_points(X: Any) -> JAXArray:
    """Coerce coordinates into an ``(N, d)`` array

    One dimensional input is interpreted as ``N`` scalar coordinates.
    """
    X = jnp.asarray(X)
    if X.ndim == 1:
        return X[:, None]
    if X.ndim != 2:
        raise ValueError(
            f"Points must be a 1-D or 2-D array; got ndim={X.ndim} "
            f"with shape {X.shape}"
        )
    return X


def regular_grid(
    shape: Sequence[int], lower: Sequence[float], upper: Sequence[float]
) -> JAXArray:
    """The points of a regular grid in ``len(shape)`` dimensions

    Args:
        shape: The number of grid points along each axis.
        lower: The lower extent of the grid along each axis.
        upper: The upper extent of the grid along each axis.

    Returns:
        An array with shape ``(prod(shape), len(shape))``, in row-major order
        so the last axis varies fastest. An axis with a single point places it
        at ``lower``.
    """
    if not (len(shape) == len(lower) == len(upper)):
        raise ValueError(
            "The grid shape and extents must have the same length; got "
            f"{len(shape)}, {len(lower)}, and {len(upper)}"
        )
    if any(int(n) < 1 for n in shape):
        raise ValueError(f"Every grid axis needs at least one point; got {shape}")
    axes = [
        jnp.linspace(lo, hi, int(n)) if int(n) > 1 else jnp.full(1, lo)
        for n, lo, hi in zip(shape, lower, upper)
    ]
    mesh = jnp.meshgrid(*axes, indexing="ij")
    return jnp.stack([m.ravel() for m in mesh], axis=-1)


def subset(X: JAXArray, indices: Any) -> JAXArray:
    """The points at ``indices``, in the order that the indices are given"""
    return as_points(X)[np.asarray(indices, dtype=int)]


class Permutation(eqx.Module):
    """A reordering of ``N`` items

    Args:
        order: An integer array where ``order[t]`` is the original index of
            the item that lands at position ``t`` after permuting.
    """

    order: np.ndarray
    inverse: np.ndarray

    def __init__(self, order: Any):
        order = np.asarray(order, dtype=int)
        if order.ndim != 1:
            raise ValueError("A permutation must be a 1-D integer array")
        if not np.array_equal(np.sort(order), np.arange(order.shape[0])):
            raise ValueError("The permutation order must be a bijection of [0, N)")
        inverse = np.empty_like(order)
        inverse[order] = np.arange(order.shape[0])
        self.order = order
        self.inverse = inverse

    @classmethod
    def identity(cls, size: int) -> Permutation:
        return cls(np.arange(size))

    def __len__(self) -> int:
        return self.order.shape[0]

    def apply(self, y: JAXArray) -> JAXArray:
        """Map an array in the original order into the permuted order

        This acts on the leading axis of ``y``.
        """
        return jnp.asarray(y)[self.order]

    def invert(self, y: JAXArray) -> JAXArray:
        """Map an array in the permuted order back into the original order"""
        return jnp.asarray(y)[self.inverse]
