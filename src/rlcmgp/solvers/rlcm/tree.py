"""
The cluster tree recursively bisects the training points with axis-aligned
cuts. Every node owns a contiguous range of the tree ordering, so a
:class:`rlcmgp.points.Permutation` is all that is needed to move vectors
between the caller's ordering and the block structure of the hierarchical
matrix.
"""

from __future__ import annotations

__all__ = ["ClusterTree", "build_tree", "default_levels"]

import logging
import math
from typing import Any

import equinox as eqx
import numpy as np

from rlcmgp.points import Permutation, as_points

logger = logging.getLogger(__name__)

STRATEGIES = ("bbox", "median")


class ClusterTree(eqx.Module):
    """A binary space partitioning of a point set

    Nodes are addressed by integer ids in preorder, so the root is ``0`` and
    every parent has a smaller id than its children. Leaves have ``-1`` for
    both children and the root has ``-1`` for its parent. All of the topology
    is stored as static tuples so that operations which walk the tree can be
    traced by ``jax``.

    You generally won't build this directly; use :func:`build_tree`.
    """

    permutation: Permutation
    rank: int = eqx.field(static=True)
    levels: int = eqx.field(static=True)
    strategy: str = eqx.field(static=True)
    start: tuple[int, ...] = eqx.field(static=True)
    stop: tuple[int, ...] = eqx.field(static=True)
    left: tuple[int, ...] = eqx.field(static=True)
    right: tuple[int, ...] = eqx.field(static=True)
    parent: tuple[int, ...] = eqx.field(static=True)
    level: tuple[int, ...] = eqx.field(static=True)
    axis: tuple[int, ...] = eqx.field(static=True)
    threshold: tuple[float, ...] = eqx.field(static=True)
    lower: tuple[tuple[float, ...], ...] = eqx.field(static=True)
    upper: tuple[tuple[float, ...], ...] = eqx.field(static=True)

    @property
    def num_nodes(self) -> int:
        return len(self.start)

    @property
    def num_points(self) -> int:
        return self.stop[0]

    @property
    def dimension(self) -> int:
        return len(self.lower[0])

    @property
    def depth(self) -> int:
        """The largest level of any node; ``0`` when the root is a leaf"""
        return max(self.level)

    @property
    def leaves(self) -> tuple[int, ...]:
        """The leaf ids in preorder, which is also the tree ordering"""
        return tuple(i for i in range(self.num_nodes) if self.left[i] < 0)

    def is_leaf(self, node: int) -> bool:
        return self.left[node] < 0

    def size(self, node: int) -> int:
        return self.stop[node] - self.start[node]

    def sibling(self, node: int) -> int:
        parent = self.parent[node]
        if parent < 0:
            raise ValueError("The root node has no sibling")
        if self.left[parent] == node:
            return self.right[parent]
        return self.left[parent]

    def locate(self, X_test: Any) -> np.ndarray:
        """The id of the leaf that each test point falls into

        Points descend from the root using the stored split thresholds, with
        the same rule used to partition the training points: a coordinate
        below the threshold goes left.
        """
        X_test = np.asarray(as_points(X_test))
        if X_test.shape[1] != self.dimension:
            raise ValueError(
                f"Test points have dimension {X_test.shape[1]} but the tree was "
                f"built in dimension {self.dimension}"
            )
        result = np.empty(X_test.shape[0], dtype=int)
        stack = [(0, np.arange(X_test.shape[0]))]
        while stack:
            node, inds = stack.pop()
            if self.is_leaf(node):
                result[inds] = node
                continue
            mask = X_test[inds, self.axis[node]] < self.threshold[node]
            stack.append((self.left[node], inds[mask]))
            stack.append((self.right[node], inds[~mask]))
        return result


def default_levels(n: int, rank: int) -> int:
    """The number of levels that brings leaves down to about ``rank`` points"""
    if n <= rank:
        return 0
    return max(int(math.floor(math.log2(n / rank))), 0)


def build_tree(
    X: Any,
    rank: int,
    levels: int | None = None,
    *,
    strategy: str = "bbox",
) -> ClusterTree:
    """Partition a point set into a balanced-ish binary cluster tree

    A node is split along the longest side of its tight bounding box while its
    level is below ``levels``, it holds more than ``rank`` points, and the box
    has a positive extent. The construction is deterministic for a given
    input order.

    Args:
        X: The ``(N, d)`` coordinates.
        rank: The compression rank. Nodes with at most this many points
            become leaves.
        levels: The maximum depth of a leaf. Defaults to
            :func:`default_levels`.
        strategy: Either ``"bbox"`` to cut at the midpoint of the bounding box
            or ``"median"`` to cut between the two distinct coordinates nearest
            the median.

    Returns:
        The :class:`ClusterTree`.
    """
    X = np.asarray(as_points(X))
    num_points = X.shape[0]
    if num_points < 1:
        raise ValueError("Cannot build a cluster tree for an empty point set")
    if int(rank) != rank or rank < 1:
        raise ValueError(f"The rank must be a positive integer; got {rank}")
    rank = int(rank)
    if levels is None:
        levels = default_levels(num_points, rank)
    if int(levels) != levels or levels < 0:
        raise ValueError(f"The number of levels must be non-negative; got {levels}")
    levels = int(levels)
    if strategy not in STRATEGIES:
        raise ValueError(
            f"Unknown split strategy '{strategy}'; expected one of {STRATEGIES}"
        )

    nodes: dict[str, list[Any]] = {
        name: []
        for name in (
            "start",
            "stop",
            "left",
            "right",
            "parent",
            "level",
            "axis",
            "threshold",
            "lower",
            "upper",
        )
    }
    order: list[np.ndarray] = []

    def visit(inds: np.ndarray, level: int, parent: int) -> int:
        node = len(nodes["start"])
        coords = X[inds]
        lower = coords.min(axis=0)
        upper = coords.max(axis=0)
        start = sum(len(o) for o in order)

        for name, value in (
            ("start", start),
            ("stop", start + len(inds)),
            ("left", -1),
            ("right", -1),
            ("parent", parent),
            ("level", level),
            ("axis", -1),
            ("threshold", 0.0),
            ("lower", tuple(float(v) for v in lower)),
            ("upper", tuple(float(v) for v in upper)),
        ):
            nodes[name].append(value)

        extent = upper - lower
        if level >= levels or len(inds) <= rank or len(inds) < 2 or extent.max() <= 0:
            order.append(inds)
            return node

        axis = int(np.argmax(extent))
        threshold = _split_threshold(coords[:, axis], strategy)
        mask = coords[:, axis] < threshold
        nodes["axis"][node] = axis
        nodes["threshold"][node] = threshold
        nodes["left"][node] = visit(inds[mask], level + 1, node)
        nodes["right"][node] = visit(inds[~mask], level + 1, node)
        return node

    visit(np.arange(num_points), 0, -1)

    tree = ClusterTree(
        permutation=Permutation(np.concatenate(order)),
        rank=rank,
        levels=levels,
        strategy=strategy,
        **{name: tuple(values) for name, values in nodes.items()},
    )
    logger.debug(
        "Built cluster tree for %d points: %d nodes, %d leaves, depth %d",
        num_points,
        tree.num_nodes,
        len(tree.leaves),
        tree.depth,
    )
    return tree


def _split_threshold(coords: np.ndarray, strategy: str) -> float:
    if strategy == "bbox":
        threshold = 0.5 * (coords.min() + coords.max())
        below = np.count_nonzero(coords < threshold)
        if 0 < below < len(coords):
            return float(threshold)
    return _median_threshold(coords)


def _median_threshold(coords: np.ndarray) -> float:
    values = np.sort(coords)
    boundaries = np.nonzero(np.diff(values) > 0)[0] + 1
    split = boundaries[np.argmin(np.abs(boundaries - len(values) // 2))]
    lo, hi = values[split - 1], values[split]
    threshold = 0.5 * (lo + hi)
    if threshold <= lo:
        threshold = hi
    return float(threshold)
