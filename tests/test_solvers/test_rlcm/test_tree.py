# mypy: ignore-errors

import numpy as np
import pytest
from numpy import random as np_random

from rlcmgp.points import regular_grid
from rlcmgp.solvers.rlcm.tree import build_tree, default_levels


@pytest.fixture
def random():
    return np_random.default_rng(9302)


@pytest.fixture(params=["bbox", "median"])
def strategy(request):
    return request.param


def check_tree(tree, X):
    num_points = len(X)
    assert tree.num_points == num_points
    assert tree.start[0] == 0 and tree.stop[0] == num_points
    assert tree.parent[0] == -1

    for node in range(tree.num_nodes):
        assert tree.size(node) > 0
        assert tree.level[node] <= tree.levels
        if tree.is_leaf(node):
            assert tree.right[node] == -1
            continue

        left, right = tree.left[node], tree.right[node]
        assert left > node and right > node
        assert tree.parent[left] == node and tree.parent[right] == node
        assert tree.sibling(left) == right and tree.sibling(right) == left
        assert tree.start[left] == tree.start[node]
        assert tree.stop[left] == tree.start[right]
        assert tree.stop[right] == tree.stop[node]
        assert tree.size(node) > tree.rank

        # Every point on the left is below the threshold
        ordered = X[tree.permutation.order]
        axis, threshold = tree.axis[node], tree.threshold[node]
        assert np.all(ordered[tree.start[left] : tree.stop[left], axis] < threshold)
        assert np.all(ordered[tree.start[right] : tree.stop[right], axis] >= threshold)

    # The leaves tile the tree ordering
    leaves = tree.leaves
    assert tree.start[leaves[0]] == 0
    for a, b in zip(leaves[:-1], leaves[1:]):
        assert tree.stop[a] == tree.start[b]
    assert tree.stop[leaves[-1]] == num_points

    np.testing.assert_array_equal(
        np.sort(tree.permutation.order), np.arange(num_points)
    )


def test_default_levels():
    assert default_levels(100, 10) == 3
    assert default_levels(128, 32) == 2
    assert default_levels(5, 10) == 0
    assert default_levels(10, 10) == 0


def test_random_points(random, strategy):
    X = random.uniform(-2, 3, (300, 3))
    tree = build_tree(X, 16, strategy=strategy)
    check_tree(tree, X)
    assert tree.levels == default_levels(300, 16)
    assert tree.depth <= tree.levels


def test_grid_points(strategy):
    X = np.asarray(regular_grid((10, 10), (0.0, 0.0), (1.0, 1.0)))
    tree = build_tree(X, 8, strategy=strategy)
    check_tree(tree, X)


def test_explicit_levels(random):
    X = random.normal(size=(200, 2))
    tree = build_tree(X, 4, levels=2, strategy="median")
    check_tree(tree, X)
    assert tree.depth == 2
    assert len(tree.leaves) == 4


def test_root_leaf(random):
    X = random.normal(size=(20, 2))
    tree = build_tree(X, 32)
    assert tree.num_nodes == 1
    assert tree.leaves == (0,)
    assert tree.depth == 0
    np.testing.assert_array_equal(tree.permutation.order, np.arange(20))


def test_duplicate_points():
    X = np.zeros((10, 2))
    tree = build_tree(X, 2, levels=3)
    assert tree.num_nodes == 1


def test_median_balance(random):
    X = random.exponential(size=(256, 1))
    tree = build_tree(X, 16, levels=1, strategy="median")
    assert tree.size(tree.left[0]) == 128
    assert tree.size(tree.right[0]) == 128


def test_split_axis(random):
    X = np.stack([random.uniform(0, 1, 64), random.uniform(0, 10, 64)], axis=-1)
    tree = build_tree(X, 8, levels=1)
    assert tree.axis[0] == 1


def test_deterministic(random):
    X = random.normal(size=(150, 2))
    tree1 = build_tree(X, 10)
    tree2 = build_tree(X, 10)
    np.testing.assert_array_equal(tree1.permutation.order, tree2.permutation.order)
    assert tree1.threshold == tree2.threshold


def test_locate(random, strategy):
    X = random.uniform(-1, 1, (200, 2))
    tree = build_tree(X, 10, strategy=strategy)

    # Training points land in the leaf that holds them
    located = tree.locate(X)
    position = tree.permutation.inverse
    for i, leaf in enumerate(located):
        assert tree.is_leaf(leaf)
        assert tree.start[leaf] <= position[i] < tree.stop[leaf]

    X_test = random.uniform(-2, 2, (50, 2))
    assert all(tree.is_leaf(leaf) for leaf in tree.locate(X_test))

    with pytest.raises(ValueError):
        tree.locate(random.normal(size=(5, 3)))


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(rank=0),
        dict(rank=2.5),
        dict(rank=4, levels=-1),
        dict(rank=4, strategy="kd"),
    ],
)
def test_errors(random, kwargs):
    X = random.normal(size=(20, 2))
    with pytest.raises(ValueError):
        build_tree(X, **kwargs)
