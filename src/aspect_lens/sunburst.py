"""
Sunburst tree utilities: traversal, sizing and structural validation.
"""

import logging
from collections.abc import Callable

from aspect_lens.errors import invalid_tree
from aspect_lens.schemas import PlantedTree, SunburstNode

logger = logging.getLogger(__name__)

RING_COUNT = 3

# Return False to stop descending below the visited node
Visitor = Callable[[SunburstNode, int], bool | None]


def visit(tree: SunburstNode, visitor: Visitor, depth: int = 0) -> None:
    """
    Depth-first, pre-order traversal.

    The visitor receives each node and its depth (the root is depth 0). If it
    returns False the node's children are skipped.
    """
    if visitor(tree, depth) is False:
        return
    for child in tree.children or []:
        visit(child, visitor, depth + 1)


def leaf_count(tree: SunburstNode) -> int:
    count = 0

    def count_leaf(node: SunburstNode, depth: int) -> None:
        nonlocal count
        if node.is_leaf:
            count += 1

    visit(tree, count_leaf)
    return count


def total_size(tree: SunburstNode) -> int:
    """Sum of leaf sizes."""
    total = 0

    def add_size(node: SunburstNode, depth: int) -> None:
        nonlocal total
        if node.is_leaf:
            total += node.size or 0

    visit(tree, add_size)
    return total


def _payload(node: SunburstNode) -> dict:
    # Keep the error context small: children are summarized by count
    data = node.model_dump(mode="json", exclude_none=True, exclude={"children"})
    if node.children is not None:
        data["children"] = len(node.children)
    return data


def _validate_node(node: SunburstNode, path: list[str], ring: int) -> None:
    if node.is_leaf:
        if node.children is not None:
            raise invalid_tree("leaf must not have children", path, _payload(node))
        if node.size <= 0:
            raise invalid_tree(f"leaf size must be positive, got {node.size}", path, _payload(node))
        if ring != RING_COUNT:
            raise invalid_tree(f"leaf at depth {ring}, expected {RING_COUNT}", path, _payload(node))
        return

    if node.children is None:
        raise invalid_tree("non-leaf node must have a children list", path, _payload(node))
    if ring >= RING_COUNT:
        raise invalid_tree(f"non-leaf node at depth {ring}, expected a leaf", path, _payload(node))
    if ring > 1 and not node.children:
        raise invalid_tree("branch has no children", path, _payload(node))
    for child in node.children:
        _validate_node(child, path + [child.name], ring + 1)


def validate_planted_tree(planted: PlantedTree) -> None:
    """
    Check that a planted tree has the fixed three-ring shape.

    Every non-leaf node has a children list, every leaf has no children and a
    positive size, every leaf sits at depth 3 and there are exactly 3 circles.
    The root may have an empty children list.

    Raises:
        TreeValidationError: Naming the first offending node
    """
    if len(planted.circles) != RING_COUNT:
        raise invalid_tree(
            f"expected {RING_COUNT} circles, got {len(planted.circles)}",
            [],
            {"circles": [c.meaning for c in planted.circles]},
        )
    # The root is ring 1 and repository leaves are ring 3
    _validate_node(planted.tree, [planted.tree.name], 1)
    logger.debug(f"Validated tree {planted.tree.name} with {leaf_count(planted.tree)} leaves")
