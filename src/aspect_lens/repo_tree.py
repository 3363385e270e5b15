"""
Fingerprint value to repository sunburst trees.

Ring 1 is the fingerprint kind (or a single fingerprint name), ring 2 the
distinct values seen for it and ring 3 the repositories holding each value.
"""

import logging

from pydantic import BaseModel, Field

from aspect_lens.schemas import WILDCARD, Circle, PlantedTree, SunburstNode, ValueRepoGroup
from aspect_lens.store import FingerprintStore
from aspect_lens.sunburst import validate_planted_tree

logger = logging.getLogger(__name__)


class TreeQuery(BaseModel):
    """Parameters of a fingerprint-to-repos tree."""

    workspace_id: str = Field(default=WILDCARD, description="Workspace scope, * for all")
    aspect_name: str = Field(..., min_length=1, description="Fingerprint type to group by")
    root_name: str = Field(..., min_length=1, description="Name of the root node")
    by_name: bool = Field(default=False, description="Restrict to the fingerprint named root_name")
    include_without: bool = Field(default=False, description="Add a branch of repos without the fingerprint")


def circles_for(by_name: bool) -> list[Circle]:
    return [
        Circle(meaning="fingerprint name" if by_name else "aspect"),
        Circle(meaning="fingerprint value"),
        Circle(meaning="repo"),
    ]


def _value_node(group: ValueRepoGroup) -> SunburstNode:
    return SunburstNode(
        name=group.name,
        type=group.type,
        sha=group.sha,
        children=[
            SunburstNode(name=repo.name, owner=repo.owner, url=repo.url or None, size=repo.size)
            for repo in group.repos
        ],
    )


async def fingerprints_to_repos_tree(query: TreeQuery, store: FingerprintStore) -> PlantedTree:
    """
    Build a validated three-ring tree of fingerprint values and repositories.

    Store failures propagate unchanged.

    Raises:
        TreeValidationError: If the assembled tree is malformed
    """
    groups = await store.query_value_repo_groups(
        workspace_id=query.workspace_id,
        kind=query.aspect_name,
        name=query.root_name,
        by_name=query.by_name,
        include_without=query.include_without,
        without_name=f"No {query.root_name}",
    )
    children = [_value_node(group) for group in groups if group.repos]
    planted = PlantedTree(
        tree=SunburstNode(name=query.root_name, children=children),
        circles=circles_for(query.by_name),
    )
    validate_planted_tree(planted)
    logger.debug(f"Built tree {query.root_name} with {len(children)} value branches")
    return planted
