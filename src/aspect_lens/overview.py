"""
Workspace overview: which displayable aspects were found and which were not.
"""

import logging

from aspect_lens.registry import AspectRegistry
from aspect_lens.schemas import WILDCARD, AspectUsage, RepoFilter, WorkspaceOverview
from aspect_lens.store import FingerprintStore

logger = logging.getLogger(__name__)


async def workspace_overview(
    store: FingerprintStore,
    registry: AspectRegistry,
    workspace_id: str = WILDCARD,
) -> WorkspaceOverview:
    """
    Summarize a workspace against the registered aspects.

    Only aspects with a display name take part. An aspect is important when
    the workspace holds at least one fingerprint of its type and unfound
    otherwise.
    """
    repos = await store.load_repos(RepoFilter(workspace_id=workspace_id))
    usages = await store.fingerprint_usage(WILDCARD, workspace_id)

    important: list[AspectUsage] = []
    unfound = []
    for aspect in registry.aspects:
        if not aspect.display_name:
            continue
        aspect_usages = [u for u in usages if u.type == aspect.name]
        if aspect_usages:
            important.append(
                AspectUsage(name=aspect.name, display_name=aspect.display_name, fingerprints=aspect_usages)
            )
        else:
            unfound.append(aspect.metadata())

    logger.debug(
        f"Workspace {workspace_id}: {len(repos)} repos, "
        f"{len(important)} aspects found, {len(unfound)} not found"
    )
    return WorkspaceOverview(
        workspace_id=workspace_id,
        projects_analyzed=len(repos),
        important_aspects=important,
        unfound_aspects=unfound,
        repos=[repo.id for repo in repos],
    )
