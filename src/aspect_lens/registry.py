"""
Aspect registry.

Holds the registered aspects in their authoritative display order and
orchestrates the tagger and scoring engines over repositories and workspaces.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from aspect_lens.aspects import Aspect
from aspect_lens.errors import duplicate_aspect
from aspect_lens.schemas import (
    AspectMetadata,
    AspectReportDetails,
    RepoAnalysis,
    ScoredRepo,
    Tag,
    TagAndScoreOptions,
    WeightedScore,
    WorkspaceToScore,
)
from aspect_lens.scoring import RepositoryScorer, ScoringEngine, WorkspaceScorer
from aspect_lens.taggers import TaggerDefinition, TaggerEngine

logger = logging.getLogger(__name__)


@runtime_checkable
class AspectRegistry(Protocol):
    """What report builders need to know about the registered aspects."""

    @property
    def aspects(self) -> list[Aspect]:
        ...

    @property
    def available_tags(self) -> list[Tag]:
        ...

    def aspect_of(self, type: str) -> Aspect | None:
        ...

    def aspect_order(self, type: str) -> int | None:
        ...

    def category_order(self, category: str) -> int | None:
        ...

    async def report_details_of(self, type: str, workspace_id: str) -> AspectReportDetails | None:
        ...

    async def tag_and_score_repos(
        self,
        workspace_id: str,
        repos: Sequence[RepoAnalysis],
        opts: TagAndScoreOptions | None = None,
    ) -> list[ScoredRepo]:
        ...

    async def score_workspace(
        self,
        workspace_id: str,
        summary: WorkspaceToScore,
        opts: TagAndScoreOptions | None = None,
    ) -> WeightedScore:
        ...


def order_key(rank: int | None, name: str | None) -> tuple[int, int, str]:
    """Sort key placing ranked entries first by rank, then unranked ones by name."""
    if rank is not None:
        return (0, rank, "")
    return (1, 0, name or "")


class DefaultAspectRegistry:
    """
    Registry over a fixed list of aspects, taggers and scorers.

    Aspect names must be unique. Registration order is the display order for
    aspects, and a category is ordered by the first aspect declaring it.
    """

    def __init__(
        self,
        aspects: Sequence[Aspect],
        taggers: Sequence[TaggerDefinition] = (),
        repository_scorers: Sequence[RepositoryScorer] = (),
        workspace_scorers: Sequence[WorkspaceScorer] = (),
        weight_overrides: dict[str, float] | None = None,
    ):
        self._aspects: list[Aspect] = []
        self._by_name: dict[str, Aspect] = {}
        self._rank: dict[str, int] = {}
        self._category_rank: dict[str, int] = {}

        for aspect in aspects:
            if aspect.name in self._by_name:
                raise duplicate_aspect(aspect.name)
            self._rank[aspect.name] = len(self._aspects)
            self._by_name[aspect.name] = aspect
            self._aspects.append(aspect)
            details = aspect.details
            if details is not None and details.category:
                self._category_rank.setdefault(details.category, len(self._category_rank))

        self.tagger_engine = TaggerEngine(taggers, registry=self)
        self.scoring_engine = ScoringEngine(repository_scorers, workspace_scorers, weight_overrides)
        logger.debug(
            f"Registry built with {len(self._aspects)} aspects, {len(self.tagger_engine.taggers)} taggers"
        )

    @property
    def aspects(self) -> list[Aspect]:
        return list(self._aspects)

    @property
    def available_tags(self) -> list[Tag]:
        return self.tagger_engine.available_tags

    def aspect_of(self, type: str) -> Aspect | None:
        """Find the aspect that manages fingerprints of this type."""
        return self._by_name.get(type)

    def aspect_order(self, type: str) -> int | None:
        return self._rank.get(type)

    def category_order(self, category: str) -> int | None:
        return self._category_rank.get(category)

    def metadata(self) -> list[AspectMetadata]:
        return [aspect.metadata() for aspect in self._aspects]

    async def report_details_of(self, type: str, workspace_id: str) -> AspectReportDetails | None:
        aspect = self.aspect_of(type)
        if aspect is None:
            return None
        return aspect.details

    async def _tag_and_score(
        self,
        workspace_id: str,
        repo: RepoAnalysis,
        resolved: list,
        opts: TagAndScoreOptions | None,
    ) -> ScoredRepo:
        tags, weighted_score = await asyncio.gather(
            self.tagger_engine.tag(repo, workspace_id, resolved=resolved),
            self.scoring_engine.score_repo(repo, opts),
        )
        return ScoredRepo(
            id=repo.id.model_copy(),
            workspace_id=workspace_id,
            fingerprints=list(repo.fingerprints),
            tags=tags,
            weighted_score=weighted_score,
        )

    async def tag_and_score_repos(
        self,
        workspace_id: str,
        repos: Sequence[RepoAnalysis],
        opts: TagAndScoreOptions | None = None,
    ) -> list[ScoredRepo]:
        """
        Tag and score every repository.

        Inputs are not modified; each call returns new records in input order.

        Args:
            workspace_id: Workspace whose tagger predicates apply
            repos: Repositories with their fingerprints
            opts: Category filter for scorers

        Returns:
            One ScoredRepo per input repository
        """
        resolved = await self.tagger_engine.resolve(workspace_id)
        return list(
            await asyncio.gather(
                *(self._tag_and_score(workspace_id, repo, resolved, opts) for repo in repos)
            )
        )

    async def score_workspace(
        self,
        workspace_id: str,
        summary: WorkspaceToScore,
        opts: TagAndScoreOptions | None = None,
    ) -> WeightedScore:
        logger.debug(f"Scoring workspace {workspace_id} with {len(summary.repos)} repos")
        return await self.scoring_engine.score_workspace(summary, opts)
