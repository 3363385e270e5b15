"""
Scoring engine.

Repository scorers rate one repository from its fingerprints; workspace scorers
rate a whole workspace from its usage statistics and already-scored repos.
A scorer returning None has no opinion and is left out of the combined score,
which is the weight-normalized mean of the scorers that did answer.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from aspect_lens.aspects import maybe_await
from aspect_lens.errors import duplicate_scorer
from aspect_lens.schemas import (
    WILDCARD,
    RepoAnalysis,
    ScoreContribution,
    TagAndScoreOptions,
    WeightedScore,
    WorkspaceToScore,
)

logger = logging.getLogger(__name__)

BASE_PATH = ""

ScoreFn = Callable[[RepoAnalysis], "float | None | Awaitable[float | None]"]
WorkspaceScoreFn = Callable[[WorkspaceToScore], "float | None | Awaitable[float | None]"]


@dataclass(frozen=True)
class RepositoryScorer:
    """
    Scores a repository.

    Unless score_all is set, the scoring function is called once per
    sub-project path with only that path's fingerprints, and the answers are
    averaged. base_only restricts this to the repository base path.
    """

    name: str
    score_fingerprints: ScoreFn
    category: str | None = None
    weight: float = 1.0
    description: str | None = None
    base_only: bool = False
    score_all: bool = False


@dataclass(frozen=True)
class WorkspaceScorer:
    """Scores a workspace summary."""

    name: str
    score: WorkspaceScoreFn
    category: str | None = None
    weight: float = 1.0
    description: str | None = None


def applies_to(scorer: RepositoryScorer | WorkspaceScorer, opts: TagAndScoreOptions | None) -> bool:
    """Whether a scorer runs under the given category filter."""
    if opts is None or opts.category == WILDCARD:
        return True
    return scorer.category == opts.category


def combine_scores(contributions: Sequence[ScoreContribution]) -> WeightedScore:
    """
    Combine scorer contributions into a weighted score.

    Contributions with a None score are recorded but excluded from the mean.
    The overall score is None when nothing applies.
    """
    weighted_scores = {c.name: c for c in contributions}
    applicable = [c for c in contributions if c.score is not None]
    total_weight = sum(c.weight for c in applicable)
    if not applicable or total_weight <= 0:
        return WeightedScore(score=None, weighted_scores=weighted_scores)
    score = sum(c.score * c.weight for c in applicable) / total_weight
    return WeightedScore(score=score, weighted_scores=weighted_scores)


def _mean(values: Sequence[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def group_by_path(repo: RepoAnalysis, base_only: bool = False) -> dict[str, RepoAnalysis]:
    """
    Split a repository into one view per sub-project path.

    The base path is always present, even without fingerprints of its own.
    """
    groups: dict[str, list] = {BASE_PATH: []}
    for fp in repo.fingerprints:
        if base_only and fp.path != BASE_PATH:
            continue
        groups.setdefault(fp.path, []).append(fp)
    return {path: repo.model_copy(update={"fingerprints": fps}) for path, fps in groups.items()}


def _check_unique(scorers: Sequence[RepositoryScorer | WorkspaceScorer], kind: str) -> None:
    seen: set[str] = set()
    for scorer in scorers:
        if scorer.name in seen:
            raise duplicate_scorer(scorer.name, kind)
        seen.add(scorer.name)


class ScoringEngine:
    """
    Runs repository and workspace scorers and combines their output.

    Scorer names must be unique among repository scorers and among workspace
    scorers.
    """

    def __init__(
        self,
        repository_scorers: Sequence[RepositoryScorer] = (),
        workspace_scorers: Sequence[WorkspaceScorer] = (),
        weight_overrides: dict[str, float] | None = None,
    ):
        self.repository_scorers = list(repository_scorers)
        self.workspace_scorers = list(workspace_scorers)
        _check_unique(self.repository_scorers, "repository")
        _check_unique(self.workspace_scorers, "workspace")
        self.weight_overrides = dict(weight_overrides or {})

    def weight_of(self, scorer: RepositoryScorer | WorkspaceScorer) -> float:
        return self.weight_overrides.get(scorer.name, scorer.weight)

    async def _call(self, name: str, fn: Callable, arg: object) -> float | None:
        try:
            result = await maybe_await(fn(arg))
            return None if result is None else float(result)
        except Exception as e:
            logger.warning(f"Scorer {name} failed: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
            return None

    async def run_repository_scorer(self, scorer: RepositoryScorer, repo: RepoAnalysis) -> float | None:
        """Evaluate one repository scorer, honouring score_all and base_only."""
        if scorer.score_all:
            return await self._call(scorer.name, scorer.score_fingerprints, repo)
        views = group_by_path(repo, base_only=scorer.base_only)
        scores = await asyncio.gather(
            *(self._call(scorer.name, scorer.score_fingerprints, view) for view in views.values())
        )
        return _mean(scores)

    async def score_repo(self, repo: RepoAnalysis, opts: TagAndScoreOptions | None = None) -> WeightedScore:
        scorers = [s for s in self.repository_scorers if applies_to(s, opts)]
        scores = await asyncio.gather(*(self.run_repository_scorer(s, repo) for s in scorers))
        return combine_scores([
            ScoreContribution(
                name=scorer.name,
                category=scorer.category,
                weight=self.weight_of(scorer),
                score=score,
                description=scorer.description,
            )
            for scorer, score in zip(scorers, scores)
        ])

    async def score_workspace(
        self,
        summary: WorkspaceToScore,
        opts: TagAndScoreOptions | None = None,
    ) -> WeightedScore:
        scorers = [s for s in self.workspace_scorers if applies_to(s, opts)]
        scores = await asyncio.gather(*(self._call(s.name, s.score, summary) for s in scorers))
        return combine_scores([
            ScoreContribution(
                name=scorer.name,
                category=scorer.category,
                weight=self.weight_of(scorer),
                score=score,
                description=scorer.description,
            )
            for scorer, score in zip(scorers, scores)
        ])
