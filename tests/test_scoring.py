"""Tests for scorers and score combination."""

import asyncio

import pytest

from aspect_lens.aspects import fingerprint_of
from aspect_lens.errors import ErrorCode, RegistryError
from aspect_lens.schemas import (
    RepoAnalysis,
    RepoRef,
    ScoreContribution,
    TagAndScoreOptions,
    WorkspaceRepo,
    WorkspaceToScore,
)
from aspect_lens.scoring import (
    RepositoryScorer,
    ScoringEngine,
    WorkspaceScorer,
    combine_scores,
    group_by_path,
)


@pytest.fixture
def repo():
    """A repository with fingerprints at the base and in two sub-projects."""
    return RepoAnalysis(
        id=RepoRef(owner="acme", repo="mono"),
        fingerprints=[
            fingerprint_of("dependency", "a", name="npm:a"),
            fingerprint_of("dependency", "b", name="npm:b", path="web"),
            fingerprint_of("dependency", "c", name="npm:c", path="web"),
            fingerprint_of("dependency", "d", name="npm:d", path="api"),
            fingerprint_of("dependency", "e", name="npm:e", path="api"),
            fingerprint_of("dependency", "f", name="npm:f", path="api"),
        ],
    )


def count_times_ten(repo):
    return len(repo.fingerprints) * 10.0


class TestCombineScores:
    """Tests for weighted score combination."""

    def test_none_is_excluded(self):
        """Scores [80, None, 40] combine to 60."""
        result = combine_scores([
            ScoreContribution(name="a", score=80),
            ScoreContribution(name="b", score=None),
            ScoreContribution(name="c", score=40),
        ])
        assert result.score == pytest.approx(60.0)
        assert result.weighted_scores["b"].score is None

    def test_weights(self):
        """Weights scale each contribution."""
        result = combine_scores([
            ScoreContribution(name="a", score=100, weight=3),
            ScoreContribution(name="b", score=0, weight=1),
        ])
        assert result.score == pytest.approx(75.0)

    def test_nothing_applies(self):
        """With no applicable scorer the score is None, not 0."""
        assert combine_scores([ScoreContribution(name="a", score=None)]).score is None
        assert combine_scores([]).score is None

    def test_zero_is_a_real_score(self):
        """A zero score is included in the mean."""
        result = combine_scores([ScoreContribution(name="a", score=0), ScoreContribution(name="b", score=100)])
        assert result.score == pytest.approx(50.0)


class TestRepositoryScorer:
    """Tests for repository scorer evaluation."""

    def test_group_by_path_always_has_base(self):
        """The base path view exists even without base fingerprints."""
        repo = RepoAnalysis(id=RepoRef(owner="o", repo="r"), fingerprints=[fingerprint_of("t", 1, path="sub")])
        views = group_by_path(repo)
        assert set(views) == {"", "sub"}
        assert views[""].fingerprints == []

    def test_scores_each_path_and_averages(self, repo):
        """By default each sub-project is scored separately and averaged."""
        engine = ScoringEngine()
        scorer = RepositoryScorer(name="count", score_fingerprints=count_times_ten)
        # base: 1 -> 10, web: 2 -> 20, api: 3 -> 30
        assert asyncio.run(engine.run_repository_scorer(scorer, repo)) == pytest.approx(20.0)

    def test_base_only(self, repo):
        """base_only scores only the base path fingerprints."""
        scorer = RepositoryScorer(name="count", score_fingerprints=count_times_ten, base_only=True)
        assert asyncio.run(ScoringEngine().run_repository_scorer(scorer, repo)) == pytest.approx(10.0)

    def test_score_all(self, repo):
        """score_all scores the whole fingerprint set once."""
        scorer = RepositoryScorer(name="count", score_fingerprints=count_times_ten, score_all=True)
        assert asyncio.run(ScoringEngine().run_repository_scorer(scorer, repo)) == pytest.approx(60.0)

    def test_raising_scorer_counts_as_none(self, repo):
        """A scorer that raises is recorded with no score."""

        def boom(r):
            raise ZeroDivisionError()

        engine = ScoringEngine([
            RepositoryScorer(name="bad", score_fingerprints=boom),
            RepositoryScorer(name="good", score_fingerprints=lambda r: 50, score_all=True),
        ])
        result = asyncio.run(engine.score_repo(repo))
        assert result.score == pytest.approx(50.0)
        assert result.weighted_scores["bad"].score is None

    def test_async_scorer(self, repo):
        """Scorers may be coroutines."""

        async def score(r):
            return 70

        engine = ScoringEngine([RepositoryScorer(name="async", score_fingerprints=score, score_all=True)])
        assert asyncio.run(engine.score_repo(repo)).score == pytest.approx(70.0)

    def test_category_filter(self, repo):
        """Only scorers of the requested category run; * runs them all."""
        engine = ScoringEngine([
            RepositoryScorer(name="q", score_fingerprints=lambda r: 100, category="quality", score_all=True),
            RepositoryScorer(name="s", score_fingerprints=lambda r: 0, category="security", score_all=True),
        ])
        quality = asyncio.run(engine.score_repo(repo, TagAndScoreOptions(category="quality")))
        assert set(quality.weighted_scores) == {"q"}
        assert quality.score == pytest.approx(100.0)
        everything = asyncio.run(engine.score_repo(repo, TagAndScoreOptions(category="*")))
        assert everything.score == pytest.approx(50.0)

    def test_weight_overrides(self, repo):
        """Configured weights replace scorer weights."""
        engine = ScoringEngine(
            [
                RepositoryScorer(name="a", score_fingerprints=lambda r: 100, score_all=True),
                RepositoryScorer(name="b", score_fingerprints=lambda r: 0, score_all=True),
            ],
            weight_overrides={"a": 4.0},
        )
        result = asyncio.run(engine.score_repo(repo))
        assert result.weighted_scores["a"].weight == 4.0
        assert result.score == pytest.approx(80.0)


class TestWorkspaceScorer:
    """Tests for workspace scoring."""

    def test_combines_like_repository_scores(self):
        """Workspace scorers combine with the same weighted mean."""
        summary = WorkspaceToScore(
            repos=[
                WorkspaceRepo(owner="o", repo="a", score=80),
                WorkspaceRepo(owner="o", repo="b", score=None),
            ]
        )
        engine = ScoringEngine(workspace_scorers=[
            WorkspaceScorer(name="repos", score=lambda s: len(s.repos) * 10),
            WorkspaceScorer(name="abstain", score=lambda s: None),
            WorkspaceScorer(name="best", score=lambda s: max(r.score for r in s.repos if r.score is not None)),
        ])
        result = asyncio.run(engine.score_workspace(summary))
        assert result.score == pytest.approx(50.0)
        assert result.weighted_scores["abstain"].score is None


class TestScorerNames:
    """Tests for scorer name uniqueness."""

    def test_duplicate_repository_scorer_rejected(self):
        """Two repository scorers with one name would share a breakdown entry."""
        with pytest.raises(RegistryError) as exc_info:
            ScoringEngine([
                RepositoryScorer(name="same", score_fingerprints=lambda r: 10),
                RepositoryScorer(name="same", score_fingerprints=lambda r: 90),
            ])
        assert exc_info.value.code == ErrorCode.REGISTRY_DUPLICATE_SCORER
        assert exc_info.value.context["scorer_name"] == "same"

    def test_duplicate_workspace_scorer_rejected(self):
        """Workspace scorer names are unique too."""
        with pytest.raises(RegistryError):
            ScoringEngine(workspace_scorers=[
                WorkspaceScorer(name="same", score=lambda s: 1),
                WorkspaceScorer(name="same", score=lambda s: 2),
            ])

    def test_same_name_across_kinds_allowed(self, repo):
        """A repository and a workspace scorer may share a name."""
        engine = ScoringEngine(
            [RepositoryScorer(name="shared", score_fingerprints=lambda r: 40, score_all=True)],
            [WorkspaceScorer(name="shared", score=lambda s: 60)],
        )
        assert asyncio.run(engine.score_repo(repo)).weighted_scores["shared"].score == pytest.approx(40.0)
        assert asyncio.run(engine.score_workspace(WorkspaceToScore())).score == pytest.approx(60.0)
