"""Tests for the aspect registry."""

import asyncio

import pytest

from aspect_lens.aspects import FunctionAspect, fingerprint_of
from aspect_lens.errors import ErrorCode, RegistryError
from aspect_lens.registry import DefaultAspectRegistry, order_key
from aspect_lens.schemas import AspectReportDetails, RepoAnalysis, RepoRef, WorkspaceToScore
from aspect_lens.scoring import RepositoryScorer, WorkspaceScorer
from aspect_lens.taggers import Tagger


@pytest.fixture
def registry():
    """Registry with three aspects, two taggers and one scorer."""
    return DefaultAspectRegistry(
        [
            FunctionAspect("language", display_name="Languages", details=AspectReportDetails(category="Stack")),
            FunctionAspect("dependency", details=AspectReportDetails(category="Dependencies")),
            FunctionAspect("ci", details=AspectReportDetails(category="Stack")),
        ],
        taggers=[
            Tagger(name="has-deps", test=lambda r: any(fp.type == "dependency" for fp in r.fingerprints)),
            Tagger(name="never", test=lambda r: False),
        ],
        repository_scorers=[
            RepositoryScorer(name="dep-count", score_fingerprints=lambda r: 10.0 * len(r.fingerprints), score_all=True),
        ],
        workspace_scorers=[WorkspaceScorer(name="size", score=lambda s: len(s.repos))],
    )


@pytest.fixture
def repos():
    """Two repositories in workspace w1."""
    return [
        RepoAnalysis(
            id=RepoRef(owner="acme", repo="api"),
            workspace_id="w1",
            fingerprints=[fingerprint_of("dependency", "1.0", name="npm:a")],
        ),
        RepoAnalysis(id=RepoRef(owner="acme", repo="docs"), workspace_id="w1"),
    ]


class TestRegistration:
    """Tests for aspect registration and lookup."""

    def test_duplicate_names_rejected(self):
        """Registering two aspects with the same name raises."""
        with pytest.raises(RegistryError) as exc_info:
            DefaultAspectRegistry([FunctionAspect("x"), FunctionAspect("x")])
        assert exc_info.value.code == ErrorCode.REGISTRY_DUPLICATE_ASPECT
        assert exc_info.value.context["aspect_name"] == "x"

    def test_aspect_of(self, registry):
        """Exact lookup by type, None when unknown."""
        assert registry.aspect_of("ci").name == "ci"
        assert registry.aspect_of("CI") is None

    def test_aspects_keep_registration_order(self, registry):
        """Aspects are returned in registration order."""
        assert [a.name for a in registry.aspects] == ["language", "dependency", "ci"]

    def test_rank_tables(self, registry):
        """Aspect and category ranks follow registration order."""
        assert registry.aspect_order("dependency") == 1
        assert registry.aspect_order("unknown") is None
        assert registry.category_order("Stack") == 0
        assert registry.category_order("Dependencies") == 1
        assert registry.category_order("Other") is None

    def test_order_key_puts_unranked_last(self):
        """Ranked entries sort before unranked ones, which sort by name."""
        keys = sorted(["zeta", "alpha", "first"], key=lambda n: order_key({"first": 0}.get(n), n))
        assert keys == ["first", "alpha", "zeta"]

    def test_report_details_of(self, registry):
        """Details come from the aspect, None for unknown types."""
        assert asyncio.run(registry.report_details_of("language", "w1")).category == "Stack"
        assert asyncio.run(registry.report_details_of("nope", "w1")) is None

    def test_available_tags(self, registry):
        """Available tags are the static union of tagger metadata."""
        assert [t.name for t in registry.available_tags] == ["has-deps", "never"]

    def test_metadata(self, registry):
        """Metadata exposes names and display names without behaviour."""
        assert registry.metadata()[0].display_name == "Languages"


class TestTagAndScore:
    """Tests for tagging and scoring repositories."""

    def test_tags_and_scores(self, registry, repos):
        """Each repo gets its tags and weighted score."""
        scored = asyncio.run(registry.tag_and_score_repos("w1", repos))
        assert [r.id.repo for r in scored] == ["api", "docs"]
        assert [t.name for t in scored[0].tags] == ["has-deps"]
        assert scored[0].weighted_score.score == pytest.approx(10.0)
        assert scored[1].tags == []
        assert scored[1].weighted_score.score == pytest.approx(0.0)

    def test_pure(self, registry, repos):
        """Repeated calls give identical results and leave inputs unchanged."""
        before = [r.model_dump() for r in repos]
        first = asyncio.run(registry.tag_and_score_repos("w1", repos))
        second = asyncio.run(registry.tag_and_score_repos("w1", repos))
        assert [r.model_dump() for r in first] == [r.model_dump() for r in second]
        assert [r.model_dump() for r in repos] == before
        assert first[0].fingerprints is not repos[0].fingerprints

    def test_score_workspace(self, registry):
        """Workspace scorers run over the summary."""
        result = asyncio.run(registry.score_workspace("w1", WorkspaceToScore()))
        assert result.score == pytest.approx(0.0)
