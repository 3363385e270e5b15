"""Tests for the plugin system."""

import asyncio
import textwrap

import pytest

from aspect_lens.aspects import FunctionAspect, fingerprint_of
from aspect_lens.errors import ErrorCode, PluginError, RegistryError
from aspect_lens.pipeline import ExtractionConsolidationPipeline
from aspect_lens.plugins import (
    PluginSet,
    aspect,
    consolidating_aspect,
    get_plugins,
    load_plugin_from_file,
    load_plugins_from_directory,
    repository_scorer,
    reset_plugins,
    tagger,
    workspace_scorer,
    workspace_tagger,
)
from aspect_lens.project import InMemoryProject
from aspect_lens.schemas import RepoAnalysis, RepoRef
from aspect_lens.scoring import RepositoryScorer, WorkspaceScorer
from aspect_lens.store import InMemoryFingerprintStore
from aspect_lens.taggers import Tagger, WorkspaceSpecificTagger

LICENSE_PLUGIN = '''
from aspect_lens.aspects import Aspect, fingerprint_of
from aspect_lens.plugins import repository_scorer, tagger


class LicenseAspect(Aspect):
    @property
    def name(self):
        return "license"

    async def extract(self, project, context):
        content = project.read_file("LICENSE")
        if not content:
            return None
        return fingerprint_of("license", content.splitlines()[0])


@tagger("licensed", description="Has a license file")
def licensed(repo):
    return any(fp.type == "license" for fp in repo.fingerprints)


@repository_scorer("has-license", score_all=True)
def has_license(repo):
    return 100.0 if licensed.test(repo) else 0.0
'''


@pytest.fixture(autouse=True)
def fresh_plugins():
    """Give every test its own global plugin set."""
    reset_plugins()
    yield
    reset_plugins()


def write_plugin(directory, name, content):
    path = directory / name
    path.write_text(textwrap.dedent(content))
    return path


class TestPluginSet:
    """Tests for registering plugins in a set."""

    def test_builtins_registered(self):
        """The global set starts with the built-in plugins."""
        plugins = get_plugins()
        assert [a.name for a in plugins.aspects] == [
            "language",
            "package-managers",
            "dependency",
            "framework",
            "ci",
        ]
        assert {p.source for p in plugins.list_plugins()} == {"builtin"}

    def test_duplicate_aspect_rejected(self):
        """Aspect names are unique within a set."""
        plugins = PluginSet()
        plugins.register_aspect(FunctionAspect("x"))
        with pytest.raises(RegistryError) as exc_info:
            plugins.register_aspect(FunctionAspect("x"))
        assert exc_info.value.code == ErrorCode.REGISTRY_DUPLICATE_ASPECT

    def test_duplicate_scorer_rejected(self):
        """Scorer names are unique within a set."""
        plugins = PluginSet()
        plugins.register(RepositoryScorer(name="s", score_fingerprints=lambda r: 1))
        with pytest.raises(RegistryError) as exc_info:
            plugins.register(RepositoryScorer(name="s", score_fingerprints=lambda r: 2))
        assert exc_info.value.code == ErrorCode.REGISTRY_DUPLICATE_SCORER
        assert len(plugins.repository_scorers) == 1

    def test_register_dispatches_by_type(self):
        """register accepts every plugin kind and rejects anything else."""
        plugins = PluginSet()
        assert plugins.register(FunctionAspect("a"))
        assert plugins.register(Tagger(name="t", test=lambda r: True))
        assert plugins.register(RepositoryScorer(name="s", score_fingerprints=lambda r: 1))
        assert plugins.register(WorkspaceScorer(name="w", score=lambda s: 1))
        assert not plugins.register("not a plugin")
        assert [p.type for p in plugins.list_plugins()] == ["aspect", "tagger", "repository_scorer", "workspace_scorer"]

    def test_build_registry_adds_store_taggers(self):
        """With a store, the version drift tagger is available."""
        plugins = PluginSet()
        without_store = plugins.build_registry()
        with_store = plugins.build_registry(store=InMemoryFingerprintStore())
        assert [t.name for t in without_store.available_tags] == []
        assert [t.name for t in with_store.available_tags] == ["version-drift"]

    def test_build_registry_weight_overrides(self):
        """Weight overrides reach the scoring engine."""
        plugins = PluginSet()
        plugins.register(RepositoryScorer(name="s", score_fingerprints=lambda r: 1))
        registry = plugins.build_registry(weight_overrides={"s": 3.0})
        assert registry.scoring_engine.weight_of(plugins.repository_scorers[0]) == 3.0


class TestDecorators:
    """Tests for decorator registration."""

    def test_aspect_decorator(self):
        """@aspect registers a function aspect."""

        @aspect("readme", display_name="Readme")
        def readme(project, context):
            return fingerprint_of("readme", project.has_file("README.md"))

        assert get_plugins().aspects[-1] is readme
        assert readme.display_name == "Readme"

    def test_consolidating_aspect_decorator(self):
        """@consolidating_aspect registers an aspect that only consolidates."""

        @consolidating_aspect("count")
        def count(fingerprints, context):
            return fingerprint_of("count", len(fingerprints))

        project = InMemoryProject.of(("a.py", ""))
        result = asyncio.run(ExtractionConsolidationPipeline(get_plugins().aspects).analyze(project))
        [fp] = [fp for fp in result.fingerprints if fp.type == "count"]
        # The language fingerprint precedes it
        assert fp.data == 1

    def test_tagger_decorators(self):
        """@tagger and @workspace_tagger register taggers."""

        @tagger("always")
        def always(repo):
            return True

        @workspace_tagger("per-workspace")
        def per_workspace(workspace_id, registry):
            return lambda repo: workspace_id == "w1"

        assert isinstance(always, Tagger)
        assert isinstance(per_workspace, WorkspaceSpecificTagger)
        names = [t.name for t in get_plugins().taggers]
        assert names[-2:] == ["always", "per-workspace"]

    def test_scorer_decorators(self):
        """@repository_scorer and @workspace_scorer register scorers."""

        @repository_scorer("flat", weight=2.0)
        def flat(repo):
            return 10.0

        @workspace_scorer("flat-ws")
        def flat_ws(summary):
            return 20.0

        assert get_plugins().repository_scorers[-1] is flat
        assert flat.weight == 2.0
        assert get_plugins().workspace_scorers[-1] is flat_ws


class TestLoadPlugins:
    """Tests for loading plugin files."""

    def test_load_plugin_file(self, tmp_path):
        """Aspect classes and decorated objects in a file are registered."""
        path = write_plugin(tmp_path, "license_plugin.py", LICENSE_PLUGIN)
        loaded = load_plugin_from_file(path)
        assert sorted(type(obj).__name__ for obj in loaded) == ["LicenseAspect", "RepositoryScorer", "Tagger"]
        assert any(p.source == str(path) for p in get_plugins().list_plugins())

    def test_loaded_plugins_run(self, tmp_path):
        """Plugins from a file take part in analysis, tagging and scoring."""
        load_plugin_from_file(write_plugin(tmp_path, "license_plugin.py", LICENSE_PLUGIN))
        registry = get_plugins().build_registry()
        project = InMemoryProject.of(("LICENSE", "MIT License\n..."), owner="acme", repo="lib")

        result = asyncio.run(ExtractionConsolidationPipeline(registry.aspects).analyze(project))
        repo = RepoAnalysis(id=RepoRef(owner="acme", repo="lib"), workspace_id="w1", fingerprints=result.fingerprints)
        [scored] = asyncio.run(registry.tag_and_score_repos("w1", [repo]))

        assert "licensed" in {t.name for t in scored.tags}
        assert scored.weighted_score.weighted_scores["has-license"].score == 100.0

    def test_module_level_instances_registered(self, tmp_path):
        """Plain module-level plugin objects are registered without decorators."""
        path = write_plugin(
            tmp_path,
            "plain.py",
            """
            from aspect_lens.taggers import Tagger

            empty = Tagger(name="empty", test=lambda repo: not repo.fingerprints)
            """,
        )
        [loaded] = load_plugin_from_file(path)
        assert loaded.name == "empty"

    def test_missing_file(self, tmp_path):
        """A missing file raises a plugin error."""
        with pytest.raises(PluginError) as exc_info:
            load_plugin_from_file(tmp_path / "nope.py")
        assert exc_info.value.code == ErrorCode.PLUGIN_LOAD_FAILED

    def test_broken_file(self, tmp_path):
        """A file that fails to import raises a plugin error."""
        path = write_plugin(tmp_path, "broken.py", "raise RuntimeError('boom')\n")
        with pytest.raises(PluginError, match="boom"):
            load_plugin_from_file(path)

    def test_load_directory(self, tmp_path):
        """Directory loading skips private and broken files."""
        write_plugin(tmp_path, "license_plugin.py", LICENSE_PLUGIN)
        write_plugin(tmp_path, "broken.py", "raise RuntimeError('boom')\n")
        write_plugin(
            tmp_path,
            "_private.py",
            """
            from aspect_lens.taggers import Tagger

            hidden = Tagger(name="hidden", test=lambda repo: True)
            """,
        )
        loaded = load_plugins_from_directory(tmp_path)
        assert len(loaded) == 3
        assert "hidden" not in [t.name for t in get_plugins().taggers]

    def test_missing_directory(self, tmp_path):
        """A missing plugin directory loads nothing."""
        assert load_plugins_from_directory(tmp_path / "absent") == []
