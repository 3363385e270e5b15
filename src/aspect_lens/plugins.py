"""
Plugin architecture for Aspect Lens.

Allows users to extend analysis with custom:
- Aspects (new fingerprint kinds, extracted or consolidated)
- Taggers (predicates over a repository's fingerprints)
- Repository scorers and workspace scorers

Plugins are Python files. Aspect subclasses defined in a plugin file are
instantiated and registered; module-level tagger, scorer and aspect objects
are registered as they are. The decorators below register into the global
plugin set when the plugin file is imported.
"""

import importlib.util
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from aspect_lens.aspects import Aspect, ConsolidateFn, ExtractFn, FunctionAspect
from aspect_lens.builtins import (
    builtin_aspects,
    builtin_repository_scorers,
    builtin_taggers,
    builtin_workspace_scorers,
    version_drift_tagger,
)
from aspect_lens.errors import duplicate_aspect, duplicate_scorer, plugin_load_failed
from aspect_lens.registry import DefaultAspectRegistry
from aspect_lens.schemas import AspectReportDetails, Severity
from aspect_lens.scoring import RepositoryScorer, ScoreFn, WorkspaceScoreFn, WorkspaceScorer
from aspect_lens.store import FingerprintStore
from aspect_lens.taggers import TaggerDefinition, Tagger, TagTest, TestFactory, WorkspaceSpecificTagger

logger = logging.getLogger(__name__)


@dataclass
class PluginInfo:
    """Information about a loaded plugin."""

    name: str
    type: str  # aspect, tagger, repository_scorer, workspace_scorer
    source: str  # file path, "builtin" or "code"
    description: str = ""


@dataclass
class PluginSet:
    """Aspects, taggers and scorers available to build a registry from."""

    aspects: list[Aspect] = field(default_factory=list)
    taggers: list[TaggerDefinition] = field(default_factory=list)
    repository_scorers: list[RepositoryScorer] = field(default_factory=list)
    workspace_scorers: list[WorkspaceScorer] = field(default_factory=list)

    _plugin_info: list[PluginInfo] = field(default_factory=list)

    def register_aspect(self, aspect: Aspect, source: str = "code") -> None:
        """Register an aspect. Names must be unique."""
        if any(a.name == aspect.name for a in self.aspects):
            raise duplicate_aspect(aspect.name)
        self.aspects.append(aspect)
        self._plugin_info.append(PluginInfo(
            name=aspect.name,
            type="aspect",
            source=source,
            description=aspect.display_name or "",
        ))
        logger.debug(f"Registered aspect: {aspect.name}")

    def register_tagger(self, tagger: TaggerDefinition, source: str = "code") -> None:
        self.taggers.append(tagger)
        self._plugin_info.append(PluginInfo(
            name=tagger.name,
            type="tagger",
            source=source,
            description=tagger.description or "",
        ))
        logger.debug(f"Registered tagger: {tagger.name}")

    def register_repository_scorer(self, scorer: RepositoryScorer, source: str = "code") -> None:
        """Register a repository scorer. Names must be unique."""
        if any(s.name == scorer.name for s in self.repository_scorers):
            raise duplicate_scorer(scorer.name, "repository")
        self.repository_scorers.append(scorer)
        self._plugin_info.append(PluginInfo(
            name=scorer.name,
            type="repository_scorer",
            source=source,
            description=scorer.description or "",
        ))
        logger.debug(f"Registered repository scorer: {scorer.name}")

    def register_workspace_scorer(self, scorer: WorkspaceScorer, source: str = "code") -> None:
        """Register a workspace scorer. Names must be unique."""
        if any(s.name == scorer.name for s in self.workspace_scorers):
            raise duplicate_scorer(scorer.name, "workspace")
        self.workspace_scorers.append(scorer)
        self._plugin_info.append(PluginInfo(
            name=scorer.name,
            type="workspace_scorer",
            source=source,
            description=scorer.description or "",
        ))
        logger.debug(f"Registered workspace scorer: {scorer.name}")

    def register(self, obj: Any, source: str = "code") -> bool:
        """Register any supported plugin object. Returns False if obj is not one."""
        if isinstance(obj, Aspect):
            self.register_aspect(obj, source)
        elif isinstance(obj, (Tagger, WorkspaceSpecificTagger)):
            self.register_tagger(obj, source)
        elif isinstance(obj, RepositoryScorer):
            self.register_repository_scorer(obj, source)
        elif isinstance(obj, WorkspaceScorer):
            self.register_workspace_scorer(obj, source)
        else:
            return False
        return True

    def contains(self, obj: Any) -> bool:
        """Whether this exact object is already registered."""
        pools = (self.aspects, self.taggers, self.repository_scorers, self.workspace_scorers)
        return any(registered is obj for pool in pools for registered in pool)

    def list_plugins(self) -> list[PluginInfo]:
        """List all registered plugins."""
        return self._plugin_info.copy()

    def build_registry(
        self,
        store: FingerprintStore | None = None,
        weight_overrides: dict[str, float] | None = None,
    ) -> DefaultAspectRegistry:
        """
        Build an aspect registry from the registered plugins.

        Args:
            store: Store backing workspace-specific built-in taggers, if any
            weight_overrides: Scorer weights by scorer name

        Returns:
            A registry over the registered aspects, taggers and scorers
        """
        taggers = list(self.taggers)
        if store is not None:
            taggers.append(version_drift_tagger(store))
        return DefaultAspectRegistry(
            self.aspects,
            taggers=taggers,
            repository_scorers=self.repository_scorers,
            workspace_scorers=self.workspace_scorers,
            weight_overrides=weight_overrides,
        )


# Global plugin set
_plugins: PluginSet | None = None


def get_plugins() -> PluginSet:
    """Get the global plugin set, creating it with the built-ins on first use."""
    global _plugins
    if _plugins is None:
        _plugins = PluginSet()
        _register_builtins(_plugins)
    return _plugins


def reset_plugins() -> None:
    """Reset the global plugin set (mainly for testing)."""
    global _plugins
    _plugins = None


# --- Plugin Loading ---


def load_plugin_from_file(path: Path) -> list[Any]:
    """
    Load plugins from a Python file.

    Aspect subclasses defined in the file are instantiated; module-level
    aspect, tagger and scorer objects not registered by a decorator are
    registered as found.

    Args:
        path: Path to Python file

    Returns:
        List of newly registered plugin objects

    Raises:
        PluginError: If the file does not exist or cannot be imported
    """
    if not path.exists():
        raise plugin_load_failed(str(path), "file not found")

    spec = importlib.util.spec_from_file_location(f"aspect_lens_plugin_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise plugin_load_failed(str(path), "not a Python module")

    plugins = get_plugins()
    before = {id(obj) for obj in [*plugins.aspects, *plugins.taggers,
                                  *plugins.repository_scorers, *plugins.workspace_scorers]}

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise plugin_load_failed(str(path), str(e)) from e

    for name in dir(module):
        if name.startswith("_"):
            continue
        obj = getattr(module, name)
        if isinstance(obj, type):
            if (
                issubclass(obj, Aspect)
                and obj.__module__ == module.__name__
                and not inspect.isabstract(obj)
            ):
                plugins.register_aspect(obj(), source=str(path))
        elif not plugins.contains(obj):
            plugins.register(obj, source=str(path))

    loaded = [
        obj
        for obj in [*plugins.aspects, *plugins.taggers, *plugins.repository_scorers, *plugins.workspace_scorers]
        if id(obj) not in before
    ]
    logger.info(f"Loaded {len(loaded)} plugins from {path}")
    return loaded


def load_plugins_from_directory(directory: Path) -> list[Any]:
    """
    Load all plugins from a directory.

    Files that fail to load are logged and skipped.

    Args:
        directory: Directory containing plugin files

    Returns:
        List of all loaded plugin objects
    """
    if not directory.exists():
        logger.warning(f"Plugin directory not found: {directory}")
        return []

    loaded: list[Any] = []
    for path in sorted(directory.glob("*.py")):
        if path.name.startswith("_"):
            continue
        try:
            loaded.extend(load_plugin_from_file(path))
        except Exception as e:
            logger.error(f"Failed to load plugin {path}: {e}")

    return loaded


# --- Decorator-based Registration ---


def aspect(
    name: str,
    display_name: str | None = None,
    base_only: bool = False,
    details: AspectReportDetails | None = None,
) -> Callable[[ExtractFn], FunctionAspect]:
    """
    Decorator for creating an aspect from an extraction function.

    Usage:
        @aspect("license", display_name="License")
        def license_aspect(project, context):
            content = project.read_file("LICENSE")
            return fingerprint_of("license", content[:80]) if content else None
    """

    def decorator(func: ExtractFn) -> FunctionAspect:
        instance = FunctionAspect(
            name,
            extract=func,
            display_name=display_name,
            base_only=base_only,
            details=details,
        )
        get_plugins().register_aspect(instance)
        return instance

    return decorator


def consolidating_aspect(
    name: str,
    display_name: str | None = None,
    details: AspectReportDetails | None = None,
) -> Callable[[ConsolidateFn], FunctionAspect]:
    """
    Decorator for creating an aspect that only consolidates.

    The function receives every fingerprint produced before it runs.
    """

    def decorator(func: ConsolidateFn) -> FunctionAspect:
        instance = FunctionAspect(name, consolidate=func, display_name=display_name, details=details)
        get_plugins().register_aspect(instance)
        return instance

    return decorator


def tagger(
    name: str,
    parent: str | None = None,
    description: str | None = None,
    severity: Severity | None = None,
) -> Callable[[TagTest], Tagger]:
    """
    Decorator for creating a tagger from a predicate.

    Usage:
        @tagger("has-docker", description="Ships a Dockerfile")
        def has_docker(repo):
            return any(fp.type == "docker" for fp in repo.fingerprints)
    """

    def decorator(func: TagTest) -> Tagger:
        instance = Tagger(name=name, test=func, parent=parent, description=description, severity=severity)
        get_plugins().register_tagger(instance)
        return instance

    return decorator


def workspace_tagger(
    name: str,
    parent: str | None = None,
    description: str | None = None,
    severity: Severity | None = None,
) -> Callable[[TestFactory], WorkspaceSpecificTagger]:
    """Decorator for creating a tagger whose predicate is built per workspace."""

    def decorator(func: TestFactory) -> WorkspaceSpecificTagger:
        instance = WorkspaceSpecificTagger(
            name=name,
            create_test=func,
            parent=parent,
            description=description,
            severity=severity,
        )
        get_plugins().register_tagger(instance)
        return instance

    return decorator


def repository_scorer(
    name: str,
    category: str | None = None,
    weight: float = 1.0,
    description: str | None = None,
    base_only: bool = False,
    score_all: bool = False,
) -> Callable[[ScoreFn], RepositoryScorer]:
    """Decorator for creating a repository scorer."""

    def decorator(func: ScoreFn) -> RepositoryScorer:
        instance = RepositoryScorer(
            name=name,
            score_fingerprints=func,
            category=category,
            weight=weight,
            description=description,
            base_only=base_only,
            score_all=score_all,
        )
        get_plugins().register_repository_scorer(instance)
        return instance

    return decorator


def workspace_scorer(
    name: str,
    category: str | None = None,
    weight: float = 1.0,
    description: str | None = None,
) -> Callable[[WorkspaceScoreFn], WorkspaceScorer]:
    """Decorator for creating a workspace scorer."""

    def decorator(func: WorkspaceScoreFn) -> WorkspaceScorer:
        instance = WorkspaceScorer(name=name, score=func, category=category, weight=weight, description=description)
        get_plugins().register_workspace_scorer(instance)
        return instance

    return decorator


def _register_builtins(plugins: PluginSet) -> None:
    """Register built-in plugins."""
    for builtin in builtin_aspects():
        plugins.register_aspect(builtin, source="builtin")
    for builtin_tagger in builtin_taggers():
        plugins.register_tagger(builtin_tagger, source="builtin")
    for scorer in builtin_repository_scorers():
        plugins.register_repository_scorer(scorer, source="builtin")
    for scorer in builtin_workspace_scorers():
        plugins.register_workspace_scorer(scorer, source="builtin")
