"""
Tagging engine.

A tagger pairs static tag metadata with a predicate over a repository's
fingerprints. Workspace-specific taggers build their predicate from the
workspace itself (for example from workspace-wide usage statistics), so the
predicate is built once per workspace and reused for every repository in it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from aspect_lens.aspects import maybe_await
from aspect_lens.cache import InFlightMemo
from aspect_lens.schemas import RepoAnalysis, Severity, Tag

if TYPE_CHECKING:
    from aspect_lens.registry import AspectRegistry

logger = logging.getLogger(__name__)

TagTest = Callable[[RepoAnalysis], Union[bool, Awaitable[bool]]]
TestFactory = Callable[[str, "AspectRegistry | None"], Union[TagTest, Awaitable[TagTest]]]


@dataclass(frozen=True)
class Tagger:
    """A tag whose predicate is the same in every workspace."""

    name: str
    test: TagTest
    parent: str | None = None
    description: str | None = None
    severity: Severity | None = None

    @property
    def tag(self) -> Tag:
        return Tag(name=self.name, parent=self.parent, description=self.description, severity=self.severity)


@dataclass(frozen=True)
class WorkspaceSpecificTagger:
    """A tag whose predicate is built per workspace by a factory."""

    name: str
    create_test: TestFactory
    parent: str | None = None
    description: str | None = None
    severity: Severity | None = None

    @property
    def tag(self) -> Tag:
        return Tag(name=self.name, parent=self.parent, description=self.description, severity=self.severity)


TaggerDefinition = Union[Tagger, WorkspaceSpecificTagger]


@dataclass(frozen=True)
class ResolvedTagger:
    """A tagger with its predicate ready to evaluate."""

    tag: Tag
    test: TagTest


class TaggerEngine:
    """
    Evaluates taggers against repositories.

    Predicates built by workspace-specific taggers are memoized per
    (workspace, tagger) for the lifetime of the engine. A factory that raises
    is not memoized, so the next resolution retries it.
    """

    def __init__(self, taggers: Sequence[TaggerDefinition], registry: "AspectRegistry | None" = None):
        self.taggers = list(taggers)
        self.registry = registry
        self._tests: InFlightMemo[tuple[str, int], TagTest] = InFlightMemo()

    @property
    def available_tags(self) -> list[Tag]:
        """Static metadata of every tagger, first definition of a name wins."""
        seen: dict[str, Tag] = {}
        for tagger in self.taggers:
            seen.setdefault(tagger.name, tagger.tag)
        return list(seen.values())

    async def _resolve_one(self, index: int, tagger: TaggerDefinition, workspace_id: str) -> ResolvedTagger | None:
        if isinstance(tagger, Tagger):
            return ResolvedTagger(tag=tagger.tag, test=tagger.test)

        async def build() -> TagTest:
            logger.debug(f"Building predicate for tagger {tagger.name} in workspace {workspace_id}")
            return await maybe_await(tagger.create_test(workspace_id, self.registry))

        try:
            test = await self._tests.get((workspace_id, index), build)
        except Exception as e:
            logger.warning(f"Tagger {tagger.name} could not be built for workspace {workspace_id}: {e}")
            return None
        return ResolvedTagger(tag=tagger.tag, test=test)

    async def resolve(self, workspace_id: str) -> list[ResolvedTagger]:
        """Resolve every tagger for a workspace. Taggers that fail to build are left out."""
        resolved = await asyncio.gather(
            *(self._resolve_one(i, tagger, workspace_id) for i, tagger in enumerate(self.taggers))
        )
        return [r for r in resolved if r is not None]

    async def _matches(self, resolved: ResolvedTagger, repo: RepoAnalysis) -> bool:
        try:
            return bool(await maybe_await(resolved.test(repo)))
        except Exception as e:
            logger.warning(f"Tagger {resolved.tag.name} failed on {repo.id.key}: {e}")
            return False

    async def tag(
        self,
        repo: RepoAnalysis,
        workspace_id: str | None = None,
        resolved: Sequence[ResolvedTagger] | None = None,
    ) -> list[Tag]:
        """
        Compute the tags that apply to a repository.

        Args:
            repo: Repository and its fingerprints
            workspace_id: Workspace used to build workspace-specific predicates,
                defaults to the repository's own workspace
            resolved: Taggers already resolved for the workspace

        Returns:
            Tags whose predicate holds, duplicates preserved
        """
        if resolved is None:
            resolved = await self.resolve(workspace_id or repo.workspace_id)
        results = await asyncio.gather(*(self._matches(r, repo) for r in resolved))
        return [r.tag for r, matched in zip(resolved, results) if matched]

    def invalidate(self, workspace_id: str | None = None) -> None:
        """Forget memoized predicates for one workspace, or for all."""
        if workspace_id is None:
            self._tests.invalidate()
            return
        for key in self._tests.keys():
            if key[0] == workspace_id:
                self._tests.invalidate(key)
