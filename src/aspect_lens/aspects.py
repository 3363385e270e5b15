"""
Aspect base classes and fingerprint helpers.

An aspect owns one fingerprint kind: it extracts fingerprints from a project
and may consolidate new fingerprints from everything extracted so far. Both
hooks may be plain functions or coroutines and may return nothing, a single
fingerprint, or several.
"""

import hashlib
import inspect
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Union

from aspect_lens.project import Project
from aspect_lens.schemas import (
    AnalysisContext,
    AspectMetadata,
    AspectReportDetails,
    Fingerprint,
)

logger = logging.getLogger(__name__)

# What extraction and consolidation hooks may return
FingerprintResult = Union[Fingerprint, Iterable[Fingerprint], None]

ExtractFn = Callable[[Project, AnalysisContext], Union[FingerprintResult, Awaitable[FingerprintResult]]]
ConsolidateFn = Callable[
    [tuple[Fingerprint, ...], AnalysisContext],
    Union[FingerprintResult, Awaitable[FingerprintResult]],
]
ProjectTest = Callable[[Project], Union[bool, Awaitable[bool]]]


def canonicalize_json(data: Any) -> str:
    """
    Serialize data to canonical JSON (sorted keys, no whitespace).

    Equal payloads always produce the same string, so hashes of the result
    are stable across runs and dict insertion orders.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_sha(data: Any) -> str:
    """Compute the SHA-256 hex digest of the canonical JSON of data."""
    return hashlib.sha256(canonicalize_json(data).encode("utf-8")).hexdigest()


def fingerprint_of(
    type: str,
    data: Any,
    name: str | None = None,
    display_name: str | None = None,
    display_value: str | None = None,
    path: str = "",
) -> Fingerprint:
    """
    Build a fingerprint whose sha is the content hash of its data.

    Args:
        type: Aspect name owning the fingerprint
        data: JSON-serializable payload
        name: Fingerprint name, defaults to the type
        display_name: Optional human-readable name
        display_value: Optional human-readable value
        path: Sub-project path, empty for the repository base

    Returns:
        A new Fingerprint
    """
    return Fingerprint(
        type=type,
        name=name or type,
        sha=compute_sha(data),
        data=data,
        display_name=display_name,
        display_value=display_value,
        path=path,
    )


async def maybe_await(value: Any) -> Any:
    """Await value if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


def as_fingerprint_list(result: FingerprintResult) -> list[Fingerprint]:
    """Normalize a hook's return value to a list of fingerprints."""
    if result is None:
        return []
    if isinstance(result, Fingerprint):
        return [result]
    fingerprints = list(result)
    for fp in fingerprints:
        if not isinstance(fp, Fingerprint):
            raise TypeError(f"Expected Fingerprint, got {type(fp).__name__}")
    return fingerprints


class Aspect(ABC):
    """Base class for aspects."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique fingerprint kind name owned by this aspect."""
        ...

    @property
    def display_name(self) -> str | None:
        """Human-readable name. Aspects without one are not shown in overviews."""
        return None

    @property
    def base_only(self) -> bool:
        """Whether only the repository base path is meaningful for this aspect."""
        return False

    @property
    def details(self) -> AspectReportDetails | None:
        """Report category and display formatting."""
        return None

    async def extract(self, project: Project, context: AnalysisContext) -> FingerprintResult:
        """
        Extract fingerprints from a project.

        Args:
            project: Project to inspect
            context: Workspace and repository being analyzed

        Returns:
            None, one fingerprint, or several
        """
        return None

    async def consolidate(
        self,
        fingerprints: tuple[Fingerprint, ...],
        context: AnalysisContext,
    ) -> FingerprintResult:
        """
        Derive fingerprints from those produced so far.

        Args:
            fingerprints: Everything extracted plus the output of earlier
                consolidation stages
            context: Workspace and repository being analyzed

        Returns:
            None, one fingerprint, or several
        """
        return None

    def metadata(self) -> AspectMetadata:
        return AspectMetadata(
            name=self.name,
            display_name=self.display_name,
            base_only=self.base_only,
            details=self.details,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class FunctionAspect(Aspect):
    """An aspect assembled from plain or async callables."""

    def __init__(
        self,
        name: str,
        extract: ExtractFn | None = None,
        consolidate: ConsolidateFn | None = None,
        display_name: str | None = None,
        base_only: bool = False,
        details: AspectReportDetails | None = None,
    ):
        self._name = name
        self._extract = extract
        self._consolidate = consolidate
        self._display_name = display_name
        self._base_only = base_only
        self._details = details

    @property
    def name(self) -> str:
        return self._name

    @property
    def display_name(self) -> str | None:
        return self._display_name

    @property
    def base_only(self) -> bool:
        return self._base_only

    @property
    def details(self) -> AspectReportDetails | None:
        return self._details

    async def extract(self, project: Project, context: AnalysisContext) -> FingerprintResult:
        if self._extract is None:
            return None
        return await maybe_await(self._extract(project, context))

    async def consolidate(
        self,
        fingerprints: tuple[Fingerprint, ...],
        context: AnalysisContext,
    ) -> FingerprintResult:
        if self._consolidate is None:
            return None
        return await maybe_await(self._consolidate(fingerprints, context))


class ConditionalAspect(Aspect):
    """
    Wraps an aspect so that extraction only runs when a project test passes.

    Consolidation is delegated unchanged. When the wrapper is given a new name,
    fingerprints produced by the wrapped extraction are re-typed to that name.
    """

    def __init__(
        self,
        inner: Aspect,
        test: ProjectTest,
        name: str | None = None,
        display_name: str | None = None,
    ):
        self.inner = inner
        self.test = test
        self._name = name
        self._display_name = display_name

    @property
    def name(self) -> str:
        return self._name or self.inner.name

    @property
    def display_name(self) -> str | None:
        return self._display_name or self.inner.display_name

    @property
    def base_only(self) -> bool:
        return self.inner.base_only

    @property
    def details(self) -> AspectReportDetails | None:
        return self.inner.details

    async def extract(self, project: Project, context: AnalysisContext) -> FingerprintResult:
        if not await maybe_await(self.test(project)):
            logger.debug(f"Skipping aspect {self.name}: project test did not pass")
            return None
        fingerprints = as_fingerprint_list(await self.inner.extract(project, context))
        if self.name == self.inner.name:
            return fingerprints
        return [fp.model_copy(update={"type": self.name}) for fp in fingerprints]

    async def consolidate(
        self,
        fingerprints: tuple[Fingerprint, ...],
        context: AnalysisContext,
    ) -> FingerprintResult:
        return await self.inner.consolidate(fingerprints, context)


def conditionalize(
    aspect: Aspect,
    test: ProjectTest,
    name: str | None = None,
    display_name: str | None = None,
) -> Aspect:
    """
    Make an aspect conditional on a project test.

    Usage:
        python_deps = conditionalize(
            DependencyAspect(),
            lambda p: p.has_file("requirements.txt"),
            name="python-dependencies",
        )
    """
    return ConditionalAspect(aspect, test, name=name, display_name=display_name)
