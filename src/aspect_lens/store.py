"""
Fingerprint store.

The report builders only talk to a FingerprintStore through the async query
contract below, so any storage engine can implement it. The in-memory store
shipped here keeps analyses in a dict and persists them to a JSON-lines file,
one RepoAnalysis per line.
"""

import logging
import math
from collections import Counter, defaultdict
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from aspect_lens.errors import store_corrupted, store_write_failed
from aspect_lens.schemas import (
    WILDCARD,
    EntropyBand,
    Fingerprint,
    FingerprintKind,
    FingerprintUsage,
    RepoAnalysis,
    RepoFilter,
    RepoLeaf,
    ValueRepoGroup,
)

logger = logging.getLogger(__name__)

DEFAULT_STORE_FILE = "fingerprints.jsonl"


@runtime_checkable
class FingerprintStore(Protocol):
    """Query contract consumed by the aggregation and tree builders."""

    async def load_repos(self, repo_filter: RepoFilter | None = None) -> list[RepoAnalysis]:
        ...

    async def fingerprint_usage(self, kind: str = WILDCARD, workspace_id: str = WILDCARD) -> list[FingerprintUsage]:
        ...

    async def distinct_fingerprint_kinds(self, workspace_id: str = WILDCARD) -> list[FingerprintKind]:
        ...

    async def query_value_repo_groups(
        self,
        workspace_id: str,
        kind: str,
        name: str | None = None,
        by_name: bool = False,
        include_without: bool = False,
        without_name: str | None = None,
    ) -> list[ValueRepoGroup]:
        ...


def shannon_entropy(counts: list[int]) -> float:
    """Shannon entropy in bits of a frequency distribution."""
    total = sum(counts)
    if total <= 0:
        return 0.0
    entropy = 0.0
    for count in counts:
        if count > 0:
            p = count / total
            entropy -= p * math.log2(p)
    # Guard against -0.0 and float noise for single-valued distributions
    return max(entropy, 0.0)


def _analysis_key(analysis: RepoAnalysis) -> tuple[str, str, str, str]:
    return (analysis.workspace_id, analysis.id.owner, analysis.id.repo, analysis.id.path or "")


def _leaf(analysis: RepoAnalysis) -> RepoLeaf:
    return RepoLeaf(owner=analysis.id.owner, name=analysis.id.repo, url=analysis.id.url)


class InMemoryFingerprintStore:
    """
    FingerprintStore held in memory, optionally backed by a JSON-lines file.

    Persisting an analysis for a repository already in the store replaces the
    earlier analysis.
    """

    def __init__(self, path: Path | None = None):
        self.path = Path(path) if path is not None else None
        self._analyses: dict[tuple[str, str, str, str], RepoAnalysis] = {}

    @classmethod
    def open(cls, path: Path) -> "InMemoryFingerprintStore":
        """Create a store backed by path, loading it if the file exists."""
        store = cls(path)
        store.load()
        return store

    def __len__(self) -> int:
        return len(self._analyses)

    def load(self) -> None:
        """
        Load analyses from the backing file.

        Raises:
            StoreError: If a line is not a valid analysis record
        """
        if self.path is None or not self.path.exists():
            return

        with open(self.path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    analysis = RepoAnalysis.model_validate_json(line)
                except ValidationError as e:
                    raise store_corrupted(str(self.path), line_number, str(e)) from e
                self._analyses[_analysis_key(analysis)] = analysis
        logger.info(f"Loaded {len(self._analyses)} repository analyses from {self.path}")

    def save(self) -> None:
        """Write every analysis to the backing file."""
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                for analysis in self._analyses.values():
                    f.write(analysis.model_dump_json() + "\n")
        except OSError as e:
            raise store_write_failed(str(self.path), str(e)) from e
        logger.debug(f"Saved {len(self._analyses)} repository analyses to {self.path}")

    async def persist(self, analysis: RepoAnalysis) -> None:
        """Add or replace a repository analysis and save the store."""
        self._analyses[_analysis_key(analysis)] = analysis
        self.save()
        logger.info(
            f"Persisted {len(analysis.fingerprints)} fingerprints for {analysis.id.key} "
            f"in workspace {analysis.workspace_id}"
        )

    async def load_repos(self, repo_filter: RepoFilter | None = None) -> list[RepoAnalysis]:
        repo_filter = repo_filter or RepoFilter()
        return [a for a in self._analyses.values() if repo_filter.matches(a)]

    def _in_scope(self, workspace_id: str) -> list[RepoAnalysis]:
        return [a for a in self._analyses.values() if workspace_id == WILDCARD or a.workspace_id == workspace_id]

    async def fingerprint_usage(self, kind: str = WILDCARD, workspace_id: str = WILDCARD) -> list[FingerprintUsage]:
        """
        Aggregate usage per fingerprint kind.

        Each repository contributes each distinct value of a kind once. Entropy
        is computed over how those repository/value pairs spread across values.

        Args:
            kind: Fingerprint type to report on, or ``*`` for all
            workspace_id: Workspace scope, or ``*`` for all

        Returns:
            One FingerprintUsage per (type, name), sorted by type then name
        """
        values: dict[tuple[str, str], Counter] = defaultdict(Counter)
        repos: dict[tuple[str, str], set] = defaultdict(set)
        display_names: dict[tuple[str, str], str] = {}

        for analysis in self._in_scope(workspace_id):
            repo_key = _analysis_key(analysis)
            seen: set[tuple[str, str, str]] = set()
            for fp in analysis.fingerprints:
                if kind != WILDCARD and fp.type != kind:
                    continue
                if fp.value_key in seen:
                    continue
                seen.add(fp.value_key)
                values[fp.kind][fp.sha] += 1
                repos[fp.kind].add(repo_key)
                if fp.display_name and fp.kind not in display_names:
                    display_names[fp.kind] = fp.display_name

        usages = []
        for fp_kind in sorted(values):
            entropy = shannon_entropy(list(values[fp_kind].values()))
            usages.append(
                FingerprintUsage(
                    type=fp_kind[0],
                    name=fp_kind[1],
                    entropy=entropy,
                    entropy_band=EntropyBand.from_entropy(entropy),
                    variants=len(values[fp_kind]),
                    count=len(repos[fp_kind]),
                    display_name=display_names.get(fp_kind),
                )
            )
        return usages

    async def distinct_fingerprint_kinds(self, workspace_id: str = WILDCARD) -> list[FingerprintKind]:
        kinds = {fp.kind for analysis in self._in_scope(workspace_id) for fp in analysis.fingerprints}
        return [FingerprintKind(type=t, name=n) for t, n in sorted(kinds)]

    async def query_value_repo_groups(
        self,
        workspace_id: str,
        kind: str,
        name: str | None = None,
        by_name: bool = False,
        include_without: bool = False,
        without_name: str | None = None,
    ) -> list[ValueRepoGroup]:
        """
        Group the repositories in scope by the value they hold for a kind.

        Args:
            workspace_id: Workspace scope, or ``*`` for all
            kind: Fingerprint type
            name: Fingerprint name, only used when by_name is set
            by_name: Restrict to fingerprints with this exact name
            include_without: Add a group of repositories holding no matching fingerprint
            without_name: Name of that group, defaults to ``No {name or kind}``

        Returns:
            Value groups in first-seen order, each with its repositories;
            groups without repositories are omitted
        """

        def selected(fp: Fingerprint) -> bool:
            if fp.type != kind:
                return False
            return not by_name or fp.name == name

        groups: dict[tuple[str, str, str], ValueRepoGroup] = {}
        members: dict[tuple[str, str, str], set] = defaultdict(set)
        without: list[RepoLeaf] = []

        for analysis in self._in_scope(workspace_id):
            repo_key = _analysis_key(analysis)
            matched = False
            for fp in analysis.fingerprints:
                if not selected(fp):
                    continue
                matched = True
                group = groups.get(fp.value_key)
                if group is None:
                    group = ValueRepoGroup(
                        name=fp.display_value or fp.name,
                        type=fp.type,
                        sha=fp.sha,
                        data=fp.data,
                    )
                    groups[fp.value_key] = group
                if repo_key not in members[fp.value_key]:
                    members[fp.value_key].add(repo_key)
                    group.repos.append(_leaf(analysis))
            if not matched:
                without.append(_leaf(analysis))

        result = [group for group in groups.values() if group.repos]
        if include_without and without:
            result.append(
                ValueRepoGroup(
                    name=without_name or f"No {name if by_name and name else kind}",
                    type=kind,
                    sha=None,
                    repos=without,
                )
            )
        return result
