"""
Projects that aspects extract fingerprints from.

A project is anything exposing a file listing and file contents. Two
implementations are provided: a directory on disk and an in-memory mapping.
"""

import fnmatch
import os
import subprocess
from pathlib import Path
from typing import Protocol, runtime_checkable

from aspect_lens.schemas import RepoRef

DEFAULT_EXCLUDED_DIRS: list[str] = [
    "node_modules",
    "dist",
    "build",
    ".next",
    ".git",
    "coverage",
    "vendor",
    "__pycache__",
    "target",
    ".venv",
    "venv",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
    "*.egg-info",
]

DEFAULT_MAX_FILE_SIZE_BYTES = 1_000_000


@runtime_checkable
class Project(Protocol):
    """Read-only view of a repository's files."""

    @property
    def id(self) -> RepoRef:
        ...

    def list_files(self) -> list[str]:
        ...

    def has_file(self, path: str) -> bool:
        ...

    def read_file(self, path: str) -> str | None:
        ...


def should_exclude_path(rel_path: Path, excluded_dirs: list[str]) -> bool:
    """
    Check if a relative path falls under an excluded directory pattern.

    Args:
        rel_path: Path relative to the project root
        excluded_dirs: Glob patterns matched against each path component

    Returns:
        True if path should be excluded
    """
    for part in rel_path.parts:
        for pattern in excluded_dirs:
            if fnmatch.fnmatch(part, pattern):
                return True
    return False


def get_git_commit(repo_path: Path) -> str | None:
    """Return the HEAD commit hash, or None if this is not a git checkout."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=repo_path,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


class LocalProject:
    """A project rooted at a directory on disk."""

    def __init__(
        self,
        root: Path,
        owner: str = "local",
        excluded_dirs: list[str] | None = None,
        max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES,
    ):
        root = Path(root).resolve()
        if not root.is_dir():
            raise ValueError(f"Project path is not a directory: {root}")
        self.root = root
        self.excluded_dirs = excluded_dirs if excluded_dirs is not None else DEFAULT_EXCLUDED_DIRS
        self.max_file_size_bytes = max_file_size_bytes
        self._id = RepoRef(
            owner=owner,
            repo=root.name,
            url=root.as_uri(),
            sha=get_git_commit(root),
        )
        self._files: list[str] | None = None
        self._file_set: set[str] = set()

    @property
    def id(self) -> RepoRef:
        return self._id

    def list_files(self) -> list[str]:
        if self._files is not None:
            return self._files

        files: list[str] = []
        for current, dirs, filenames in os.walk(self.root):
            current_path = Path(current)
            rel_dir = current_path.relative_to(self.root)
            # Prune excluded directories in-place
            dirs[:] = sorted(d for d in dirs if not should_exclude_path(rel_dir / d, self.excluded_dirs))
            for filename in sorted(filenames):
                file_path = current_path / filename
                try:
                    if file_path.stat().st_size > self.max_file_size_bytes:
                        continue
                except OSError:
                    continue
                files.append((rel_dir / filename).as_posix())

        self._files = files
        self._file_set = set(files)
        return files

    def has_file(self, path: str) -> bool:
        self.list_files()
        return path in self._file_set

    def read_file(self, path: str) -> str | None:
        if not self.has_file(path):
            return None
        try:
            return (self.root / path).read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None


class InMemoryProject:
    """A project whose files are held in a dict of path to content."""

    def __init__(self, files: dict[str, str] | None = None, owner: str = "local", repo: str = "in-memory"):
        self.files = dict(files or {})
        self._id = RepoRef(owner=owner, repo=repo)

    @classmethod
    def of(cls, *files: tuple[str, str], owner: str = "local", repo: str = "in-memory") -> "InMemoryProject":
        """Build a project from (path, content) pairs."""
        return cls(dict(files), owner=owner, repo=repo)

    @property
    def id(self) -> RepoRef:
        return self._id

    def list_files(self) -> list[str]:
        return sorted(self.files)

    def has_file(self, path: str) -> bool:
        return path in self.files

    def read_file(self, path: str) -> str | None:
        return self.files.get(path)
