"""
Built-in aspects, taggers and scorers.

Aspects:
- language: languages present, by file extension
- package-managers: package managers present, by manifest and lock files
- dependency: one fingerprint per declared dependency, per manifest path
- framework: frameworks derived from dependency fingerprints by consolidation
- ci: continuous integration systems configured
"""

import json
import logging
import re
import tomllib
from collections import defaultdict
from pathlib import PurePosixPath
from typing import Any

from aspect_lens.aspects import Aspect, FingerprintResult, fingerprint_of
from aspect_lens.project import Project
from aspect_lens.schemas import (
    AnalysisContext,
    AspectReportDetails,
    Fingerprint,
    RepoAnalysis,
    Severity,
    WorkspaceToScore,
)
from aspect_lens.scoring import RepositoryScorer, WorkspaceScorer
from aspect_lens.store import FingerprintStore
from aspect_lens.taggers import TagTest, Tagger, WorkspaceSpecificTagger

logger = logging.getLogger(__name__)

LANGUAGE_TYPE = "language"
PACKAGE_MANAGER_TYPE = "package-managers"
DEPENDENCY_TYPE = "dependency"
FRAMEWORK_TYPE = "framework"
CI_TYPE = "ci"

# Language detection by extension
EXTENSION_TO_LANGUAGE: dict[str, str] = {
    "py": "Python",
    "js": "JavaScript",
    "jsx": "JavaScript",
    "mjs": "JavaScript",
    "ts": "TypeScript",
    "tsx": "TypeScript",
    "java": "Java",
    "go": "Go",
    "rs": "Rust",
    "c": "C",
    "h": "C",
    "cpp": "C++",
    "cc": "C++",
    "hpp": "C++",
    "cs": "C#",
    "rb": "Ruby",
    "php": "PHP",
    "swift": "Swift",
    "kt": "Kotlin",
    "scala": "Scala",
    "sh": "Shell",
    "ex": "Elixir",
    "exs": "Elixir",
    "dart": "Dart",
}

# Package manager detection
PACKAGE_MANAGER_FILES: dict[str, str] = {
    "package-lock.json": "npm",
    "yarn.lock": "yarn",
    "pnpm-lock.yaml": "pnpm",
    "requirements.txt": "pip",
    "Pipfile": "pipenv",
    "poetry.lock": "poetry",
    "uv.lock": "uv",
    "Cargo.toml": "cargo",
    "go.mod": "go modules",
    "Gemfile": "bundler",
    "composer.json": "composer",
    "pom.xml": "maven",
    "build.gradle": "gradle",
    "build.gradle.kts": "gradle",
    "mix.exs": "mix",
    "pubspec.yaml": "pub",
}

# Framework detection by dependency, keyed by framework name
FRAMEWORK_DEPENDENCIES: dict[str, list[str]] = {
    "Django": ["pypi:django"],
    "Flask": ["pypi:flask"],
    "FastAPI": ["pypi:fastapi"],
    "SQLAlchemy": ["pypi:sqlalchemy"],
    "Pytest": ["pypi:pytest"],
    "React": ["npm:react"],
    "Next.js": ["npm:next"],
    "Vue.js": ["npm:vue"],
    "Angular": ["npm:@angular/core"],
    "Express": ["npm:express"],
    "NestJS": ["npm:@nestjs/core"],
    "Jest": ["npm:jest"],
    "Vitest": ["npm:vitest"],
    "Prisma": ["npm:@prisma/client", "npm:prisma"],
}

# CI detection by path prefix
CI_FILES: dict[str, str] = {
    ".github/workflows/": "GitHub Actions",
    ".gitlab-ci.yml": "GitLab CI",
    ".circleci/config.yml": "CircleCI",
    "Jenkinsfile": "Jenkins",
    ".travis.yml": "Travis CI",
    "azure-pipelines.yml": "Azure Pipelines",
}

_REQUIREMENT_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)(?:\[[^\]]*\])?\s*(.*)$")
_EXACT_VERSION_RE = re.compile(r"^(==\s*)?v?\d+(\.\d+)*$")


def _manifest_path(file_path: str) -> str:
    parent = PurePosixPath(file_path).parent.as_posix()
    return "" if parent == "." else parent


def parse_requirement(line: str) -> tuple[str, str] | None:
    """Split a PEP 508 requirement into a normalized name and version spec."""
    line = line.split("#", 1)[0].split(";", 1)[0].strip()
    if not line or line.startswith("-"):
        return None
    match = _REQUIREMENT_RE.match(line)
    if not match:
        return None
    name = re.sub(r"[-_.]+", "-", match.group(1)).lower()
    return name, match.group(2).strip()


def parse_package_json(content: str) -> dict[str, str]:
    try:
        pkg = json.loads(content)
    except json.JSONDecodeError as e:
        logger.debug(f"Ignoring unparseable package.json: {e}")
        return {}
    deps: dict[str, str] = {}
    for section in ("dependencies", "devDependencies"):
        value = pkg.get(section) if isinstance(pkg, dict) else None
        if isinstance(value, dict):
            deps.update({str(k): str(v) for k, v in value.items()})
    return deps


def parse_requirements_txt(content: str) -> dict[str, str]:
    deps: dict[str, str] = {}
    for line in content.splitlines():
        parsed = parse_requirement(line)
        if parsed:
            deps[parsed[0]] = parsed[1]
    return deps


def parse_pyproject(content: str) -> dict[str, str]:
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        logger.debug(f"Ignoring unparseable pyproject.toml: {e}")
        return {}
    deps: dict[str, str] = {}
    for requirement in data.get("project", {}).get("dependencies", []):
        parsed = parse_requirement(str(requirement))
        if parsed:
            deps[parsed[0]] = parsed[1]
    return deps


# Manifest file name -> (ecosystem, parser)
MANIFEST_PARSERS = {
    "package.json": ("npm", parse_package_json),
    "requirements.txt": ("pypi", parse_requirements_txt),
    "pyproject.toml": ("pypi", parse_pyproject),
}


def is_exact_version(version: str) -> bool:
    return bool(_EXACT_VERSION_RE.match(version.strip()))


class LanguagesAspect(Aspect):
    """Languages present in a project."""

    @property
    def name(self) -> str:
        return LANGUAGE_TYPE

    @property
    def display_name(self) -> str:
        return "Languages"

    @property
    def base_only(self) -> bool:
        return True

    @property
    def details(self) -> AspectReportDetails:
        return AspectReportDetails(
            category="Stack",
            description="Programming languages by file extension",
            short_name="languages",
            unit="language set",
        )

    async def extract(self, project: Project, context: AnalysisContext) -> FingerprintResult:
        languages = set()
        for path in project.list_files():
            ext = PurePosixPath(path).suffix.lstrip(".").lower()
            if ext in EXTENSION_TO_LANGUAGE:
                languages.add(EXTENSION_TO_LANGUAGE[ext])
        if not languages:
            return None
        data = sorted(languages)
        return fingerprint_of(LANGUAGE_TYPE, data, display_name="Languages", display_value=", ".join(data))


class PackageManagerAspect(Aspect):
    """Package managers in use, detected from manifests and lock files."""

    @property
    def name(self) -> str:
        return PACKAGE_MANAGER_TYPE

    @property
    def display_name(self) -> str:
        return "Package managers"

    @property
    def details(self) -> AspectReportDetails:
        return AspectReportDetails(category="Stack", description="Package managers in use", short_name="managers")

    async def extract(self, project: Project, context: AnalysisContext) -> FingerprintResult:
        managers = {
            PACKAGE_MANAGER_FILES[PurePosixPath(path).name]
            for path in project.list_files()
            if PurePosixPath(path).name in PACKAGE_MANAGER_FILES
        }
        if not managers:
            return None
        data = sorted(managers)
        return fingerprint_of(PACKAGE_MANAGER_TYPE, data, display_value=", ".join(data))


class DependencyAspect(Aspect):
    """
    Declared dependencies.

    One fingerprint per dependency per manifest, named ``{ecosystem}:{package}``
    with the declared version spec as its value. Manifests below the
    repository root produce fingerprints with that directory as their path.
    """

    @property
    def name(self) -> str:
        return DEPENDENCY_TYPE

    @property
    def display_name(self) -> str:
        return "Dependencies"

    @property
    def details(self) -> AspectReportDetails:
        return AspectReportDetails(
            category="Dependencies",
            description="Declared library dependencies and their versions",
            short_name="deps",
            unit="version",
            url=f"fingerprint/{DEPENDENCY_TYPE}/*",
        )

    async def extract(self, project: Project, context: AnalysisContext) -> FingerprintResult:
        fingerprints: list[Fingerprint] = []
        for path in project.list_files():
            manifest = MANIFEST_PARSERS.get(PurePosixPath(path).name)
            if manifest is None:
                continue
            ecosystem, parse = manifest
            content = project.read_file(path)
            if content is None:
                continue
            for package, version in sorted(parse(content).items()):
                fingerprints.append(
                    fingerprint_of(
                        DEPENDENCY_TYPE,
                        {"ecosystem": ecosystem, "name": package, "version": version},
                        name=f"{ecosystem}:{package}",
                        display_name=package,
                        display_value=version or "*",
                        path=_manifest_path(path),
                    )
                )
        return fingerprints


class FrameworkAspect(Aspect):
    """Frameworks, derived from dependency fingerprints."""

    @property
    def name(self) -> str:
        return FRAMEWORK_TYPE

    @property
    def display_name(self) -> str:
        return "Frameworks"

    @property
    def details(self) -> AspectReportDetails:
        return AspectReportDetails(
            category="Dependencies",
            description="Frameworks detected from dependencies",
            short_name="frameworks",
            unit="version",
        )

    async def consolidate(
        self,
        fingerprints: tuple[Fingerprint, ...],
        context: AnalysisContext,
    ) -> FingerprintResult:
        by_dependency: dict[str, list[Fingerprint]] = defaultdict(list)
        for fp in fingerprints:
            if fp.type == DEPENDENCY_TYPE:
                by_dependency[fp.name].append(fp)

        produced = []
        for framework, dependencies in FRAMEWORK_DEPENDENCIES.items():
            for dependency in dependencies:
                for dep_fp in by_dependency.get(dependency, []):
                    version = dep_fp.data.get("version", "") if isinstance(dep_fp.data, dict) else ""
                    produced.append(
                        fingerprint_of(
                            FRAMEWORK_TYPE,
                            {"framework": framework, "version": version},
                            name=framework.lower(),
                            display_name=framework,
                            display_value=version or "*",
                            path=dep_fp.path,
                        )
                    )
        return produced


class CiAspect(Aspect):
    """Continuous integration systems configured in a project."""

    @property
    def name(self) -> str:
        return CI_TYPE

    @property
    def display_name(self) -> str:
        return "Continuous integration"

    @property
    def base_only(self) -> bool:
        return True

    @property
    def details(self) -> AspectReportDetails:
        return AspectReportDetails(category="Delivery", description="CI systems configured", short_name="ci")

    async def extract(self, project: Project, context: AnalysisContext) -> FingerprintResult:
        systems = set()
        for path in project.list_files():
            for prefix, system in CI_FILES.items():
                if path == prefix or (prefix.endswith("/") and path.startswith(prefix)):
                    systems.add(system)
        if not systems:
            return None
        data = sorted(systems)
        return fingerprint_of(CI_TYPE, data, display_value=", ".join(data))


def builtin_aspects() -> list[Aspect]:
    # Consolidating aspects come after the aspects they read
    return [LanguagesAspect(), PackageManagerAspect(), DependencyAspect(), FrameworkAspect(), CiAspect()]


# --- Taggers ---


def fingerprints_of_type(repo: RepoAnalysis, type: str) -> list[Fingerprint]:
    return [fp for fp in repo.fingerprints if fp.type == type]


def language_tagger(language: str) -> Tagger:
    """Tag repositories using a language."""

    def test(repo: RepoAnalysis) -> bool:
        return any(language in (fp.data or []) for fp in fingerprints_of_type(repo, LANGUAGE_TYPE))

    return Tagger(name=language.lower(), test=test, parent="language", description=f"Uses {language}")


def no_ci_tagger() -> Tagger:
    return Tagger(
        name="no-ci",
        test=lambda repo: not fingerprints_of_type(repo, CI_TYPE),
        description="No continuous integration configured",
        severity=Severity.WARN,
    )


def monorepo_tagger() -> Tagger:
    return Tagger(
        name="monorepo",
        test=lambda repo: len({fp.path for fp in fingerprints_of_type(repo, DEPENDENCY_TYPE)}) > 1,
        description="Declares dependencies in more than one project directory",
    )


def version_drift_tagger(store: FingerprintStore) -> WorkspaceSpecificTagger:
    """
    Tag repositories holding a dependency that has several versions in the workspace.

    The set of drifting dependencies is computed once per workspace.
    """

    async def create_test(workspace_id: str, registry: Any) -> TagTest:
        usages = await store.fingerprint_usage(DEPENDENCY_TYPE, workspace_id)
        drifting = {u.name for u in usages if u.variants > 1}
        logger.debug(f"{len(drifting)} drifting dependencies in workspace {workspace_id}")

        def test(repo: RepoAnalysis) -> bool:
            return any(fp.name in drifting for fp in fingerprints_of_type(repo, DEPENDENCY_TYPE))

        return test

    return WorkspaceSpecificTagger(
        name="version-drift",
        create_test=create_test,
        description="Uses a dependency at a version that differs elsewhere in the workspace",
        severity=Severity.WARN,
    )


def builtin_taggers() -> list[Tagger]:
    languages = ["Python", "TypeScript", "JavaScript", "Go", "Rust", "Java"]
    return [*(language_tagger(language) for language in languages), no_ci_tagger(), monorepo_tagger()]


# --- Scorers ---


def score_ci(repo: RepoAnalysis) -> float:
    return 100.0 if fingerprints_of_type(repo, CI_TYPE) else 0.0


def score_dependency_count(repo: RepoAnalysis) -> float | None:
    """Full marks up to 25 dependencies, losing 2 points per dependency after that."""
    count = len(fingerprints_of_type(repo, DEPENDENCY_TYPE))
    if count == 0:
        return None
    return max(0.0, 100.0 - max(0, count - 25) * 2.0)


def score_pinned_dependencies(repo: RepoAnalysis) -> float | None:
    dependencies = fingerprints_of_type(repo, DEPENDENCY_TYPE)
    if not dependencies:
        return None
    pinned = sum(
        1 for fp in dependencies if isinstance(fp.data, dict) and is_exact_version(str(fp.data.get("version", "")))
    )
    return 100.0 * pinned / len(dependencies)


def builtin_repository_scorers() -> list[RepositoryScorer]:
    return [
        RepositoryScorer(
            name="ci-configured",
            score_fingerprints=score_ci,
            category="delivery",
            description="Continuous integration is configured",
            base_only=True,
        ),
        RepositoryScorer(
            name="dependency-count",
            score_fingerprints=score_dependency_count,
            category="dependencies",
            description="Projects do not declare an excessive number of dependencies",
        ),
        RepositoryScorer(
            name="pinned-dependencies",
            score_fingerprints=score_pinned_dependencies,
            category="dependencies",
            description="Share of dependencies pinned to an exact version",
            score_all=True,
        ),
    ]


def score_version_consistency(summary: WorkspaceToScore) -> float | None:
    dependencies = [u for u in summary.fingerprint_usage if u.type == DEPENDENCY_TYPE]
    if not dependencies:
        return None
    consistent = sum(1 for u in dependencies if u.variants <= 1)
    return 100.0 * consistent / len(dependencies)


def score_mean_repo(summary: WorkspaceToScore) -> float | None:
    scores = [r.score for r in summary.repos if r.score is not None]
    if not scores:
        return None
    return sum(scores) / len(scores)


def builtin_workspace_scorers() -> list[WorkspaceScorer]:
    return [
        WorkspaceScorer(
            name="version-consistency",
            score=score_version_consistency,
            category="dependencies",
            description="Share of dependencies used at a single version across the workspace",
        ),
        WorkspaceScorer(
            name="mean-repo-score",
            score=score_mean_repo,
            description="Mean score of the workspace's scored repositories",
        ),
    ]
