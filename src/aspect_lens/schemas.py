"""
Pydantic schemas for Aspect Lens data models.

Fingerprints, repository analyses, tags, scores, usage statistics and the
report shapes consumed by downstream renderers are all defined here so that
serialization stays consistent between the store, the engines and the CLI.

Report shapes (AspectReport, PlantedTree) are contracts: renderers read them
as produced by ``model_dump(mode="json", exclude_none=True)``.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Schema version written alongside persisted analyses
SCHEMA_VERSION = "1.0.0"

# Entropy (bits) below which a kind's values count as low / medium diversity
LOW_ENTROPY_CEILING = 1.0
MEDIUM_ENTROPY_CEILING = 2.0

WILDCARD = "*"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Severity(str, Enum):
    """Severity attached to a tag that signals something actionable."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class EntropyBand(str, Enum):
    """Coarse diversity classification of the values seen for a fingerprint kind."""

    ZERO = "zero"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_entropy(cls, entropy: float) -> "EntropyBand":
        """Classify a Shannon entropy (in bits) into a band."""
        if entropy <= 0:
            return cls.ZERO
        if entropy < LOW_ENTROPY_CEILING:
            return cls.LOW
        if entropy < MEDIUM_ENTROPY_CEILING:
            return cls.MEDIUM
        return cls.HIGH


class Fingerprint(BaseModel):
    """A named, content-hashed fact extracted about a repository."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., min_length=1, description="Name of the aspect that owns this kind")
    name: str = Field(..., min_length=1, description="Fingerprint name within the aspect")
    sha: str = Field(..., min_length=1, description="Content hash of the data")
    data: Any = Field(default=None, description="Opaque payload")
    display_name: str | None = Field(default=None, description="Human-readable name")
    display_value: str | None = Field(default=None, description="Human-readable value")
    path: str = Field(default="", description="Sub-project path, empty for the repository base")

    @property
    def kind(self) -> tuple[str, str]:
        """(type, name) identifying the fingerprint kind."""
        return (self.type, self.name)

    @property
    def value_key(self) -> tuple[str, str, str]:
        """(type, name, sha) identifying a distinct value of the kind."""
        return (self.type, self.name, self.sha)


class RepoRef(BaseModel):
    """Identity of an analyzed repository."""

    owner: str = Field(..., description="Owner or organization")
    repo: str = Field(..., description="Repository name")
    url: str = Field(default="", description="Browsable URL")
    sha: str | None = Field(default=None, description="Commit analyzed")
    path: str | None = Field(default=None, description="Path within the repository, if not the base")

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.repo}"


class AnalysisContext(BaseModel):
    """What an aspect knows about the run it is taking part in."""

    workspace_id: str = Field(default="local")
    repo: RepoRef | None = Field(default=None, description="Repository being analyzed, if known")


class ProjectAnalysis(BaseModel):
    """Output of the extraction/consolidation pipeline for one project."""

    fingerprints: list[Fingerprint] = Field(default_factory=list)


class RepoAnalysis(BaseModel):
    """A repository's persisted fingerprint set."""

    schema_version: str = Field(default=SCHEMA_VERSION)
    id: RepoRef
    workspace_id: str = Field(default="local", description="Workspace the repo belongs to")
    fingerprints: list[Fingerprint] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)


class RepoFilter(BaseModel):
    """Selects repositories from a store. ``*`` means every workspace."""

    workspace_id: str = Field(default=WILDCARD)
    owner: str | None = Field(default=None)

    def matches(self, analysis: RepoAnalysis) -> bool:
        if self.workspace_id != WILDCARD and analysis.workspace_id != self.workspace_id:
            return False
        if self.owner is not None and analysis.id.owner != self.owner:
            return False
        return True


class FingerprintKind(BaseModel):
    """A (type, name) pair present in a workspace."""

    type: str
    name: str


class FingerprintUsage(BaseModel):
    """Workspace-wide aggregate for one fingerprint kind."""

    type: str
    name: str
    entropy_band: EntropyBand
    entropy: float = Field(default=0.0, ge=0)
    variants: int = Field(default=0, ge=0, description="Distinct values seen")
    count: int = Field(default=0, ge=0, description="Repositories holding the kind")
    display_name: str | None = None


class AspectReportDetails(BaseModel):
    """Display and report metadata for a fingerprint kind."""

    category: str | None = None
    description: str | None = None
    short_name: str | None = None
    unit: str | None = None
    url: str | None = None
    manage: bool | None = None


class AspectMetadata(BaseModel):
    """Aspect metadata without its extraction or consolidation behaviour."""

    name: str
    display_name: str | None = None
    base_only: bool = False
    details: AspectReportDetails | None = None


class EntropyBands(BaseModel):
    """How many kinds of one type fall in each entropy band."""

    zero: int = 0
    low: int = 0
    medium: int = 0
    high: int = 0

    def dominance_key(self) -> tuple[int, int, int, int]:
        return (self.high, self.medium, self.low, self.zero)


class ReportDetail(BaseModel):
    """One aspect row in a category report."""

    name: str | None = None
    type: str
    description: str | None = None
    short_name: str | None = None
    unit: str | None = None
    url: str
    manage: bool = True
    order: int | None = Field(default=None, description="Rank by entropy-band dominance")
    entropy_bands: EntropyBands | None = None


class AspectReport(BaseModel):
    """Aspects grouped under one report category."""

    category: str
    count: int = Field(..., ge=0, description="Repositories with at least one kind in the category")
    aspects: list[ReportDetail] = Field(default_factory=list)


class Tag(BaseModel):
    """Static tag metadata."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    parent: str | None = Field(default=None, description="Name of parent tag")
    description: str | None = None
    severity: Severity | None = None


class TagAndScoreOptions(BaseModel):
    """Restricts which scorers run. ``*`` means every category."""

    category: str = Field(default=WILDCARD)


class ScoreContribution(BaseModel):
    """One scorer's opinion. A None score means the scorer does not apply."""

    name: str
    category: str | None = None
    weight: float = Field(default=1.0, gt=0)
    score: float | None = None
    description: str | None = None


class WeightedScore(BaseModel):
    """Weight-normalized mean of the applicable scorer outputs."""

    score: float | None = None
    weighted_scores: dict[str, ScoreContribution] = Field(default_factory=dict)


class ScoredRepo(BaseModel):
    """A repository with its derived tags and weighted score."""

    id: RepoRef
    workspace_id: str
    fingerprints: list[Fingerprint] = Field(default_factory=list)
    tags: list[Tag] = Field(default_factory=list)
    weighted_score: WeightedScore = Field(default_factory=WeightedScore)


class WorkspaceRepo(BaseModel):
    """An already-scored repository, as seen by workspace scorers."""

    url: str = ""
    owner: str
    repo: str
    score: float | None = None


class WorkspaceToScore(BaseModel):
    """Everything a workspace scorer is allowed to look at."""

    fingerprint_usage: list[FingerprintUsage] = Field(default_factory=list)
    repos: list[WorkspaceRepo] = Field(default_factory=list)


class RepoLeaf(BaseModel):
    """A repository holding a particular fingerprint value."""

    owner: str
    name: str
    url: str = ""
    size: int = Field(default=1, gt=0)


class ValueRepoGroup(BaseModel):
    """A distinct fingerprint value and the repositories holding it."""

    name: str
    type: str
    sha: str | None = Field(default=None, description="None for the group of repos without the kind")
    data: Any = None
    repos: list[RepoLeaf] = Field(default_factory=list)


class SunburstNode(BaseModel):
    """A sunburst node. Leaves carry a size, other nodes carry children."""

    name: str
    children: list["SunburstNode"] | None = None
    size: int | None = None
    type: str | None = None
    sha: str | None = None
    owner: str | None = None
    url: str | None = None

    @property
    def is_leaf(self) -> bool:
        return self.size is not None


SunburstNode.model_rebuild()


class Circle(BaseModel):
    """What one ring of a sunburst represents."""

    meaning: str


class PlantedTree(BaseModel):
    """A sunburst tree plus the meaning of each of its rings."""

    tree: SunburstNode
    circles: list[Circle]


class AspectUsage(BaseModel):
    """A registered aspect together with its workspace usage."""

    name: str
    display_name: str
    fingerprints: list[FingerprintUsage] = Field(default_factory=list)


class WorkspaceOverview(BaseModel):
    """Summary of which registered aspects were found in a workspace."""

    workspace_id: str
    projects_analyzed: int = Field(default=0, ge=0)
    important_aspects: list[AspectUsage] = Field(default_factory=list)
    unfound_aspects: list[AspectMetadata] = Field(default_factory=list)
    repos: list[RepoRef] = Field(default_factory=list)

    @field_validator("workspace_id")
    @classmethod
    def validate_workspace_id(cls, v: str) -> str:
        """Ensure a workspace id is present."""
        if not v.strip():
            raise ValueError("workspace_id must not be blank")
        return v
