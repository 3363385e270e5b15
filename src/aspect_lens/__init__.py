"""
Aspect Lens - Aggregate repository fingerprints into actionable summaries.

A library and CLI that:
1. Extracts fingerprints from repositories through pluggable aspects
2. Tags and scores repositories from their fingerprints
3. Groups fingerprint kinds into category reports with entropy bands
4. Builds validated drill-down trees of fingerprint values and repositories
"""

__version__ = "1.0.0"
__author__ = "Aspect Lens Contributors"

from aspect_lens.schemas import (
    SCHEMA_VERSION,
    AspectReport,
    AspectReportDetails,
    EntropyBand,
    Fingerprint,
    FingerprintUsage,
    PlantedTree,
    RepoAnalysis,
    RepoRef,
    ScoredRepo,
    Tag,
    WeightedScore,
)

__all__ = [
    "__version__",
    "SCHEMA_VERSION",
    "AspectReport",
    "AspectReportDetails",
    "EntropyBand",
    "Fingerprint",
    "FingerprintUsage",
    "PlantedTree",
    "RepoAnalysis",
    "RepoRef",
    "ScoredRepo",
    "Tag",
    "WeightedScore",
]
