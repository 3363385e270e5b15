"""
Extraction and consolidation pipeline.

Runs every aspect's extraction against a project concurrently, then each
aspect's consolidation one at a time in registration order. Each
consolidation stage sees everything produced before it, including the output
of earlier consolidation stages.
"""

import asyncio
import logging
from collections.abc import Sequence

from aspect_lens.aspects import Aspect, as_fingerprint_list
from aspect_lens.project import Project
from aspect_lens.schemas import AnalysisContext, Fingerprint, ProjectAnalysis

logger = logging.getLogger(__name__)


class ExtractionConsolidationPipeline:
    """Turns a project into its fingerprint set."""

    def __init__(self, aspects: Sequence[Aspect]):
        self.aspects = list(aspects)

    async def _extract_one(
        self,
        aspect: Aspect,
        project: Project,
        context: AnalysisContext,
    ) -> list[Fingerprint]:
        try:
            return as_fingerprint_list(await aspect.extract(project, context))
        except Exception as e:
            logger.warning(
                f"Extraction failed for aspect {aspect.name} on {project.id.key}: {e}",
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            return []

    async def _consolidate_one(
        self,
        aspect: Aspect,
        snapshot: tuple[Fingerprint, ...],
        context: AnalysisContext,
    ) -> list[Fingerprint]:
        try:
            return as_fingerprint_list(await aspect.consolidate(snapshot, context))
        except Exception as e:
            logger.warning(
                f"Consolidation failed for aspect {aspect.name}: {e}",
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            return []

    async def analyze(self, project: Project, context: AnalysisContext | None = None) -> ProjectAnalysis:
        """
        Extract and consolidate fingerprints for one project.

        Args:
            project: Project to analyze
            context: Workspace and repository of this run

        Returns:
            ProjectAnalysis with every fingerprint produced, not deduplicated
        """
        if context is None:
            context = AnalysisContext(repo=project.id)

        extracted = await asyncio.gather(
            *(self._extract_one(aspect, project, context) for aspect in self.aspects)
        )

        fingerprints: list[Fingerprint] = []
        for batch in extracted:
            fingerprints.extend(batch)
        logger.debug(f"Extracted {len(fingerprints)} fingerprints from {project.id.key}")

        for aspect in self.aspects:
            produced = await self._consolidate_one(aspect, tuple(fingerprints), context)
            if produced:
                logger.debug(f"Aspect {aspect.name} consolidated {len(produced)} fingerprints")
                fingerprints.extend(produced)

        return ProjectAnalysis(fingerprints=fingerprints)

    async def analyze_all(
        self,
        projects: Sequence[Project],
        workspace_id: str = "local",
    ) -> list[ProjectAnalysis]:
        """Analyze several projects concurrently, preserving input order."""
        return list(
            await asyncio.gather(
                *(
                    self.analyze(project, AnalysisContext(workspace_id=workspace_id, repo=project.id))
                    for project in projects
                )
            )
        )
