"""
Category reports.

Groups the fingerprint kinds found in a workspace by the report category of
their aspect, and ranks each aspect by how diverse its fingerprint values are
across the workspace.
"""

import asyncio
import logging
from collections.abc import Sequence

from aspect_lens.cache import InFlightMemo
from aspect_lens.registry import AspectRegistry, order_key
from aspect_lens.schemas import (
    AspectReport,
    AspectReportDetails,
    EntropyBand,
    EntropyBands,
    FingerprintUsage,
    RepoAnalysis,
    ReportDetail,
)

logger = logging.getLogger(__name__)

DEFAULT_URL_PREFIX = "/api/v1"


def entropy_band_counts(usages: Sequence[FingerprintUsage]) -> dict[str, EntropyBands]:
    """Per type, how many of its kinds fall in each entropy band."""
    counts: dict[str, EntropyBands] = {}
    for usage in usages:
        bands = counts.setdefault(usage.type, EntropyBands())
        band = EntropyBand(usage.entropy_band).value
        setattr(bands, band, getattr(bands, band) + 1)
    return counts


def entropy_order(counts: dict[str, EntropyBands]) -> dict[str, int]:
    """
    Rank types by entropy-band dominance.

    Types with more high-entropy kinds rank first, ties broken by medium, then
    low, then zero counts, then by type name.
    """
    ranked = sorted(counts, key=lambda t: (tuple(-n for n in counts[t].dominance_key()), t))
    return {type_: i for i, type_ in enumerate(ranked)}


def default_details_url(type: str) -> str:
    return f"fingerprint/{type}/*"


async def get_aspect_reports(
    repos: Sequence[RepoAnalysis],
    usages: Sequence[FingerprintUsage],
    registry: AspectRegistry,
    workspace_id: str,
    url_prefix: str = DEFAULT_URL_PREFIX,
) -> list[AspectReport]:
    """
    Build one report per category present in the given repositories.

    Args:
        repos: Repositories with their fingerprints
        usages: Workspace usage statistics for the fingerprint kinds
        registry: Source of aspects, report details and display order
        workspace_id: Workspace the report is for, used in detail URLs
        url_prefix: Prefix of detail URLs

    Returns:
        Reports ordered by category registration order, unregistered
        categories last by name
    """
    memo: InFlightMemo[str, AspectReportDetails] = InFlightMemo()

    async def details_of(type: str) -> AspectReportDetails:
        async def lookup() -> AspectReportDetails:
            return await registry.report_details_of(type, workspace_id) or AspectReportDetails()

        return await memo.get(type, lookup)

    # One request per fingerprint; the memo collapses them to one lookup per type
    requested = [fp.type for repo in repos for fp in repo.fingerprints]
    resolved = await asyncio.gather(*(details_of(t) for t in requested))
    details = dict(zip(requested, resolved))

    band_counts = entropy_band_counts(usages)
    orders = entropy_order(band_counts)

    # category -> types in first-seen order, category -> repos holding it
    category_types: dict[str, list[str]] = {}
    category_repos: dict[str, set[str]] = {}
    for repo in repos:
        repo_key = f"{repo.workspace_id}/{repo.id.key}/{repo.id.path or ''}"
        for fp in repo.fingerprints:
            category = details[fp.type].category
            if not category:
                continue
            types_in_category = category_types.setdefault(category, [])
            if fp.type not in types_in_category:
                types_in_category.append(fp.type)
            category_repos.setdefault(category, set()).add(repo_key)

    reports = []
    for category, category_type_list in category_types.items():
        aspect_details = []
        for type_ in sorted(category_type_list, key=lambda t: order_key(registry.aspect_order(t), t)):
            rd = details[type_]
            aspect = registry.aspect_of(type_)
            aspect_details.append(
                ReportDetail(
                    name=aspect.display_name if aspect is not None else None,
                    type=aspect.name if aspect is not None else type_,
                    description=rd.description,
                    short_name=rd.short_name,
                    unit=rd.unit,
                    url=f"{url_prefix}/{workspace_id}/{rd.url or default_details_url(type_)}",
                    manage=rd.manage if rd.manage is not None else True,
                    order=orders.get(type_),
                    entropy_bands=band_counts.get(type_),
                )
            )
        reports.append(
            AspectReport(
                category=category,
                count=len(category_repos[category]),
                aspects=aspect_details,
            )
        )

    reports.sort(key=lambda r: order_key(registry.category_order(r.category), r.category))
    logger.debug(f"Built {len(reports)} category reports for workspace {workspace_id}")
    return reports
