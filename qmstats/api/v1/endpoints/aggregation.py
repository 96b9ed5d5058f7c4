"""
Admin aggregation grid and its exports.

The grid is paginated; exports reuse the same filters but read a single
window of up to ``EXPORT_MAX_ROWS`` stats.  The ``/admin/hive...`` paths
are kept as aliases for older clients.
"""

from __future__ import annotations

import io
import logging
import time

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from qmstats.api.v1.deps import Principal, get_db, require_admin
from qmstats.reports.excel import XLSX_MEDIA_TYPE, render_workbook
from qmstats.reports.hive_pdf import render_hive_pdf
from qmstats.reports.views import needs_details, normalise_view
from qmstats.schemas.aggregation import AggregationResponse
from qmstats.services.aggregation import AggregationFilters, run_aggregation

logger = logging.getLogger(__name__)

router = APIRouter(tags=["aggregation"])


async def _export_rows(db: AsyncSession, request: Request, view: str) -> tuple[AggregationFilters, list[dict]]:
    filters = AggregationFilters.from_query(request.query_params).for_export(needs_details(view))
    result = await run_aggregation(db, filters)
    if result["total"] > len(result["stats"]):
        logger.warning(
            "Export truncated to %d of %d stats", len(result["stats"]), result["total"]
        )
    return filters, result["stats"]


def _attachment(content: bytes, media_type: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get(
    "/aggregation",
    response_model=AggregationResponse,
    response_model_exclude_unset=True,
)
@router.get(
    "/admin/hive-stats",
    response_model=AggregationResponse,
    response_model_exclude_unset=True,
    include_in_schema=False,
)
@router.get(
    "/admin/hive/stats",
    response_model=AggregationResponse,
    response_model_exclude_unset=True,
    include_in_schema=False,
)
async def aggregation_grid(
    request: Request,
    db: AsyncSession = Depends(get_db),
    _admin: Principal = Depends(require_admin),
) -> dict:
    """Paginated aggregate of every user's stats.

    Query: ``q``, ``from``, ``to``, ``clientEmail``, ``leaderEmail``,
    ``page``, ``pageSize`` (clamped to 1..MAX_PAGE_SIZE) and
    ``includeDetails``.  Malformed values fall back to defaults.
    """
    return await run_aggregation(db, AggregationFilters.from_query(request.query_params))


@router.get("/aggregation/export/excel")
@router.get("/admin/hive-stats/export/excel", include_in_schema=False)
async def export_excel(
    request: Request,
    view: str | None = Query(default="summary"),
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
) -> StreamingResponse:
    view = normalise_view(view)
    _filters, stats = await _export_rows(db, request, view)
    content = render_workbook(view, stats)
    logger.info("Excel export (%s, %d stats) by %s", view, len(stats), admin.email)
    return _attachment(
        content, XLSX_MEDIA_TYPE, f"qmstats-hive-{view}-{int(time.time() * 1000)}.xlsx"
    )


@router.get("/aggregation/export/pdf")
@router.get("/admin/hive-stats/export/pdf", include_in_schema=False)
async def export_pdf(
    request: Request,
    view: str | None = Query(default="summary"),
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
) -> StreamingResponse:
    view = normalise_view(view)
    filters, stats = await _export_rows(db, request, view)
    content = render_hive_pdf(view, stats, filters.describe())
    logger.info("PDF export (%s, %d stats) by %s", view, len(stats), admin.email)
    return _attachment(
        content, "application/pdf", f"qmstats-hive-{view}-{int(time.time() * 1000)}.pdf"
    )
