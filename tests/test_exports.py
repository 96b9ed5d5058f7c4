"""Tests for the spreadsheet and PDF exports of the aggregation grid."""

import io
import re

import pytest
from httpx import AsyncClient
from openpyxl import load_workbook

from qmstats.core.config import settings
from qmstats.reports.excel import XLSX_MEDIA_TYPE

_PAGE_OBJECT = re.compile(rb"/Type /Page\b")


def _sheet(content: bytes):
    return load_workbook(io.BytesIO(content)).active


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "view, data_rows",
    [
        ("summary", 4),
        ("mail", 4),
        ("file", 5),
        ("attachments", 3),
        ("rejects", 2),
    ],
)
async def test_excel_row_count_per_view(async_client: AsyncClient, admin, auth_headers, seeded, view, data_rows):
    """Row views emit one line per child row, the others one per stat."""
    resp = await async_client.get(
        "/api/aggregation/export/excel", params={"view": view}, headers=auth_headers(admin)
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"] == XLSX_MEDIA_TYPE
    assert resp.headers["content-disposition"].startswith(f'attachment; filename="qmstats-hive-{view}-')

    ws = _sheet(resp.content)
    assert ws.title == view.capitalize()
    assert ws.max_row == data_rows + 1


@pytest.mark.asyncio
async def test_excel_summary_cells(async_client: AsyncClient, admin, auth_headers, seeded):
    resp = await async_client.get("/api/admin/hive-stats/export/excel", headers=auth_headers(admin))
    ws = _sheet(resp.content)

    header = [c.value for c in ws[1]]
    assert header[:4] == ["Client", "Client Email", "Date", "Time"]
    assert ws["A1"].font.bold is True

    last = [c.value for c in ws[ws.max_row]]
    assert last[0] == "Ann Lee"
    assert last[3] == "09:00–10:00"
    assert last[4] == "1/1/1/1"
    assert last[5] == "1/1"
    assert last[6] == 1
    assert last[7] == "3/1/1/1"
    assert last[8] == "lead@corp.example"


@pytest.mark.asyncio
async def test_excel_rejects_view(async_client: AsyncClient, admin, auth_headers, seeded):
    resp = await async_client.get(
        "/api/aggregation/export/excel", params={"view": "rejects"}, headers=auth_headers(admin)
    )
    ws = _sheet(resp.content)
    header = [c.value for c in ws[1]]
    assert header == ["Value", "First", "Surname", "Email", "NATP", "RTD", "COI", "Reasons", "Date", "Time"]

    first = [c.value for c in ws[2]]
    assert first[:7] == [7, "Ann", "Lee", "ann@client.example", 1, 0, 0]
    assert first[7] == "Fees | No date"


@pytest.mark.asyncio
async def test_export_filters_apply(async_client: AsyncClient, admin, auth_headers, seeded):
    resp = await async_client.get(
        "/api/aggregation/export/excel",
        params={"view": "summary", "clientEmail": "other.example"},
        headers=auth_headers(admin),
    )
    ws = _sheet(resp.content)
    assert ws.max_row == 2
    assert ws["B2"].value == "bob_x@other.example"


@pytest.mark.asyncio
async def test_export_ignores_grid_page_size(async_client: AsyncClient, admin, auth_headers, seeded):
    resp = await async_client.get(
        "/api/aggregation/export/excel",
        params={"view": "summary", "page": 2, "pageSize": 1},
        headers=auth_headers(admin),
    )
    assert _sheet(resp.content).max_row == 5


@pytest.mark.asyncio
async def test_export_capped_at_max_rows(async_client: AsyncClient, admin, auth_headers, seeded, monkeypatch):
    monkeypatch.setattr(settings, "EXPORT_MAX_ROWS", 2)
    resp = await async_client.get("/api/aggregation/export/excel", headers=auth_headers(admin))
    assert _sheet(resp.content).max_row == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/aggregation/export/excel", "/api/aggregation/export/pdf"])
async def test_unknown_view_is_400(async_client: AsyncClient, admin, auth_headers, path):
    resp = await async_client.get(path, params={"view": "pivot"}, headers=auth_headers(admin))
    assert resp.status_code == 400
    assert "pivot" in resp.json()["error"]


@pytest.mark.asyncio
async def test_exports_require_admin(async_client: AsyncClient, make_user, auth_headers):
    user = await make_user("ann@example.com")
    for path in ("/api/aggregation/export/excel", "/api/aggregation/export/pdf"):
        assert (await async_client.get(path, headers=auth_headers(user))).status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("view", ["summary", "file", "attachments", "rejects", "mail"])
async def test_pdf_export_each_view(async_client: AsyncClient, admin, auth_headers, seeded, view):
    resp = await async_client.get(
        "/api/admin/hive-stats/export/pdf", params={"view": view}, headers=auth_headers(admin)
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.headers["content-disposition"].startswith(f'attachment; filename="qmstats-hive-{view}-')
    assert resp.content.startswith(b"%PDF")
    assert len(_PAGE_OBJECT.findall(resp.content)) == 1


@pytest.mark.asyncio
async def test_pdf_export_with_no_rows(async_client: AsyncClient, admin, auth_headers):
    resp = await async_client.get(
        "/api/aggregation/export/pdf", params={"view": "rejects"}, headers=auth_headers(admin)
    )
    assert resp.status_code == 200
    assert len(_PAGE_OBJECT.findall(resp.content)) == 1
