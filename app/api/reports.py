"""
Retailer fee reports: JSON summary, CSV download and Excel workbook
"""
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, Response
from typing import Optional

from app.services.export_service import (
    build_retailer_workbook,
    retailer_summary_csv,
    retailer_summary_filename,
)
from app.services.fee_service import summarize_by_retailer
from app.services.order_service import InvalidDateRangeError, order_service
from app.utils.logger import log

router = APIRouter(prefix="/api/reports", tags=["reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


async def _orders_for(start_date: Optional[str], end_date: Optional[str]):
    try:
        order_service.validate_range(start_date, end_date)
    except InvalidDateRangeError as e:
        return None, JSONResponse(status_code=e.status_code, content=e.payload)

    fetched = await order_service.load_orders(start_date, end_date)
    if not fetched.success:
        return None, JSONResponse(status_code=200, content=fetched.to_response())
    return fetched.orders, None


@router.get("/retailers")
async def retailer_report(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    sort: str = "gmv",
    direction: str = "desc",
):
    """GMV, service fee and retailer fee per retailer (accepted orders only)."""
    orders, error = await _orders_for(start_date, end_date)
    if error is not None:
        return error

    rows, totals = summarize_by_retailer(orders, start_date, end_date, sort, direction)
    return {
        "success": True,
        "dateRange": {"startDate": start_date, "endDate": end_date},
        "retailers": rows,
        "totals": totals,
    }


@router.get("/retailers.csv")
async def retailer_report_csv(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    sort: str = "gmv",
    direction: str = "desc",
):
    orders, error = await _orders_for(start_date, end_date)
    if error is not None:
        return error

    rows, totals = summarize_by_retailer(orders, start_date, end_date, sort, direction)
    filename = retailer_summary_filename(start_date, end_date)
    return Response(
        content=retailer_summary_csv(rows, totals),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/retailers.xlsx")
async def retailer_report_xlsx(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    retailer: Optional[str] = None,
):
    """Excel workbook for all retailers, or a single one."""
    orders, error = await _orders_for(start_date, end_date)
    if error is not None:
        return error

    try:
        content, filename = build_retailer_workbook(orders, start_date, end_date, retailer)
    except ValueError as e:
        log.warning(f"Retailer workbook not built: {e}")
        return JSONResponse(status_code=404, content={"success": False, "error": str(e)})

    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
