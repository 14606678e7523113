"""
Order endpoints for the dashboard

- Orders for a date range (validated, cached, chunked for long spans)
- Filtered/sorted table data with revenue tiles
- CSV export
- Cache reset
"""
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, Response
from typing import List, Optional

from app.scheduler import auto_refresh
from app.services.dashboard_service import filter_orders, revenue_tiles, sort_orders
from app.services.export_service import orders_to_csv
from app.services.order_service import InvalidDateRangeError, order_service
from app.utils.logger import log

router = APIRouter(prefix="/api", tags=["orders"])


def _internal_error(e: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={
        "success": False,
        "error": "Internal server error",
        "message": str(e),
    })


async def _load(start_date: Optional[str], end_date: Optional[str]):
    """Validate and load; returns the fetch result or an error response."""
    try:
        order_service.validate_range(start_date, end_date)
    except InvalidDateRangeError as e:
        log.warning(f"Rejected order request {start_date} to {end_date}: {e}")
        return None, JSONResponse(status_code=e.status_code, content=e.payload)

    fetched = await order_service.load_orders(start_date, end_date)
    return fetched, None


@router.get("/orders")
async def get_orders(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """
    Orders for [startDate, endDate].

    Upstream failures come back as HTTP 200 with success=false and the
    upstream status/error; no sample data is substituted.
    """
    try:
        fetched, error = await _load(start_date, end_date)
        if error is not None:
            return error

        auto_refresh.update_range(start_date, end_date)
        return fetched.to_response()

    except Exception as e:
        log.error(f"Error fetching orders: {str(e)}")
        return _internal_error(e)


@router.get("/orders/summary")
async def get_orders_summary(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    status: Optional[List[str]] = Query(None),
    delivery: Optional[List[str]] = Query(None),
    search: Optional[str] = None,
    sort: Optional[str] = None,
    direction: str = "asc",
):
    """Filtered, sorted orders plus the revenue tiles over the filtered set."""
    try:
        fetched, error = await _load(start_date, end_date)
        if error is not None:
            return error
        if not fetched.success:
            return fetched.to_response()

        filtered = filter_orders(
            fetched.orders,
            statuses=status,
            delivery_windows=delivery,
            search=search,
            range_start=start_date,
            range_end=end_date,
        )
        if sort:
            filtered = sort_orders(filtered, sort, direction)

        return {
            "success": True,
            "dateRange": fetched.date_range,
            "summary": revenue_tiles(filtered),
            "data": [order.to_dict() for order in filtered],
            "totalOrders": len(filtered),
        }

    except Exception as e:
        log.error(f"Error building order summary: {str(e)}")
        return _internal_error(e)


@router.get("/orders/export.csv")
async def export_orders_csv(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """Download the orders of a range as CSV."""
    try:
        fetched, error = await _load(start_date, end_date)
        if error is not None:
            return error
        if not fetched.success:
            return fetched.to_response()

        filename = f"orders-{start_date}-to-{end_date}.csv"
        return Response(
            content=orders_to_csv(fetched.orders),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    except Exception as e:
        log.error(f"Error exporting orders: {str(e)}")
        return _internal_error(e)


@router.post("/cache/clear")
async def clear_cache():
    previous_size = order_service.clear_cache()
    return {
        "success": True,
        "message": f"Cache cleared successfully. {previous_size} entries removed.",
        "previousSize": previous_size,
    }
