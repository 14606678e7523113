"""
Bevvi Order Dashboard
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.config import get_settings
from app.utils.cache import clear_cache
from app.utils.logger import log
from app import __version__

# Import routers
from app.api import assistant, auto_refresh, health, orders, reports
from app.scheduler import auto_refresh as auto_refresh_scheduler

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")
    log.info(f"Upstream order API: {settings.bevvi_api_url}")

    removed = clear_cache()
    log.info(f"Orders cache cleared on startup ({removed} entries)")

    yield

    # Shutdown
    auto_refresh_scheduler.shutdown()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Order tracking backend for the Bevvi dashboard

    - Orders for a date range from the Bevvi store transactions report
    - Revenue tiles, filtering and CSV export for the order table
    - Retailer fee reports (JSON, CSV, Excel)
    - Natural-language order assistant with optional Claude prompt parsing
    - Server-side auto-refresh of the last requested range
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(orders.router)
app.include_router(reports.router)
app.include_router(assistant.router)
app.include_router(auto_refresh.router)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "orders": "GET /api/orders?startDate=YYYY-MM-DD&endDate=YYYY-MM-DD",
            "orders_summary": "GET /api/orders/summary",
            "orders_csv": "GET /api/orders/export.csv",
            "clear_cache": "POST /api/cache/clear",
            "retailer_report": "GET /api/reports/retailers",
            "retailer_report_csv": "GET /api/reports/retailers.csv",
            "retailer_report_xlsx": "GET /api/reports/retailers.xlsx",
            "parse_prompt": "POST /api/parse-prompt",
            "assistant_query": "POST /api/assistant/query",
            "assistant_messages": "GET|DELETE /api/assistant/messages",
            "auto_refresh_start": "POST /api/auto-refresh/start",
            "auto_refresh_stop": "POST /api/auto-refresh/stop",
            "auto_refresh_status": "GET /api/auto-refresh/status",
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
