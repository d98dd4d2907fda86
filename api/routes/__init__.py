"""
Route package initialization.
"""
from .cron import router as cron_router
from .export import router as export_router
from .scrape import router as scrape_router

__all__ = ["cron_router", "export_router", "scrape_router"]
