"""
Finance Tracker: FastAPI Application.

This is the entry point for the application.
All routers are registered here.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from finance_tracker.config import get_settings
from finance_tracker.api.health import router as health_router
from finance_tracker.api.users import router as users_router
from finance_tracker.api.accounts import router as accounts_router
from finance_tracker.api.categories import router as categories_router
from finance_tracker.api.transactions import router as transactions_router
from finance_tracker.api.recurring import router as recurring_router

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-account finance tracker with running balances and recurring payments",
    debug=settings.DEBUG,
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log the traceback and return a generic 500 without internal detail."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Register routers
app.include_router(health_router)
app.include_router(users_router)
app.include_router(accounts_router)
app.include_router(categories_router)
app.include_router(transactions_router)
app.include_router(recurring_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "finance_tracker.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
