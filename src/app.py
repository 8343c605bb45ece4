"""Storefront FastAPI application.

Processes commands synchronously via HTTP inside the storefront domain
context, and runs the stuck-payment sweeper in the background for the
lifetime of the process.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from storefront.config import get_settings
from storefront.domain import storefront
from storefront.utils.logging import configure_logging

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# PROTEAN_ENV selects the domain.toml overlay ("test", "production").
settings = get_settings()
configure_logging()
storefront.init()

from storefront.api import cart_router, order_router, payment_router  # noqa: E402
from storefront.api.errors import register_storefront_error_handlers  # noqa: E402
from storefront.payments.sweeper import StuckPaymentSweeper  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = None
    if settings.sweeper_enabled:
        sweeper = StuckPaymentSweeper(
            storefront,
            interval_minutes=settings.sweep_interval_minutes,
            timeout_minutes=settings.payment_timeout_minutes,
        )
        sweeper.start()
    app.state.sweeper = sweeper
    try:
        yield
    finally:
        if sweeper is not None:
            await sweeper.stop()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Storefront API",
    description="Order / Payment / Inventory consistency engine",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the storefront domain context for each request."""
    with storefront.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers and error handling
# ---------------------------------------------------------------------------
app.include_router(cart_router)
app.include_router(order_router)
app.include_router(payment_router)

register_exception_handlers(app)
register_storefront_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    sweeper = getattr(app.state, "sweeper", None)
    return JSONResponse(
        content={
            "status": "ok",
            "domain": storefront.name,
            "gateway": settings.gateway,
            "sweeper_running": bool(sweeper and sweeper.running),
        }
    )
