"""
Orderlyy backend: Telegram storefront bot + seller dashboard API.

ARCHITECTURE:
- Telegram webhook: buyer and seller conversations (app.telegram)
- Lifecycle engine: the only writer of order/payment status (app.services.order_lifecycle)
- FastAPI dashboard API: token-authenticated read/write view of the same data
- Durable DB: stores, products, orders, payments, processed updates
- Session DB: per-user conversation cursor with TTL

Blocked subscriptions stop every mutation (402), never reads.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import analytics, orders, payments, products, store, telegram
from app.core.config import settings
from app.core.exceptions import BusinessError, business_error_handler
from app.db.init_db import init_db
from app.telegram.bot import start_bot, stop_bot

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
    1. Initialize both databases
    2. Start the Telegram bot and register the webhook (if configured)

    Shutdown:
    1. Close the bot's HTTP session
    """
    logger.info("[*] Initializing databases...")
    init_db()
    logger.info("[OK] Databases initialized")

    await start_bot()

    yield

    await stop_bot()


app = FastAPI(
    title="Orderlyy API",
    description="Seller dashboard & Telegram webhook for Orderlyy storefronts.",
    version="0.1.0",
    lifespan=lifespan,
)

# SECURITY: Restrict CORS to specific methods and headers (not wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
    ],
    max_age=600,
    expose_headers=["Content-Type"],
)


# SECURITY: Add security headers middleware
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Referrer-Policy"] = "no-referrer"  # dashboard URLs carry ?token=
    return response


app.add_exception_handler(BusinessError, business_error_handler)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"[API] {request.method} {request.url.path} -> invalid body: {exc.errors()}")
    return JSONResponse(status_code=400, content={"ok": False, "error": "invalid_input"})


app.include_router(telegram.router, prefix="/telegram", tags=["telegram"])
app.include_router(store.router, prefix="/api/store", tags=["store"])
app.include_router(products.router, prefix="/api/products", tags=["products"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["analytics"])


@app.get("/health")
def health():
    return {"ok": True, "status": "ok", "bot": "enabled" if settings.TELEGRAM_BOT_TOKEN else "disabled"}
