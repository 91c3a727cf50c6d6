"""
Storefront Backend
FastAPI application entry point

- Hosted checkout and Stripe webhook reconciliation
- Rate limiting with SlowAPI (checkout session creation)
- Domain errors translated to structured JSON
- Error sanitization middleware for unhandled exceptions
- Health endpoint with DB ping
- HTTP client and Redis lifecycle management
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from app.api.deps import close_notifier
from app.api.routes import admin, cart, checkout, orders, returns, webhooks
from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.core.error_handler import ErrorSanitizationMiddleware, storefront_error_handler
from app.core.exceptions import StorefrontError
from app.core.rate_limit import limiter, rate_limit_exceeded_handler
from app.core.redis_client import close_redis

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.APP_NAME} starting ({settings.ENVIRONMENT})")

    yield

    # Close HTTP clients to prevent connection leaks
    await close_notifier()
    logger.info("Email HTTP client closed")
    await close_redis()


app = FastAPI(
    lifespan=lifespan,
    title=f"{settings.APP_NAME} API",
    version="0.1.0",
    openapi_tags=[
        {"name": "Checkout", "description": "Hosted checkout sessions"},
        {"name": "Webhooks", "description": "Payment provider callbacks"},
        {"name": "Orders", "description": "Order tracking"},
        {"name": "Cart", "description": "Persisted carts"},
        {"name": "Returns", "description": "Return requests"},
        {"name": "Admin", "description": "Fulfillment, returns and invoicing"},
        {"name": "Config", "description": "Public configuration endpoints"},
    ],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(StorefrontError, storefront_error_handler)

# Error sanitization (catches unhandled exceptions)
app.add_middleware(ErrorSanitizationMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(checkout.router, prefix="/api", tags=["Checkout"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(orders.router, prefix="/api", tags=["Orders"])
app.include_router(cart.router, prefix="/api", tags=["Cart"])
app.include_router(returns.router, prefix="/api", tags=["Returns"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])


@app.get("/", tags=["Health"])
async def root():
    return {
        "message": f"{settings.APP_NAME} API",
        "version": "0.1.0",
        "status": "operational",
    }


@app.get("/api/config", tags=["Config"])
async def get_config():
    """Public configuration for the storefront frontend."""
    return {
        "stripe_publishable_key": settings.STRIPE_PUBLISHABLE_KEY,
        "currency": settings.STRIPE_CURRENCY,
        "shipping_flat_rate": settings.SHIPPING_FLAT_RATE,
        "free_shipping_threshold": settings.FREE_SHIPPING_THRESHOLD,
        "pickup_location": settings.PICKUP_LOCATION,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check with an actual DB ping.
    Returns 503 if database is unreachable.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check database ping failed: {type(e).__name__}: {e}")
        health_status["database"] = f"error: {type(e).__name__}"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
