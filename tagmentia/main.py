import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load env from tagmentia/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

# Import after dotenv is loaded
from tagmentia.core.config import settings, validate_config
from tagmentia.core.logging import configure_logging
from tagmentia.core.middleware.request_id import RequestIdMiddleware
from tagmentia.core.database import create_all_tables
from tagmentia.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from tagmentia.features.limits.cache import LimitsCache
from tagmentia.features.limits.service import LimitEvaluator
from tagmentia.features.plans.service import seed_plans
from tagmentia.features.usage.service import get_user_plan_limits
from tagmentia.api import admin, billing, health, limits, plans, subscriptions

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))

logger = logging.getLogger("tagmentia")


def install_limits(app: FastAPI, ttl_seconds: int = settings.LIMITS_CACHE_TTL_SECONDS) -> LimitsCache:
    """Attach a fresh limits cache and evaluator to the app (one per process)."""
    cache = LimitsCache(get_user_plan_limits, ttl_seconds=ttl_seconds)
    app.state.limits_cache = cache
    app.state.limit_evaluator = LimitEvaluator(cache)
    return cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Tagmentia limits service...")
    try:
        create_all_tables()
        seed_plans()
    except Exception as e:
        # Limit checks fail closed until the database is reachable
        logger.error(f"Database bootstrap failed: {e}")
    try:
        yield
    finally:
        logger.info("Stopping Tagmentia limits service...")


app = FastAPI(title="Tagmentia - Limits", lifespan=lifespan)
install_limits(app)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(limits.router)
app.include_router(plans.router)
app.include_router(subscriptions.router)
app.include_router(billing.router, prefix="/api")
app.include_router(admin.router)
app.include_router(health.router)
