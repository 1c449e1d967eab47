import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load env from the project .env (skipped under pytest)
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

# Import after dotenv is loaded
from wordsmith.core.config import settings, validate_config
from wordsmith.core.database import create_all_tables, get_database_url
from wordsmith.core.logging import configure_logging
from wordsmith.core.middleware.request_id import RequestIdMiddleware
from wordsmith.core.middleware.metrics import MetricsMiddleware
from wordsmith.core.validation import validate_env
from wordsmith.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from wordsmith.api import billing, health, metrics, workspaces
from wordsmith.features.plans.catalog import build_plan_catalog

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("wordsmith")
    logger.info("Starting Wordsmith billing backend...")
    if get_database_url():
        create_all_tables()
    try:
        yield
    finally:
        logging.getLogger("wordsmith").info("Stopping Wordsmith billing backend...")


app = FastAPI(title="Wordsmith - Billing", lifespan=lifespan)

# Built once; read-only for the life of the process
app.state.plan_catalog = build_plan_catalog(settings)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# CORS (adjust origins in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.root_router, tags=["health"])
app.include_router(metrics.router, tags=["metrics"])
app.include_router(billing.router, prefix="/api", tags=["billing"])
app.include_router(workspaces.router, prefix="/api", tags=["workspace"])
