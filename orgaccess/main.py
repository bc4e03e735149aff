import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from orgaccess.core.config import settings, validate_config
from orgaccess.core.database import create_all_tables, get_database_url
from orgaccess.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from orgaccess.core.logging import configure_logging, LOGGER_NAME
from orgaccess.core.middleware.request_id import RequestIdMiddleware
from orgaccess.core.ratelimit import RateLimitStore, build_rate_limit_store
from orgaccess.api import health, organizations, trials
from orgaccess.features.permissions.checker import PermissionChecker
from orgaccess.features.repository.base import AccessRepository
from orgaccess.features.repository.memory import InMemoryAccessRepository
from orgaccess.features.repository.sql import SqlAccessRepository
from orgaccess.features.trials.service import TrialActivationGuard


def build_repository() -> AccessRepository:
    """SQL repository when a database is configured, in-memory otherwise."""
    if get_database_url():
        return SqlAccessRepository()
    logging.getLogger(LOGGER_NAME).warning("No DATABASE_URL configured, using in-memory repository")
    return InMemoryAccessRepository()


def create_app(
    repository: Optional[AccessRepository] = None,
    rate_limit_store: Optional[RateLimitStore] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    repo = repository if repository is not None else build_repository()
    store = rate_limit_store if rate_limit_store is not None else build_rate_limit_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger = logging.getLogger(LOGGER_NAME)
        logger.info("Starting orgaccess...")
        if isinstance(repo, SqlAccessRepository):
            create_all_tables()
        try:
            yield
        finally:
            logger.info("Stopping orgaccess...")

    app = FastAPI(title="orgaccess", lifespan=lifespan)
    app.state.repository = repo
    app.state.checker = PermissionChecker(repo, clock=clock)
    app.state.trial_guard = TrialActivationGuard(repo, store, clock=clock)

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health.router)
    app.include_router(organizations.router)
    app.include_router(trials.router)
    return app


configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))

app = create_app()
