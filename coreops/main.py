from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import partial

from fastapi import Depends, FastAPI

from coreops.db.init_db import init_db
from coreops.db.session import make_engine, make_session_factory
from coreops.errors import install_error_handlers
from coreops.logging_config import configure_app_logging
from coreops.request_id import RequestIdMiddleware
from coreops.routers import audit, health, me, month_close, projects, system_config
from coreops.security.capability import CapabilityTokenService
from coreops.security.config import load_security_config
from coreops.security.dependencies import enforce_security
from coreops.security.month_close import EnforcementPolicy, MonthCloseGate
from coreops.services.system_config import is_month_close_enabled
from coreops.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, *, seed: bool = True) -> FastAPI:
    settings = settings or get_settings()
    engine = make_engine(settings.resolved_db_url())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")
        if seed:
            init_db(engine)
            logger.info("Database initialized (tables ensured + seed if needed)")
        yield

    # Global dependency: authentication, permission gate and month-close gate for every route.
    app = FastAPI(title="coreops", dependencies=[Depends(enforce_security)], lifespan=lifespan)

    security_config = load_security_config(settings.resolved_security_config_path())
    logger.info("Loaded security config: %s", settings.resolved_security_config_path())

    # Everything per request reads these, never the process-wide get_settings().
    app.state.settings = settings
    app.state.session_factory = make_session_factory(engine)
    app.state.security_config = security_config
    app.state.month_close_gate = MonthCloseGate(
        EnforcementPolicy(
            enabled=partial(is_month_close_enabled, fallback=settings.month_close_enabled),
            exempt=security_config.month_close_exempt,
        )
    )
    app.state.capability_tokens = CapabilityTokenService(settings.resolved_capability_secret())
    app.state.export_root = settings.resolved_export_storage_root()

    app.add_middleware(RequestIdMiddleware)
    install_error_handlers(app)

    app.include_router(health.router)
    app.include_router(me.router)
    app.include_router(projects.router)
    app.include_router(month_close.router)
    app.include_router(system_config.router)
    app.include_router(audit.router)

    return app


app = create_app()
