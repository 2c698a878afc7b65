from __future__ import annotations

import logging

from fastapi import FastAPI

from amocrm_fx.api.router import api_router
from amocrm_fx.core.config import Settings, settings

logger = logging.getLogger(__name__)


def log_config_check(s: Settings) -> None:
    """Missing CRM credentials are reported but never stop the service; diagnostics stay reachable."""
    if not s.crm_configured:
        logger.error("Required environment variables are missing")
        logger.error("ACCESS_TOKEN: %s", "set" if s.access_token else "NOT SET")
        logger.error("SUBDOMAIN: %s", "set" if s.subdomain else "NOT SET")
        return
    logger.info("Environment loaded: SUBDOMAIN=%s ACCESS_TOKEN=%s", s.subdomain, s.masked_token)


def create_app(s: Settings = settings) -> FastAPI:
    app = FastAPI(title=s.app_name)

    @app.on_event("startup")
    def _startup() -> None:
        log_config_check(s)
        logger.info(
            "Field ids: usd=%s eur=%s currency=%s eur_rate=%s usd_rate=%s; write_rate_snapshots=%s",
            s.usd_field_id,
            s.eur_field_id,
            s.currency_field_id,
            s.eur_rate_field_id,
            s.usd_rate_field_id,
            s.write_rate_snapshots,
        )

    app.include_router(api_router)
    return app


app = create_app()
