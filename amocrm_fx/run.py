from __future__ import annotations

import logging

import uvicorn

from amocrm_fx.core.config import settings
from amocrm_fx.core.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def main() -> None:
    configure_logging(settings.log_level)
    logger.info("Starting %s on %s:%s", settings.app_name, settings.host, settings.port)
    logger.info("Endpoints: / /health /status /webhook /test-auth /test-update-permission /test-leads-access")
    uvicorn.run("amocrm_fx.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
