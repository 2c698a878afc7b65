from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from amocrm_fx.api.deps import get_crm_client, get_rate_fetcher, get_settings
from amocrm_fx.core.config import Settings
from amocrm_fx.services.amocrm import AmoCrmClient
from amocrm_fx.services.cbr_fx import CbrRateFetcher
from amocrm_fx.services.webhook import lead_updates, parse_webhook_body, process_webhook

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/webhook", response_class=PlainTextResponse)
async def receive_webhook(
    request: Request,
    fetcher: CbrRateFetcher = Depends(get_rate_fetcher),
    crm: AmoCrmClient = Depends(get_crm_client),
    s: Settings = Depends(get_settings),
):
    # amoCRM retries any non-200 delivery, so every outcome is acknowledged with 200.
    try:
        body = await request.body()
        payload = parse_webhook_body(body, request.headers.get("content-type"))
        logger.info("Webhook received: %s", payload)

        updates = lead_updates(payload)
        if updates is None:
            logger.info("Webhook carries no lead updates")
            return "OK - No leads to process"
        if not updates:
            logger.info("Webhook lead updates array is empty")
            return "OK - Empty updates array"

        report = await run_in_threadpool(process_webhook, updates, fetcher=fetcher, crm=crm, settings=s)
        return f"Webhook processed: {report.updated} updated, {report.skipped} skipped, {report.failed} failed"
    except Exception as e:
        logger.exception("Webhook handling failed: %s", e)
        return "Webhook received with error"
