from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import parse_qsl

from amocrm_fx.core.config import Settings
from amocrm_fx.models.enums import DealOutcome
from amocrm_fx.schemas.lead import Deal, DealResult, WebhookReport
from amocrm_fx.services.amocrm import AmoCrmClient, CrmError
from amocrm_fx.services.cbr_fx import CbrRateFetcher, RateUnavailable
from amocrm_fx.services.reconcile import FieldIds, InvalidRate, parse_number, reconcile, selected_currency


logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_PART_RE = re.compile(r"\[([^\[\]]*)\]")


# ---------- Payload parsing ----------


def _split_key(key: str) -> list[str]:
    m = _KEY_RE.match(key)
    if not m:
        return [key]
    return [m.group(1), *_PART_RE.findall(m.group(2))]


def _listify(node: Any) -> Any:
    if not isinstance(node, dict):
        return node
    items = {k: _listify(v) for k, v in node.items()}
    if items and all(k.isdecimal() for k in items):
        keys = sorted(items, key=int)
        if [int(k) for k in keys] == list(range(len(keys))):
            return [items[k] for k in keys]
    return items


def parse_form_body(body: str) -> dict[str, Any]:
    """
    Decode amoCRM's form-encoded webhook into nested data.

        leads[update][0][id]=1&leads[update][0][custom_fields][0][values][0][value]=Dollar
        -> {"leads": {"update": [{"id": "1", "custom_fields": [{"values": [{"value": "Dollar"}]}]}]}}
    """
    root: dict[str, Any] = {}
    for key, value in parse_qsl(body, keep_blank_values=True):
        parts = _split_key(key)
        node = root
        for i, part in enumerate(parts):
            if part == "":
                part = str(len(node))
            if i == len(parts) - 1:
                node[part] = value
                break
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
    return _listify(root)


def parse_webhook_body(body: bytes, content_type: str | None) -> dict[str, Any]:
    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        return {}
    if "json" in (content_type or "").lower() or text.startswith("{"):
        data = json.loads(text)
        return data if isinstance(data, dict) else {}
    return parse_form_body(text)


def lead_updates(payload: dict[str, Any]) -> list[Any] | None:
    """None when the payload carries no `leads.update` at all."""
    leads = payload.get("leads")
    if not isinstance(leads, dict) or "update" not in leads:
        return None
    updates = leads["update"]
    if isinstance(updates, dict):
        # form payloads with gaps in the indices stay dicts
        updates = list(updates.values())
    return updates if isinstance(updates, list) else []


def deal_from_webhook(entry: dict[str, Any]) -> Deal:
    lead_id = int(entry["id"])
    custom_fields: dict[int, list[Any]] = {}
    raw_fields = entry.get("custom_fields") or entry.get("custom_fields_values") or []
    if isinstance(raw_fields, dict):
        raw_fields = list(raw_fields.values())
    for cf in raw_fields:
        if not isinstance(cf, dict):
            continue
        try:
            field_id = int(cf.get("id", cf.get("field_id")))
        except (TypeError, ValueError):
            continue
        values = cf.get("values") or []
        if isinstance(values, dict):
            values = list(values.values())
        elif not isinstance(values, list):
            values = [values]
        custom_fields[field_id] = values
    # truncates like the CRM's own integer price
    price = int(parse_number(entry.get("price")))
    return Deal(id=lead_id, price=price, custom_fields=custom_fields)


# ---------- Dispatch ----------


def _entry_id(entry: Any) -> int | None:
    try:
        return int(entry["id"])
    except (KeyError, TypeError, ValueError):
        return None


def process_lead(
    entry: dict[str, Any], *, fetcher: CbrRateFetcher, crm: AmoCrmClient, settings: Settings
) -> DealResult:
    deal = deal_from_webhook(entry)
    logger.info("Processing webhook for lead %s", deal.id)
    rates = fetcher.fetch()

    fields = FieldIds.from_settings(settings)
    currency = selected_currency(deal, fields)
    if currency is None:
        logger.info("Lead %s: currency field missing or not recognized, skipping", deal.id)
        return DealResult(lead_id=deal.id, outcome=DealOutcome.SKIPPED, detail="unknown currency")
    logger.info("Lead %s: home currency %s", deal.id, currency.value)

    update = reconcile(
        deal,
        rates,
        fields=fields,
        write_rate_snapshots=settings.write_rate_snapshots,
        skip_unchanged_rates=settings.skip_unchanged_rates,
    )
    if update is None:
        logger.info("Lead %s: rates and values unchanged, nothing to update", deal.id)
        return DealResult(lead_id=deal.id, outcome=DealOutcome.SKIPPED, detail="unchanged")

    logger.info(
        "Lead %s: recalculated price=%s fields=%s",
        deal.id,
        update.price,
        {f.field_id: str(f.value) for f in update.fields},
    )
    crm.update_lead(deal.id, update)
    return DealResult(lead_id=deal.id, outcome=DealOutcome.UPDATED, detail=f"price={update.price}")


def process_webhook(
    updates: list[Any], *, fetcher: CbrRateFetcher, crm: AmoCrmClient, settings: Settings
) -> WebhookReport:
    """
    Reconcile every updated lead of a delivery.

    A failing lead is logged and recorded as failed; the remaining leads are
    still processed and the caller acknowledges the delivery regardless.
    """
    report = WebhookReport()
    for entry in updates:
        lead_id = _entry_id(entry)
        try:
            if not isinstance(entry, dict):
                raise ValueError(f"Lead entry is not an object: {entry!r}")
            result = process_lead(entry, fetcher=fetcher, crm=crm, settings=settings)
        except CrmError as e:
            logger.error("Lead %s: CRM error status=%s body=%s hint=%s", lead_id, e.status_code, e.body, e.hint)
            result = DealResult(lead_id=lead_id, outcome=DealOutcome.FAILED, detail=str(e))
        except (RateUnavailable, InvalidRate) as e:
            logger.error("Lead %s: skipped, %s", lead_id, e)
            result = DealResult(lead_id=lead_id, outcome=DealOutcome.FAILED, detail=str(e))
        except Exception as e:
            logger.exception("Lead %s: processing failed: %s", lead_id, e)
            result = DealResult(lead_id=lead_id, outcome=DealOutcome.FAILED, detail=str(e))
        report.results.append(result)

    logger.info(
        "Webhook done: %s updated, %s skipped, %s failed", report.updated, report.skipped, report.failed
    )
    return report
