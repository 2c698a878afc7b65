from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from amocrm_fx.core.config import Settings
from amocrm_fx.schemas.lead import ExchangeRates


logger = logging.getLogger(__name__)

RATES_SOURCE = "cbr-xml-daily.ru"


class RateUnavailable(RuntimeError):
    pass


def _parse_valute(data: Any, code: str) -> Decimal:
    try:
        raw = data["Valute"][code]["Value"]
    except (KeyError, TypeError) as e:
        raise RateUnavailable(f"Rate feed has no Valute.{code}.Value") from e
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        raise RateUnavailable(f"Valute.{code}.Value is not numeric: {raw!r}")
    try:
        rate = Decimal(str(raw))
    except InvalidOperation as e:
        raise RateUnavailable(f"Valute.{code}.Value is not numeric: {raw!r}") from e
    if not rate.is_finite():
        raise RateUnavailable(f"Valute.{code}.Value is not finite: {raw!r}")
    return rate


def parse_daily_json(data: Any) -> ExchangeRates:
    """
    Extract USD/RUB and EUR/RUB from the CBR daily JSON document:

        {"Date": "...", "Valute": {"USD": {"Nominal": 1, "Value": 92.51, ...}, "EUR": {...}}}
    """
    return ExchangeRates(usd_rate=_parse_valute(data, "USD"), eur_rate=_parse_valute(data, "EUR"))


class CbrRateFetcher:
    """Single-attempt fetch of current rates; nothing is cached between calls."""

    def __init__(self, settings: Settings, *, transport: httpx.BaseTransport | None = None) -> None:
        self.url = settings.exchange_rate_url
        self.timeout = settings.http_timeout_seconds
        self._transport = transport

    def _fetch_json(self) -> Any:
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            r = client.get(self.url, headers={"Accept": "application/json"})
            if r.status_code != 200:
                raise RateUnavailable(f"Rate feed request failed: {r.status_code} {r.text[:200]}")
            try:
                # The feed is served as application/javascript, so don't rely on the content type.
                return r.json()
            except ValueError as e:
                raise RateUnavailable(f"Rate feed returned invalid JSON: {e}") from e

    def fetch(self) -> ExchangeRates:
        try:
            data = self._fetch_json()
        except httpx.HTTPError as e:
            logger.error("Rate feed %s unreachable: %s", self.url, e)
            raise RateUnavailable(f"Rate feed request failed (network/timeout): {e}") from e
        rates = parse_daily_json(data)
        logger.info("Fetched exchange rates: USD=%s, EUR=%s", rates.usd_rate, rates.eur_rate)
        return rates
