from __future__ import annotations

import datetime as dt
import time

from fastapi import APIRouter, Depends

from amocrm_fx.api.deps import get_rate_fetcher, get_settings
from amocrm_fx.core.config import Settings
from amocrm_fx.services.cbr_fx import RATES_SOURCE, CbrRateFetcher, RateUnavailable

router = APIRouter()

_started = time.monotonic()


def _now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def _uptime() -> float:
    return round(time.monotonic() - _started, 3)


@router.get("/")
def ping():
    # Target of the external uptime pinger.
    return {"status": "ok", "message": "AmoCRM Currency Converter is running", "timestamp": _now()}


@router.get("/health")
def health(s: Settings = Depends(get_settings)):
    return {"status": "healthy", "service": s.app_name, "uptime": _uptime(), "timestamp": _now()}


@router.get("/status")
def status(fetcher: CbrRateFetcher = Depends(get_rate_fetcher), s: Settings = Depends(get_settings)):
    """
    Liveness plus a live rate fetch. A failed fetch is reported inside the
    body; the status code stays 200 so pingers don't flag the service down.
    """
    try:
        rates = fetcher.fetch()
        rates_info = {
            "USD": float(rates.usd_rate),
            "EUR": float(rates.eur_rate),
            "source": RATES_SOURCE,
            "timestamp": _now(),
        }
    except RateUnavailable as e:
        rates_info = {"error": "Unable to fetch rates", "message": str(e)}
    return {
        "status": "operational",
        "service": s.app_name,
        "rates": rates_info,
        "uptime": _uptime(),
        "environment": s.environment,
    }
