from __future__ import annotations

from fastapi import Depends

from amocrm_fx.core.config import Settings, settings
from amocrm_fx.services.amocrm import AmoCrmClient
from amocrm_fx.services.cbr_fx import CbrRateFetcher


def get_settings() -> Settings:
    return settings


def get_rate_fetcher(s: Settings = Depends(get_settings)) -> CbrRateFetcher:
    return CbrRateFetcher(s)


def get_crm_client(s: Settings = Depends(get_settings)) -> AmoCrmClient:
    return AmoCrmClient(s)
