"""Pytest fixtures for amocrm-fx tests."""

from decimal import Decimal

import pytest

from amocrm_fx.core.config import Settings
from amocrm_fx.schemas.lead import ExchangeRates
from amocrm_fx.services.reconcile import FieldIds


class FakeFetcher:
    """Returns (or raises) the queued outcomes in order; the last one repeats."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [ExchangeRates(usd_rate=Decimal("95.00"), eur_rate=Decimal("100.00"))]
        self.calls = 0

    def fetch(self) -> ExchangeRates:
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeCrm:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.updates = []
        self.errors = {}

    def update_lead(self, lead_id, update):
        if lead_id in self.errors:
            raise self.errors[lead_id]
        self.updates.append((lead_id, update))
        return 200


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, access_token="tok_1234567890_secret_abcde", subdomain="acme")


@pytest.fixture
def fields(settings) -> FieldIds:
    return FieldIds.from_settings(settings)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def crm(settings) -> FakeCrm:
    return FakeCrm(settings)
