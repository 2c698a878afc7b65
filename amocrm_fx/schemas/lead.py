from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from amocrm_fx.models.enums import DealOutcome


class ApiModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class ExchangeRates(ApiModel):
    """RUB per one unit of USD / EUR, as published by the rate feed."""

    usd_rate: Decimal
    eur_rate: Decimal


class Deal(ApiModel):
    id: int
    price: int = 0
    # field_id -> raw values as delivered by amoCRM (either scalars or {"value": ...} dicts)
    custom_fields: dict[int, list[Any]] = Field(default_factory=dict)


class FieldValue(ApiModel):
    field_id: int
    value: Decimal


class LeadUpdate(ApiModel):
    price: int
    fields: tuple[FieldValue, ...] = ()

    def to_patch_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"price": self.price}
        if self.fields:
            body["custom_fields_values"] = [
                {"field_id": f.field_id, "values": [{"value": float(f.value)}]} for f in self.fields
            ]
        return body


class DealResult(BaseModel):
    lead_id: int | None
    outcome: DealOutcome
    detail: str | None = None


class WebhookReport(BaseModel):
    results: list[DealResult] = Field(default_factory=list)

    def _count(self, outcome: DealOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def updated(self) -> int:
        return self._count(DealOutcome.UPDATED)

    @property
    def skipped(self) -> int:
        return self._count(DealOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(DealOutcome.FAILED)
