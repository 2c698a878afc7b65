from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from amocrm_fx.core.config import Settings
from amocrm_fx.models.enums import HomeCurrency
from amocrm_fx.schemas.lead import Deal, ExchangeRates, FieldValue, LeadUpdate


RATE_EPSILON = Decimal("0.0001")
VALUE_EPSILON = Decimal("0.01")

_ZERO = Decimal("0")

# Parsed values must stay below 10**MAX_INTEGER_DIGITS
MAX_INTEGER_DIGITS = 15
_PLAIN_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


class InvalidRate(RuntimeError):
    pass


@dataclass(frozen=True)
class FieldIds:
    usd_price: int
    eur_price: int
    currency: int
    eur_rate: int
    usd_rate: int

    @classmethod
    def from_settings(cls, s: Settings) -> FieldIds:
        return cls(
            usd_price=s.usd_field_id,
            eur_price=s.eur_field_id,
            currency=s.currency_field_id,
            eur_rate=s.eur_rate_field_id,
            usd_rate=s.usd_rate_field_id,
        )


def q_rate(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


def q_money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def q_price(x: Decimal) -> int:
    return int(x.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_number(value: Any, default: Decimal = _ZERO) -> Decimal:
    """
    Coerce a CRM field value into a Decimal.

    Accepts numbers, numeric strings (any whitespace, e.g. "1 250 000" with
    non-breaking spaces, is removed), {"value": ...} wrappers and lists of
    those (first element wins). Exponent notation, strings that are not
    plain decimals and magnitudes of MAX_INTEGER_DIGITS integer digits or
    more fall back to `default`, as does anything else.
    """
    if isinstance(value, (list, tuple)):
        if not value:
            return default
        value = value[0]
    if isinstance(value, dict):
        value = value.get("value")
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, int):
        if abs(value) >= 10**MAX_INTEGER_DIGITS:
            return default
        d = Decimal(value)
    elif isinstance(value, float):
        d = Decimal(str(value))
    elif isinstance(value, str):
        s = "".join(value.split())
        if not s or len(s) > 64 or not _PLAIN_NUMBER_RE.fullmatch(s):
            return default
        try:
            d = Decimal(s)
        except InvalidOperation:
            return default
    else:
        return default
    if not d.is_finite() or (d and d.adjusted() >= MAX_INTEGER_DIGITS):
        return default
    return d


def first_text(values: list[Any] | None) -> str | None:
    if not values:
        return None
    first = values[0]
    if isinstance(first, dict):
        first = first.get("value")
    if first is None:
        return None
    text = str(first).strip()
    return text or None


def selected_currency(deal: Deal, fields: FieldIds) -> HomeCurrency | None:
    raw = first_text(deal.custom_fields.get(fields.currency))
    if raw is None:
        return None
    try:
        return HomeCurrency(raw)
    except ValueError:
        return None


def _stored(deal: Deal, field_id: int) -> Decimal:
    return parse_number(deal.custom_fields.get(field_id))


def _check_rates(rates: ExchangeRates) -> None:
    for name, rate in (("USD", rates.usd_rate), ("EUR", rates.eur_rate)):
        if not rate.is_finite() or rate <= 0:
            raise InvalidRate(f"{name} rate must be positive, got {rate}")


def rates_changed(deal: Deal, rates: ExchangeRates, fields: FieldIds) -> bool:
    stored_usd = _stored(deal, fields.usd_rate)
    stored_eur = _stored(deal, fields.eur_rate)
    return (
        abs(stored_usd - q_rate(rates.usd_rate)) >= RATE_EPSILON
        or abs(stored_eur - q_rate(rates.eur_rate)) >= RATE_EPSILON
    )


def reconcile(
    deal: Deal,
    rates: ExchangeRates,
    *,
    fields: FieldIds,
    write_rate_snapshots: bool = False,
    skip_unchanged_rates: bool = True,
) -> LeadUpdate | None:
    """
    Decide whether a deal needs a write-back and compute it.

    Returns None when nothing should be written: unknown/absent currency,
    unchanged rate snapshots (when `skip_unchanged_rates`), or cross values
    already within VALUE_EPSILON of what is stored.

    The field holding the selected currency's own price is the source of the
    calculation and is never part of the update. Prices converted into RUB
    use the raw rates; snapshots are compared and written rounded to 4 places.
    """
    currency = selected_currency(deal, fields)
    if currency is None:
        return None
    _check_rates(rates)

    changed = rates_changed(deal, rates, fields)
    if skip_unchanged_rates and not changed:
        return None

    usd_rate, eur_rate = rates.usd_rate, rates.eur_rate
    if currency is HomeCurrency.USD:
        usd_price = _stored(deal, fields.usd_price)
        new_price = usd_price * usd_rate
        targets = [(fields.eur_price, q_money(usd_price * (usd_rate / eur_rate)))]
    elif currency is HomeCurrency.EUR:
        eur_price = _stored(deal, fields.eur_price)
        new_price = eur_price * eur_rate
        targets = [(fields.usd_price, q_money(eur_price * (eur_rate / usd_rate)))]
    else:
        new_price = Decimal(deal.price or 0)
        targets = [
            (fields.usd_price, q_money(new_price / usd_rate)),
            (fields.eur_price, q_money(new_price / eur_rate)),
        ]

    drifted = any(abs(_stored(deal, field_id) - value) >= VALUE_EPSILON for field_id, value in targets)
    if not drifted and not (write_rate_snapshots and changed):
        return None

    updates = [FieldValue(field_id=field_id, value=value) for field_id, value in targets]
    if write_rate_snapshots:
        updates.append(FieldValue(field_id=fields.eur_rate, value=q_rate(eur_rate)))
        updates.append(FieldValue(field_id=fields.usd_rate, value=q_rate(usd_rate)))
    return LeadUpdate(price=q_price(new_price), fields=tuple(updates))
