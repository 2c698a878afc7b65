from __future__ import annotations

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


CBR_DAILY_JSON_URL = "https://www.cbr-xml-daily.ru/daily_json.js"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "amocrm-currency-converter"
    # production | development; NODE_ENV is what the Render service was configured with.
    environment: str = Field(default="production", validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV"))
    log_level: str = Field(default="INFO")

    # amoCRM long-lived token + account subdomain. Both optional so the diagnostic endpoints still work.
    access_token: str | None = Field(default=None)
    subdomain: str | None = Field(default=None)

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    exchange_rate_url: str = Field(default=CBR_DAILY_JSON_URL)
    http_timeout_seconds: float = Field(default=10.0, gt=0)

    # Custom field ids of the deal card
    usd_field_id: int = Field(default=600679)  # "Price $"
    eur_field_id: int = Field(default=600681)  # "Price €"
    currency_field_id: int = Field(default=602137)  # "Currency"
    eur_rate_field_id: int = Field(default=600167)
    usd_rate_field_id: int = Field(default=600169)

    # Rate snapshot fields may be read-only in the account; off unless explicitly enabled.
    write_rate_snapshots: bool = Field(default=False)
    skip_unchanged_rates: bool = Field(default=True)

    @field_validator("access_token", "subdomain", mode="before")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("subdomain", mode="after")
    @classmethod
    def _normalize_subdomain(cls, v: str | None) -> str | None:
        # Accept "acme", "acme.amocrm.ru" or a full URL pasted from the browser.
        if v is None:
            return v
        s = v.strip().lower()
        for prefix in ("https://", "http://"):
            if s.startswith(prefix):
                s = s[len(prefix) :]
        s = s.strip("/")
        if s.endswith(".amocrm.ru"):
            s = s[: -len(".amocrm.ru")]
        return s or None

    @property
    def crm_configured(self) -> bool:
        return bool(self.access_token and self.subdomain)

    @property
    def crm_base_url(self) -> str:
        return f"https://{self.subdomain}.amocrm.ru"

    @property
    def masked_token(self) -> str:
        return mask_token(self.access_token)


def mask_token(token: str | None) -> str:
    if not token:
        return "NOT SET"
    if len(token) <= 15:
        return token[:3] + "..."
    return f"{token[:10]}...{token[-5:]}"


settings = Settings()
