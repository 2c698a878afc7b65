from __future__ import annotations

import logging
from typing import Any

import httpx

from amocrm_fx.core.config import Settings
from amocrm_fx.schemas.lead import LeadUpdate


logger = logging.getLogger(__name__)

USER_AGENT = "amoCRM-oAuth-client/1.0"

FORBIDDEN_HINTS = (
    "Token has no permission to edit leads",
    "Integration is disabled or the token has expired",
    "Check the integration's access rights in amoCRM",
    "The lead may be locked or the user cannot edit it",
)


class CrmError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def hint(self) -> str:
        if self.status_code == 403:
            return "Check if ACCESS_TOKEN is valid and not expired"
        return "Check environment variables and network connectivity"


class CrmNotConfigured(CrmError):
    pass


class LeadFetchFailed(CrmError):
    pass


class UpdateRejected(CrmError):
    pass


def _body(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return r.text[:500]


class AmoCrmClient:
    """
    Thin amoCRM REST v4 client: account/leads reads and the deal PATCH.

    A new httpx.Client is opened per call; deliveries share no connection state.
    """

    def __init__(self, settings: Settings, *, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = settings
        self.timeout = settings.http_timeout_seconds
        self._transport = transport

    def _require_config(self) -> None:
        if not self.settings.crm_configured:
            raise CrmNotConfigured(
                "Missing environment variables: "
                f"ACCESS_TOKEN={'Set' if self.settings.access_token else 'NOT SET'}, "
                f"SUBDOMAIN={'Set' if self.settings.subdomain else 'NOT SET'}"
            )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.access_token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.settings.crm_base_url,
            timeout=self.timeout,
            headers=self._headers(),
            transport=self._transport,
        )

    def _get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        self._require_config()
        try:
            with self._client() as client:
                r = client.get(path, params=params)
        except httpx.HTTPError as e:
            raise LeadFetchFailed(f"amoCRM GET {path} failed (network/timeout): {e}") from e
        if r.status_code == 204:
            return {}
        if r.status_code != 200:
            raise LeadFetchFailed(
                f"amoCRM GET {path} failed: {r.status_code} {r.reason_phrase}",
                status_code=r.status_code,
                body=_body(r),
            )
        try:
            return r.json()
        except ValueError as e:
            raise LeadFetchFailed(f"amoCRM GET {path} returned invalid JSON", status_code=r.status_code, body=r.text[:500]) from e

    def get_account(self, *, with_users: bool = False) -> dict[str, Any]:
        params = {"with": "users"} if with_users else None
        return self._get("/api/v4/account", params=params)

    def list_leads(self, *, limit: int = 3) -> list[dict[str, Any]]:
        # amoCRM answers 204 with no body when there are no leads at all.
        data = self._get("/api/v4/leads", params={"limit": limit})
        return (data.get("_embedded") or {}).get("leads") or []

    def update_lead(self, lead_id: int, update: LeadUpdate) -> int:
        """
        PATCH price and custom fields of a lead in one request.

        Returns the upstream status code; raises UpdateRejected otherwise.
        """
        self._require_config()
        path = f"/api/v4/leads/{lead_id}"
        body = update.to_patch_body()
        logger.info("Updating lead %s: %s", lead_id, body)
        try:
            with self._client() as client:
                r = client.patch(path, json=body)
        except httpx.HTTPError as e:
            logger.error("Lead %s update failed (network/timeout): %s", lead_id, e)
            raise UpdateRejected(f"Lead {lead_id} update failed (network/timeout): {e}") from e

        if not r.is_success:
            err_body = _body(r)
            logger.error(
                "Lead %s update rejected: url=%s status=%s %s response=%s token=%s",
                lead_id,
                r.request.url,
                r.status_code,
                r.reason_phrase,
                err_body,
                self.settings.masked_token,
            )
            if r.status_code == 403:
                for hint in FORBIDDEN_HINTS:
                    logger.error("403 Forbidden on update, possible cause: %s", hint)
            raise UpdateRejected(
                f"Lead {lead_id} update rejected: {r.status_code}",
                status_code=r.status_code,
                body=err_body,
            )
        logger.info("Lead %s updated with price %s, status %s", lead_id, update.price, r.status_code)
        return r.status_code
