from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from amocrm_fx.api.deps import get_crm_client
from amocrm_fx.services.amocrm import AmoCrmClient, CrmError, CrmNotConfigured

logger = logging.getLogger(__name__)
router = APIRouter()


def _missing_config(crm: AmoCrmClient) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "error": "Missing environment variables",
            "details": {
                "ACCESS_TOKEN": "Set" if crm.settings.access_token else "NOT SET",
                "SUBDOMAIN": "Set" if crm.settings.subdomain else "NOT SET",
            },
        },
    )


def _crm_failure(e: CrmError, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=e.status_code or 502,
        content={
            "status": "error",
            "message": message,
            "error": {"status": e.status_code, "data": e.body, "message": str(e)},
            **extra,
        },
    )


@router.get("/test-auth")
def test_auth(crm: AmoCrmClient = Depends(get_crm_client)):
    logger.info("Testing amoCRM authorization")
    try:
        account = crm.get_account()
    except CrmNotConfigured:
        return _missing_config(crm)
    except CrmError as e:
        logger.error("amoCRM authorization check failed: %s %s", e.status_code, e.body)
        return _crm_failure(e, "AmoCRM authorization failed", hint=e.hint)
    return {
        "status": "success",
        "message": "AmoCRM authorization successful",
        "account": {"id": account.get("id"), "name": account.get("name"), "subdomain": account.get("subdomain")},
    }


@router.get("/test-update-permission")
def test_update_permission(crm: AmoCrmClient = Depends(get_crm_client)):
    logger.info("Testing amoCRM lead update permissions")
    try:
        account = crm.get_account(with_users=True)
    except CrmNotConfigured:
        return _missing_config(crm)
    except CrmError as e:
        logger.error("amoCRM permission check failed: %s %s", e.status_code, e.body)
        return _crm_failure(
            e,
            "Permission check failed",
            hints=[
                "Ensure ACCESS_TOKEN has permission to edit leads",
                "Check integration settings in AmoCRM",
                "Token may need to be regenerated with proper permissions",
            ],
        )

    current_user_id = account.get("current_user_id")
    users = (account.get("_embedded") or {}).get("users") or []
    rights = next((u.get("rights") for u in users if u.get("id") == current_user_id), None)
    return {
        "status": "success",
        "message": "Authorization check completed",
        "account": {
            "id": account.get("id"),
            "name": account.get("name"),
            "subdomain": account.get("subdomain"),
            "current_user_id": current_user_id,
        },
        "rights": rights or "Unable to determine rights",
        "note": "Rights are read from the account; only a real lead update proves write access",
    }


@router.get("/test-leads-access")
def test_leads_access(crm: AmoCrmClient = Depends(get_crm_client)):
    logger.info("Testing amoCRM leads access")
    try:
        leads = crm.list_leads(limit=3)
    except CrmNotConfigured:
        return _missing_config(crm)
    except CrmError as e:
        logger.error("amoCRM leads access failed: %s %s", e.status_code, e.body)
        return _crm_failure(e, "Failed to access leads", hint="If you can't read leads, you likely can't update them either")

    sample = leads[0] if leads else None
    return {
        "status": "success",
        "message": "Successfully accessed leads",
        "leads_count": len(leads),
        "sample_lead": {"id": sample.get("id"), "name": sample.get("name"), "price": sample.get("price")} if sample else None,
        "permissions": {"read_leads": True, "update_leads": "To test update, try modifying a lead"},
    }
