import json
from decimal import Decimal

import httpx
import pytest

from amocrm_fx.core.config import Settings
from amocrm_fx.schemas.lead import FieldValue, LeadUpdate
from amocrm_fx.services.amocrm import AmoCrmClient, CrmNotConfigured, LeadFetchFailed, UpdateRejected


def _client(settings, handler) -> AmoCrmClient:
    return AmoCrmClient(settings, transport=httpx.MockTransport(handler))


def test_update_lead_patches_price_and_fields_in_one_request(settings):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": 42})

    update = LeadUpdate(price=95000, fields=(FieldValue(field_id=600681, value=Decimal("950.00")),))
    assert _client(settings, handler).update_lead(42, update) == 200

    assert len(requests) == 1
    req = requests[0]
    assert req.method == "PATCH"
    assert str(req.url) == "https://acme.amocrm.ru/api/v4/leads/42"
    assert req.headers["Authorization"] == "Bearer tok_1234567890_secret_abcde"
    assert req.headers["User-Agent"] == "amoCRM-oAuth-client/1.0"
    assert json.loads(req.content) == {
        "price": 95000,
        "custom_fields_values": [{"field_id": 600681, "values": [{"value": 950.0}]}],
    }


def test_update_lead_without_fields_still_writes_price(settings):
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={})

    _client(settings, handler).update_lead(7, LeadUpdate(price=1000))
    assert bodies == [{"price": 1000}]


def test_update_lead_rejected_carries_status_and_body(settings, caplog):
    def handler(request):
        return httpx.Response(403, json={"title": "Forbidden", "status": 403})

    with pytest.raises(UpdateRejected) as exc:
        _client(settings, handler).update_lead(42, LeadUpdate(price=1))
    assert exc.value.status_code == 403
    assert exc.value.body == {"title": "Forbidden", "status": 403}
    assert "ACCESS_TOKEN" in exc.value.hint
    # token is masked in diagnostics
    assert "tok_1234567890_secret_abcde" not in caplog.text


def test_update_lead_network_error(settings):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(UpdateRejected) as exc:
        _client(settings, handler).update_lead(42, LeadUpdate(price=1))
    assert exc.value.status_code is None


def test_missing_configuration_makes_no_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    client = _client(Settings(_env_file=None, access_token=None, subdomain=None), handler)
    with pytest.raises(CrmNotConfigured):
        client.update_lead(1, LeadUpdate(price=1))
    with pytest.raises(CrmNotConfigured):
        client.get_account()
    assert calls == []


def test_list_leads_reads_embedded_leads(settings):
    def handler(request):
        assert request.url.path == "/api/v4/leads"
        assert request.url.params["limit"] == "3"
        return httpx.Response(200, json={"_embedded": {"leads": [{"id": 1, "name": "Deal", "price": 10}]}})

    assert _client(settings, handler).list_leads(limit=3) == [{"id": 1, "name": "Deal", "price": 10}]


def test_list_leads_empty_account(settings):
    assert _client(settings, lambda request: httpx.Response(204)).list_leads() == []


def test_get_account_with_users(settings):
    def handler(request):
        assert request.url.params["with"] == "users"
        return httpx.Response(200, json={"id": 5, "current_user_id": 9})

    assert _client(settings, handler).get_account(with_users=True)["current_user_id"] == 9


def test_get_account_failure(settings):
    def handler(request):
        return httpx.Response(401, json={"title": "Unauthorized"})

    with pytest.raises(LeadFetchFailed) as exc:
        _client(settings, handler).get_account()
    assert exc.value.status_code == 401
    assert exc.value.body == {"title": "Unauthorized"}
