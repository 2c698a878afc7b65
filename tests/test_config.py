import pytest

from amocrm_fx.core.config import Settings, mask_token


@pytest.mark.parametrize("raw", ["acme", "acme.amocrm.ru", "https://Acme.amocrm.ru/", " acme "])
def test_subdomain_is_normalized(raw):
    s = Settings(_env_file=None, subdomain=raw)
    assert s.subdomain == "acme"
    assert s.crm_base_url == "https://acme.amocrm.ru"


def test_blank_credentials_count_as_missing():
    s = Settings(_env_file=None, access_token="  ", subdomain="")
    assert s.access_token is None
    assert s.subdomain is None
    assert not s.crm_configured


def test_environment_reads_node_env(monkeypatch):
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    monkeypatch.setenv("NODE_ENV", "staging")
    assert Settings(_env_file=None).environment == "staging"


def test_field_ids_from_env(monkeypatch):
    monkeypatch.setenv("USD_FIELD_ID", "111")
    monkeypatch.setenv("WRITE_RATE_SNAPSHOTS", "true")
    s = Settings(_env_file=None)
    assert s.usd_field_id == 111
    assert s.write_rate_snapshots is True


def test_mask_token():
    assert mask_token(None) == "NOT SET"
    assert mask_token("abcdefghij0123456789xyz") == "abcdefghij...89xyz"
    assert mask_token("short") == "sho..."
