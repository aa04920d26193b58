import pytest

from apps.api.database import CONFIGURATIONS
from apps.api.hka import credentials as creds_mod
from apps.api.hka.credentials import find_configuration_by_identifier, parse_env, resolve_credentials
from apps.api.hka.errors import HkaError
from apps.api.hka.models import HkaEnv
from apps.api.tests.fakes import FakeDB


@pytest.fixture()
def fake_db():
    db = FakeDB()
    db.docs(CONFIGURATIONS)["c1"] = {
        "companyName": "ACME",
        "companyRuc": "155555-1-2024",
        "companyDv": "45",
        "webhookIdentifier": "acme",
        "demoUser": "acme-demo",
        "demoPassword": "pw-demo",
        "prodUser": "acme-prod",
    }
    return db


def test_parse_env_defaults_and_rejects_unknown(monkeypatch):
    monkeypatch.setattr(creds_mod.settings, "HKA_DEFAULT_ENV", "demo")
    assert parse_env(None) == HkaEnv.DEMO
    assert parse_env(" PROD ") == HkaEnv.PROD
    with pytest.raises(HkaError) as ei:
        parse_env("staging")
    assert ei.value.status == 400


def test_configuration_credentials_for_soap(fake_db):
    c = resolve_credentials(db=fake_db, config_id="c1", env=HkaEnv.DEMO, required=("usuario", "clave"))
    assert (c.usuario, c.clave, c.owner) == ("acme-demo", "pw-demo", "c1")
    assert c.emisor.ruc == "155555-1-2024"
    assert c.emisor.dv == "45"
    assert c.emisor.name == "ACME"


def test_incomplete_configuration_names_missing_fields(fake_db):
    with pytest.raises(HkaError) as ei:
        resolve_credentials(db=fake_db, config_id="c1", env=HkaEnv.PROD, required=("usuario", "clave"))
    assert ei.value.status == 500
    assert "incomplete for the 'prod' environment" in str(ei.value)
    assert ei.value.body["missing"] == ["prodPassword"]


def test_unknown_configuration_is_404(fake_db):
    with pytest.raises(HkaError) as ei:
        resolve_credentials(db=fake_db, config_id="nope", env=HkaEnv.DEMO, required=())
    assert ei.value.status == 404


def test_environment_credentials(fake_db, monkeypatch):
    monkeypatch.setattr(creds_mod.settings, "HKA_API_KEY_PROD", "env-key")
    monkeypatch.setattr(creds_mod.settings, "HKA_EMISOR_RUC", "999-1-1")
    c = resolve_credentials(db=fake_db, config_id=None, env=HkaEnv.PROD, required=("api_key",))
    assert c.api_key == "env-key"
    assert c.owner == "env"
    assert c.emisor.ruc == "999-1-1"


def test_missing_environment_credentials_are_named(fake_db, monkeypatch):
    monkeypatch.setattr(creds_mod.settings, "HKA_USER_DEMO", "")
    monkeypatch.setattr(creds_mod.settings, "HKA_PASS_DEMO", "")
    with pytest.raises(HkaError) as ei:
        resolve_credentials(db=fake_db, config_id=None, env=HkaEnv.DEMO, required=("usuario", "clave"))
    assert "HKA_USER_DEMO, HKA_PASS_DEMO" in str(ei.value)


def test_find_configuration_by_identifier(fake_db):
    assert find_configuration_by_identifier(fake_db, "acme")["id"] == "c1"
    assert find_configuration_by_identifier(fake_db, "other") is None
