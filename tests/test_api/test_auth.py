"""Tests for X-API-KEY verification."""

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from regiq.api.auth import DEV_CALLER, key_matches, verify_api_key


@pytest.fixture
def auth_client():
    app = FastAPI()

    @app.get("/whoami")
    async def whoami(caller: str = Depends(verify_api_key)):
        return {"caller": caller}

    return TestClient(app)


class TestKeyMatches:
    def test_matches_any_configured_key(self):
        assert key_matches("b", ["a", "b"])

    def test_rejects_prefix_of_a_key(self):
        assert not key_matches("goo", ["good-key"])

    def test_no_keys(self):
        assert not key_matches("anything", [])


class TestVerifyApiKey:
    def test_open_in_development_without_keys(self, auth_client):
        resp = auth_client.get("/whoami")

        assert resp.status_code == 200
        assert resp.json() == {"caller": DEV_CALLER}

    def test_refused_in_production_without_keys(self, auth_client, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")

        resp = auth_client.get("/whoami", headers={"X-API-KEY": "whatever"})

        assert resp.status_code == 503
        assert resp.json()["detail"] == "Authentication is not configured"

    def test_configured_key_is_returned(self, auth_client, monkeypatch):
        monkeypatch.setenv("API_KEYS", " k1 , k2 ,")

        resp = auth_client.get("/whoami", headers={"X-API-KEY": "k2"})

        assert resp.json() == {"caller": "k2"}

    def test_missing_key(self, auth_client, monkeypatch):
        monkeypatch.setenv("API_KEYS", "k1")

        resp = auth_client.get("/whoami")

        assert resp.status_code == 401
        assert "X-API-KEY" in resp.json()["detail"]

    def test_unknown_key(self, auth_client, monkeypatch):
        monkeypatch.setenv("API_KEYS", "k1")

        resp = auth_client.get("/whoami", headers={"X-API-KEY": "k1-extra"})

        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid API key"
