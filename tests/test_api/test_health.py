"""Tests for the circuit-breaker backed health endpoint."""


def _open_circuit(registry, source: str) -> None:
    breaker = registry.get_breaker(source)
    for _ in range(breaker.failure_threshold):
        breaker.record_failure()


class TestHealthEndpoint:
    def test_all_healthy(self, client):
        resp = client.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["open_circuits"] == []
        assert data["version"] == "0.1.0"
        assert data["sources"]["FDA"] == {
            "available": True,
            "circuit_open": False,
            "failures": 0,
            "implemented": True,
            "last_error": None,
        }
        assert data["sources"]["EPA"]["implemented"] is False

    def test_degraded_when_a_circuit_is_open(self, client, registry):
        _open_circuit(registry, "WHO")

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["open_circuits"] == ["WHO"]
        assert data["sources"]["WHO"]["available"] is False

    def test_critical_when_every_implemented_source_is_open(self, client, registry):
        for source in ("FDA", "WHO", "USDA"):
            _open_circuit(registry, source)

        data = client.get("/health").json()

        assert data["status"] == "critical"
        assert data["open_circuits"] == ["FDA", "USDA", "WHO"]

    def test_failed_query_shows_last_error(self, client):
        client.post("/sources/query", json={"source_type": "USDA"})

        data = client.get("/health").json()

        assert data["sources"]["USDA"]["failures"] == 1
        assert data["sources"]["USDA"]["last_error"].startswith("HTTP 503")

    def test_no_auth_required(self, secured_client):
        assert secured_client.get("/health").status_code == 200

    def test_request_id_is_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert resp.headers["X-Request-ID"] == "req-123"
