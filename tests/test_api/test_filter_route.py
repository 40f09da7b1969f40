"""Tests for the /filter endpoint."""


class TestFilterRoute:
    def test_combined_results(self, client):
        resp = client.post(
            "/filter",
            json={"sources": [{"source_type": "FDA"}, {"source_type": "WHO"}]},
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["total_results"] == 3
        assert [r["source"] for r in data["results"]] == ["FDA", "WHO"]
        assert data["pagination"] == {"limit": 50, "offset": 0}

    def test_shared_facets_and_pagination(self, client):
        resp = client.post(
            "/filter",
            json={
                "sources": [{"source_type": "FDA"}, {"source_type": "WHO"}],
                "shared": {"urgency": ["Critical", "High"]},
                "sorting": {"field": "published_date", "direction": "asc"},
                "pagination": {"limit": 1},
            },
        )

        data = resp.json()
        assert data["total_results"] == 2
        page = [r["id"] for result in data["results"] for r in result["data"]]
        assert page == ["who_1"]

    def test_failed_source_included(self, client):
        data = client.post(
            "/filter",
            json={"sources": [{"source_type": "USDA"}, {"source_type": "FDA"}]},
        ).json()

        assert data["results"][0]["success"] is False
        assert data["total_results"] == 2

    def test_invalid_pagination_is_rejected(self, client):
        resp = client.post(
            "/filter",
            json={"sources": [{"source_type": "FDA"}], "pagination": {"limit": 0}},
        )

        assert resp.status_code == 422
