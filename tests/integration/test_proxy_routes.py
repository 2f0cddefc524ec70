import json

import requests


class FakeResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = payload if isinstance(payload, str) else json.dumps(payload)
        self._payload = payload

    def json(self):
        if isinstance(self._payload, str):
            raise ValueError("not json")
        return self._payload


def test_jobs_proxy_normalizes_results(client, monkeypatch) -> None:
    calls = []

    def fake_get(url, params=None, headers=None, timeout=None):
        calls.append((url, params, headers))
        return FakeResponse(
            {
                "stellenangebote": [{"titel": "Data Engineer", "arbeitgeber": "ACME", "hashId": "h1"}],
                "maxErgebnisse": "42",
                "page": {"number": 1},
            }
        )

    monkeypatch.setattr("apptracker.core.jobsearch.requests.get", fake_get)
    response = client.get("/api/jobs", params={"q": "data", "wo": "Berlin", "page": 2})

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"
    body = response.json()
    assert body["total"] == 42
    assert body["page"] == 2
    assert body["results"][0]["title"] == "Data Engineer"
    assert body["results"][0]["detailUrl"].endswith("/h1")
    assert calls[0][1]["was"] == "data"
    assert calls[0][2]["X-API-Key"]


def test_jobs_proxy_forwards_upstream_errors(client, monkeypatch) -> None:
    monkeypatch.setattr(
        "apptracker.core.jobsearch.requests.get",
        lambda *args, **kwargs: FakeResponse({"message": "rate limited"}, status_code=429),
    )
    response = client.get("/api/jobs", params={"was": "koch"})

    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "Upstream error 429"
    assert body["upstream"] == {"message": "rate limited"}
    assert "was=koch" in body["forwardedUrl"]


def test_jobs_proxy_reports_network_failures(client, monkeypatch) -> None:
    def boom(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr("apptracker.core.jobsearch.requests.get", boom)
    response = client.get("/api/jobs")
    assert response.status_code == 500
    assert response.json() == {"error": "connection refused"}


def test_keyword_suggestions_top_up_from_occupations(client, monkeypatch) -> None:
    def fake_get(url, params=None, headers=None, timeout=None):
        if "berufe" in url:
            return FakeResponse({"berufe": [{"kurzbezeichnung": "Koch/Köchin"}, {"bezeichnung": "Beikoch"}]})
        return FakeResponse({"stellenangebote": [{"titel": "Koch (m/w/d)"}]})

    monkeypatch.setattr("apptracker.core.jobsearch.requests.get", fake_get)
    body = client.get("/api/suggest/keywords", params={"q": "koch"}).json()
    assert body["suggestions"] == ["Koch/Köchin", "Koch (m/w/d)", "Beikoch"]


def test_keyword_suggestions_survive_upstream_failure(client, monkeypatch) -> None:
    def boom(*args, **kwargs):
        raise requests.Timeout("slow")

    monkeypatch.setattr("apptracker.core.jobsearch.requests.get", boom)
    response = client.get("/api/suggest/keywords", params={"q": "koch"})
    assert response.status_code == 200
    assert response.json() == {"suggestions": []}


def test_location_suggestions_filter_by_country(client, monkeypatch) -> None:
    features = [
        {"properties": {"name": "Berlin", "state": "Berlin", "countrycode": "DE"}},
        {"properties": {"name": "Berlin", "state": "New Hampshire", "countrycode": "US"}},
        {"properties": {"town": "Bad Tölz", "state": "Bayern", "country": "Deutschland"}},
        {"properties": {"name": "Mitte", "district": "Mitte-Bezirk", "country_code": "de"}},
        {"properties": {"name": "Bernau", "state": "Brandenburg", "countrycode": "XX", "country": "Germany"}},
        {"properties": {"village": "Berg", "country": "Österreich"}},
        {"properties": {"name": "Berlin", "state": "Berlin", "countrycode": "DE"}},
    ]
    monkeypatch.setattr(
        "apptracker.core.geocoding.requests.get",
        lambda *args, **kwargs: FakeResponse({"features": features}),
    )
    body = client.get("/api/suggest/locations", params={"q": "ber"}).json()
    assert body == {
        "suggestions": ["Berlin, Berlin", "Bad Tölz, Bayern", "Mitte, Mitte-Bezirk", "Bernau, Brandenburg"]
    }


def test_empty_queries_skip_upstream(client, monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise AssertionError("upstream should not be called")

    monkeypatch.setattr("apptracker.core.jobsearch.requests.get", fail)
    monkeypatch.setattr("apptracker.core.geocoding.requests.get", fail)
    assert client.get("/api/suggest/keywords", params={"q": "  "}).json() == {"suggestions": []}
    assert client.get("/api/suggest/locations").json() == {"suggestions": []}
