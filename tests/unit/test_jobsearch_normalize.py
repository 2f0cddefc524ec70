from apptracker.core.jobsearch import JobSearchParams, extract_total, normalize_posting

DETAIL = "https://jobs.example.test/detail"


def test_extract_total_prefers_first_known_field() -> None:
    assert extract_total({"maxErgebnisse": "120", "page": {"totalElements": 7}}) == 120
    assert extract_total({"page": {"totalElements": 7}, "gesamt": 3}) == 7


def test_extract_total_skips_invalid_values() -> None:
    data = {"maxErgebnisse": -1, "stellenangeboteGesamt": True, "totalElements": "abc", "gesamtAnzahl": 4.5}
    assert extract_total(data) == 4.5
    assert extract_total({"maxErgebnisse": float("inf")}) is None
    assert extract_total([]) is None


def test_normalize_posting_builds_detail_url_from_hash_id() -> None:
    posting = normalize_posting(
        {
            "titel": "Data Engineer",
            "arbeitgeber": "ACME GmbH",
            "hashId": "abc/123",
            "arbeitsort": {"ort": "Berlin", "region": "Berlin", "land": "Deutschland"},
            "entfernung": 4,
        },
        DETAIL,
    )
    assert posting.title == "Data Engineer"
    assert posting.employer == "ACME GmbH"
    assert posting.location == "Berlin, Berlin, Deutschland"
    assert posting.detailUrl == f"{DETAIL}/abc%2F123"
    assert posting.distanceKm == 4


def test_normalize_posting_prefers_external_url_and_falls_back_on_title() -> None:
    posting = normalize_posting(
        {
            "externeUrl": "  https://careers.example.test/42  ",
            "arbeitgeber": {"name": "Example AG"},
            "arbeitsorte": [{"ort": "Hamburg"}],
        },
        DETAIL,
    )
    assert posting.title == "Ohne Titel"
    assert posting.employer == "Example AG"
    assert posting.location == "Hamburg"
    assert posting.detailUrl == "https://careers.example.test/42"


def test_search_params_drop_empty_values_and_clamp_paging() -> None:
    params = JobSearchParams(was="python", page=0, size=0)
    assert params.to_query() == {"was": "python", "angebotsart": "1", "page": "1", "size": "1"}
