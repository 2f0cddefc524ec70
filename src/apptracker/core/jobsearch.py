from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlencode

import requests

from apptracker.config import Settings, get_settings
from apptracker.core.ranking import pluck_titles, rank_suggestions
from apptracker.types import JobPosting, JobSearchPage

logger = logging.getLogger(__name__)

TOTAL_FIELDS: tuple[tuple[str, ...], ...] = (
    ("maxErgebnisse",),
    ("stellenangeboteGesamt",),
    ("page", "totalElements"),
    ("totalElements",),
    ("gesamt",),
    ("gesamtAnzahl",),
)

KEYWORD_TOP_UP_THRESHOLD = 4


class UpstreamError(Exception):
    def __init__(self, status_code: int, body: Any, forwarded_url: str):
        super().__init__(f"Upstream error {status_code}")
        self.status_code = status_code
        self.body = body
        self.forwarded_url = forwarded_url


@dataclass(slots=True)
class JobSearchParams:
    was: str = ""
    wo: str = ""
    umkreis: str = ""
    page: int = 1
    size: int = 20
    angebotsart: str = "1"
    arbeitszeit: str = ""
    sortierung: str = ""

    def __post_init__(self) -> None:
        self.page = max(1, self.page)
        self.size = max(1, self.size)

    def to_query(self) -> dict[str, str]:
        query: dict[str, str] = {}
        for key in ("was", "wo", "umkreis", "angebotsart", "arbeitszeit", "sortierung"):
            value = getattr(self, key)
            if value:
                query[key] = value
        query["page"] = str(self.page)
        query["size"] = str(self.size)
        return query


def _as_number(value: Any) -> int | float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number: float = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return int(number) if number.is_integer() else number


def extract_total(data: Any) -> int | float | None:
    """Return the first recognized total-count field that is a finite, non-negative number."""
    if not isinstance(data, dict):
        return None
    for path in TOTAL_FIELDS:
        value: Any = data
        for key in path:
            value = value.get(key) if isinstance(value, dict) else None
        number = _as_number(value)
        if number is not None:
            return number
    return None


def _first_string(*values: Any) -> str | None:
    for value in values:
        if isinstance(value, str) and value:
            return value
    return None


def _location_label(raw: dict[str, Any]) -> str:
    location = raw.get("arbeitsort")
    if location is None:
        places = raw.get("arbeitsorte")
        location = places[0] if isinstance(places, list) and places else {}
    if isinstance(location, str):
        return location
    if not isinstance(location, dict):
        return ""
    parts = [location.get("ort"), location.get("region"), location.get("land")]
    return ", ".join(str(part) for part in parts if part)


def normalize_posting(raw: dict[str, Any], detail_base_url: str) -> JobPosting:
    title = _first_string(
        raw.get("titel"),
        raw.get("beruf"),
        raw.get("stellenbezeichnung"),
        raw.get("berufsbezeichnung"),
    ) or "Ohne Titel"

    employer_field = raw.get("arbeitgeber")
    employer = _first_string(
        employer_field if isinstance(employer_field, str) else None,
        employer_field.get("name") if isinstance(employer_field, dict) else None,
        raw.get("unternehmen"),
        raw.get("firma"),
    ) or ""

    hash_id = _first_string(raw.get("hashId"), raw.get("hashID"), raw.get("refnr"))

    external = _first_string(raw.get("externeUrl"), raw.get("externeURL"), raw.get("externeurl"))
    external = external.strip() if external and external.strip() else None
    detail_url = external
    if detail_url is None and hash_id:
        detail_url = f"{detail_base_url.rstrip('/')}/{quote(hash_id, safe='')}"

    return JobPosting(
        title=title,
        employer=employer,
        location=_location_label(raw),
        hashId=hash_id,
        detailUrl=detail_url,
        offerType=raw.get("angebotsart") or raw.get("arbeitszeit"),
        logoUrl=_first_string(raw.get("arbeitgeberLogo"), raw.get("logoUrl")),
        distanceKm=raw.get("entfernung"),
    )


class JobSearchClient:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def _headers(self, api_key: str) -> dict[str, str]:
        return {"X-API-Key": api_key, "Accept": "application/json"}

    def search(self, params: JobSearchParams) -> JobSearchPage:
        query = params.to_query()
        forwarded_url = f"{self.settings.jobsuche_base_url}?{urlencode(query)}"
        response = requests.get(
            self.settings.jobsuche_base_url,
            params=query,
            headers=self._headers(self.settings.jobsuche_api_key),
            timeout=self.settings.http_timeout_sec,
        )
        text = response.text

        if not response.ok:
            try:
                body: Any = json.loads(text)
            except ValueError:
                body = text
            logger.warning("Job search upstream returned %s for %s", response.status_code, forwarded_url)
            raise UpstreamError(response.status_code, body, forwarded_url)

        data = json.loads(text)
        rows = data.get("stellenangebote") if isinstance(data, dict) else None
        postings = [
            normalize_posting(row, self.settings.jobsuche_detail_url)
            for row in (rows if isinstance(rows, list) else [])
            if isinstance(row, dict)
        ]
        return JobSearchPage(
            results=postings,
            total=extract_total(data),
            page=params.page,
            size=params.size,
            upstreamPage=data.get("page") if isinstance(data, dict) else None,
        )

    def keyword_suggestions(self, query: str, max_results: int = 8) -> list[str]:
        needle = query.strip()
        if not needle:
            return []

        suggestions: list[str] = []
        try:
            response = requests.get(
                self.settings.jobsuche_base_url,
                params={"was": needle, "size": "25", "veroeffentlichtseit": "100"},
                headers=self._headers(self.settings.jobsuche_api_key),
                timeout=self.settings.http_timeout_sec,
            )
            if response.ok:
                data = response.json()
                jobs = data.get("stellenangebote") if isinstance(data, dict) else None
                for job in jobs if isinstance(jobs, list) else []:
                    suggestions.extend(pluck_titles(job))
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Keyword suggestions from job search failed: %s", exc)

        if len(suggestions) < KEYWORD_TOP_UP_THRESHOLD:
            suggestions.extend(self._occupation_names(needle))

        return rank_suggestions(needle, suggestions, max_results)

    def _occupation_names(self, query: str) -> list[str]:
        try:
            response = requests.get(
                self.settings.berufenet_base_url,
                params={"suchwoerter": f"{query}*", "page": "0"},
                headers=self._headers(self.settings.berufenet_api_key),
                timeout=self.settings.http_timeout_sec,
            )
            if not response.ok:
                return []
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Occupation lookup failed: %s", exc)
            return []

        rows: Any = []
        if isinstance(data, dict):
            rows = data.get("berufe") or data.get("result") or []
        names: list[str] = []
        for row in rows if isinstance(rows, list) else []:
            if not isinstance(row, dict):
                continue
            name = _first_string(
                row.get("kurzbezeichnung"),
                row.get("kurzBezeichnung"),
                row.get("bezeichnung"),
                row.get("name"),
            )
            if name:
                names.append(name)
        return names
