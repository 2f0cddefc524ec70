from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

DEFAULT_MAX_SUGGESTIONS = 8

_TITLE_FIELDS = ("titel", "bezeichnung", "stellenbezeichnung", "beruf", "headline")
_NESTED_TITLE_FIELDS = ("titel", "bezeichnung")


def _collapse(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def rank_suggestions(query: str, candidates: Iterable[str], max_results: int = DEFAULT_MAX_SUGGESTIONS) -> list[str]:
    """Rank candidates containing ``query`` by a single ascending score.

    The score is ``starts * 1000 + index * 10 + length``: a prefix match wins
    outright, while among inner matches a much shorter string can beat a
    slightly earlier match. Ties keep input order.
    """
    needle = query.strip().lower()
    seen: set[str] = set()
    unique: list[str] = []
    for candidate in candidates:
        if not isinstance(candidate, str):
            continue
        cleaned = _collapse(candidate)
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        unique.append(cleaned)

    scored: list[tuple[int, str]] = []
    for candidate in unique:
        lowered = candidate.lower()
        index = lowered.find(needle)
        if index == -1:
            continue
        starts = 0 if index == 0 else 1
        scored.append((starts * 1000 + index * 10 + len(lowered), candidate))

    scored.sort(key=lambda pair: pair[0])
    return [candidate for _, candidate in scored[: max(0, max_results)]]


def pluck_titles(job: Any) -> list[str]:
    if not isinstance(job, dict):
        return []

    found: dict[str, None] = {}

    def take(source: Any, keys: tuple[str, ...]) -> None:
        if not isinstance(source, dict):
            return
        for key in keys:
            value = source.get(key)
            if isinstance(value, str):
                found.setdefault(value, None)

    take(job, _TITLE_FIELDS)
    take(job.get("aktuelleVeroeffentlichung"), _NESTED_TITLE_FIELDS)
    take(job.get("stellenbeschreibung"), _NESTED_TITLE_FIELDS)

    occupations = job.get("berufe")
    if isinstance(occupations, list):
        for item in occupations:
            if isinstance(item, str):
                found.setdefault(item, None)
            elif isinstance(item, dict) and isinstance(item.get("bezeichnung"), str):
                found.setdefault(item["bezeichnung"], None)

    return list(found)
