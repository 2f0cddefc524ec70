from __future__ import annotations

import logging
from typing import Any

import requests

from apptracker.config import Settings, get_settings

logger = logging.getLogger(__name__)

PHOTON_LIMIT = 12
MAX_LOCATIONS = 8
_COUNTRY_NAMES = {"Deutschland", "Germany"}
_NAME_FIELDS = ("name", "city", "town", "village", "state", "county")
_REGION_FIELDS = ("state", "county", "district")


def _first(properties: dict[str, Any], fields: tuple[str, ...]) -> str:
    for field in fields:
        value = properties.get(field)
        if value:
            return str(value)
    return ""


def _feature_label(properties: dict[str, Any]) -> str:
    """``"name, region"``; a city-state keeps both parts, e.g. ``"Berlin, Berlin"``."""
    parts = (_first(properties, _NAME_FIELDS), _first(properties, _REGION_FIELDS))
    return ", ".join(part for part in parts if part)


class LocationClient:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def _in_country(self, properties: dict[str, Any]) -> bool:
        code = str(properties.get("countrycode") or properties.get("country_code") or "").lower()
        return code == self.settings.location_country_code.lower() or properties.get("country") in _COUNTRY_NAMES

    def suggestions(self, query: str) -> list[str]:
        needle = query.strip()
        if not needle:
            return []
        try:
            response = requests.get(
                self.settings.photon_base_url,
                params={"q": needle, "lang": self.settings.photon_lang, "limit": str(PHOTON_LIMIT)},
                timeout=self.settings.http_timeout_sec,
            )
            if not response.ok:
                logger.warning("Location lookup returned %s", response.status_code)
                return []
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Location lookup failed: %s", exc)
            return []

        features = data.get("features") if isinstance(data, dict) else None
        labels: list[str] = []
        for feature in features if isinstance(features, list) else []:
            properties = feature.get("properties") if isinstance(feature, dict) else None
            if not isinstance(properties, dict) or not self._in_country(properties):
                continue
            label = _feature_label(properties)
            if label and label not in labels:
                labels.append(label)
            if len(labels) >= MAX_LOCATIONS:
                break
        return labels
