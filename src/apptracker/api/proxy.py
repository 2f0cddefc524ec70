from __future__ import annotations

import logging

import requests
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from apptracker.core.geocoding import LocationClient
from apptracker.core.jobsearch import JobSearchClient, JobSearchParams, UpstreamError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["proxy"])

_NO_STORE = {"Cache-Control": "no-store"}


@router.get("/jobs")
def search_jobs(
    was: str = "",
    q: str = "",
    wo: str = "",
    umkreis: str = "",
    page: int = 1,
    size: int = 20,
    angebotsart: str = "1",
    arbeitszeit: str = "",
    sortierung: str = "",
) -> JSONResponse:
    params = JobSearchParams(
        was=was or q,
        wo=wo,
        umkreis=umkreis,
        page=page,
        size=size,
        angebotsart=angebotsart,
        arbeitszeit=arbeitszeit,
        sortierung=sortierung,
    )
    try:
        result = JobSearchClient().search(params)
    except UpstreamError as exc:
        return JSONResponse(
            {"error": f"Upstream error {exc.status_code}", "upstream": exc.body, "forwardedUrl": exc.forwarded_url},
            status_code=exc.status_code,
            headers=_NO_STORE,
        )
    except (requests.RequestException, ValueError) as exc:
        logger.exception("Job search proxy failed")
        return JSONResponse({"error": str(exc) or "Unexpected error"}, status_code=500, headers=_NO_STORE)
    return JSONResponse(result.model_dump(), headers=_NO_STORE)


@router.get("/suggest/keywords")
def suggest_keywords(q: str = "") -> JSONResponse:
    return JSONResponse({"suggestions": JobSearchClient().keyword_suggestions(q)}, headers=_NO_STORE)


@router.get("/suggest/locations")
def suggest_locations(q: str = "") -> JSONResponse:
    return JSONResponse({"suggestions": LocationClient().suggestions(q)}, headers=_NO_STORE)
