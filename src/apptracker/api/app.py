from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from apptracker.api.cron import router as cron_router
from apptracker.api.proxy import router as proxy_router
from apptracker.api.routes import router as api_router
from apptracker.config import get_settings
from apptracker.db.init import init_database
from apptracker.logging_config import configure_logging
from apptracker.web.routes import router as web_router


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()
    static_dir = Path(__file__).resolve().parents[1] / "web" / "static"

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup() -> None:
        init_database()

    @app.get("/health")
    def health() -> JSONResponse:
        return JSONResponse({"status": "ok", "env": settings.app_env})

    app.include_router(api_router)
    app.include_router(proxy_router)
    app.include_router(cron_router)
    if settings.web_ui_enabled:
        app.include_router(web_router)

    app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")
    return app
