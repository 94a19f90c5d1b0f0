"""FastAPI application factory for the reposcan HTTP API."""

from __future__ import annotations

from fastapi import FastAPI

from reposcan import __version__
from reposcan.config import ReposcanConfig
from reposcan.scanner.service import ScanService
from reposcan.storage.db import get_db
from reposcan.storage.repos import SqliteJobRepo


async def create_app(
    config: ReposcanConfig | None = None,
    service: ScanService | None = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    config = config or ReposcanConfig.load()

    app = FastAPI(
        title="reposcan",
        version=__version__,
        docs_url="/api/docs",
    )

    app.state.config = config
    if service is None:
        app.state.db = await get_db(config.db_path)
        service = ScanService.from_config(config, SqliteJobRepo(app.state.db))
    app.state.service = service

    from reposcan.web.api.scans import router as scans_router

    app.include_router(scans_router, prefix="/api")

    @app.on_event("shutdown")
    async def shutdown() -> None:
        await app.state.service.shutdown()
        if hasattr(app.state, "db"):
            await app.state.db.close()

    return app
