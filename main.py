"""Application entry point instantiating the FastAPI app.

``uvicorn main:app`` serves the relay with settings from the environment;
``python main.py`` does the same on the configured host and port.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from core.config import StreamSettings, get_settings
from core.errors import RelayError, to_response
from core.stream_entry import Launcher
from core.stream_supervisor import StreamSupervisor
from logging_config import remove_sinks, setup_json_logger
from modules.camera_directory import CameraDirectory
from modules.hls.artifacts import ArtifactStore
from modules.hls.launcher import ProcessLauncher
from routers import cameras, streams

logger = logger.bind(module="app")

LauncherFactory = Callable[[StreamSettings, ArtifactStore], Launcher]


async def handle_relay_error(request: Request, exc: RelayError) -> JSONResponse:
    status, payload = to_response(exc)
    if status >= 500:
        logger.error("Unhandled relay error on {}: {}", request.url.path, exc)
    return JSONResponse(payload, status_code=status)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: StreamSettings = app.state.settings
    if app.state.setup_logging:
        level = setup_json_logger(settings)
        logger.info("Logging at {} level", level)
    store = ArtifactStore(settings.streams_dir)
    store.ensure()
    directory = CameraDirectory(settings.cameras_file)
    directory.ensure()
    launcher = app.state.launcher_factory(settings, store)
    supervisor = StreamSupervisor(settings, directory.list_active, launcher, store)
    app.state.store = store
    app.state.directory = directory
    app.state.supervisor = supervisor
    initial = asyncio.create_task(supervisor.reconcile(), name="initial-reconcile")
    logger.info("Relay ready, streams served from {}", settings.streams_dir)
    try:
        yield
    finally:
        if not initial.done():
            initial.cancel()
        await supervisor.shutdown()
        logger.info("All ffmpeg processes stopped")
        if app.state.setup_logging:
            remove_sinks()


def create_app(
    settings: StreamSettings | None = None,
    launcher_factory: LauncherFactory | None = None,
    setup_logging: bool = True,
) -> FastAPI:
    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings or get_settings()
    app.state.launcher_factory = launcher_factory or ProcessLauncher
    app.state.setup_logging = setup_logging
    app.add_exception_handler(RelayError, handle_relay_error)
    app.include_router(cameras.router)
    app.include_router(streams.router)

    @app.get("/api/v1/health")
    async def health_ping() -> dict:
        return {"ok": True, "ts": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    cfg = app.state.settings
    uvicorn.run(app, host=cfg.host, port=cfg.port)
