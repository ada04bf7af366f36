from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api import api_router
from .config import Settings
from .db import create_engine, create_session_factory, init_db
from .telegram.bot import init_bot, shutdown_bot

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


async def log_requests(request: Request, call_next) -> Response:
    path = request.url.path
    if logger.isEnabledFor(logging.DEBUG):
        body = await request.body()
        if body:
            logger.debug(
                "REQ %s %s <=\n%s", request.method, path, body.decode("utf-8", errors="replace")
            )
        else:
            logger.debug("REQ %s %s", request.method, path)
    else:
        logger.info("REQ %s %s", request.method, path)
    response = await call_next(request)
    if not logger.isEnabledFor(logging.DEBUG):
        logger.info("RES %s %s %s", request.method, path, response.status_code)
        return response

    chunks = [chunk async for chunk in response.body_iterator]
    content = b"".join(
        chunk if isinstance(chunk, bytes) else chunk.encode("utf-8") for chunk in chunks
    )
    if content:
        logger.debug(
            "RES %s %s %s =>\n%s",
            request.method,
            path,
            response.status_code,
            content.decode("utf-8", errors="replace"),
        )
    else:
        logger.debug("RES %s %s %s", request.method, path, response.status_code)
    return Response(
        content=content,
        status_code=response.status_code,
        headers=dict(response.headers),
        media_type=response.media_type,
    )


def add_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
        # Answer CORS preflight requests for any path.
        if request.method == "OPTIONS":
            return Response(status_code=status.HTTP_204_NO_CONTENT)
        # A known path with the wrong method is an unmatched route too.
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"success": False, "message": "Not Found"},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application around an explicitly constructed ``Settings``."""
    settings = settings or Settings()  # type: ignore[call-arg]

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = create_engine(settings)
        await init_db(engine, settings)
        runtime = await init_bot(settings, create_session_factory(engine))
        app.state.processor = runtime.processor
        try:
            yield
        finally:
            app.state.processor = None
            await shutdown_bot(runtime)
            await engine.dispose()

    docs_enabled = settings.environment.lower() != "production"
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
    )
    app.state.settings = settings
    app.state.processor = None
    app.middleware("http")(log_requests)
    add_exception_handlers(app)
    app.include_router(api_router)
    return app


def run() -> None:  # pragma: no cover - process entry point
    import uvicorn

    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings.log_level)
    logger.info("Ledger telegram bot service is now listening at 0.0.0.0:%s", settings.port)
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
