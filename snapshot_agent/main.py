from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .browser import BrowserSessionManager
from .config import Settings
from .errors import BrowserLaunchError, ErrorKind, ScreenshotError
from .models import ErrorResponse, HealthResponse, ScreenshotFailure, ScreenshotRequest
from .screenshot import ScreenshotService
from .url_guard import validate_url

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

MISSING_URL = "Missing required field: url"
BROWSER_UNAVAILABLE = "Screenshot service unavailable: browser failed to launch"


def get_screenshot_service(request: Request) -> ScreenshotService:
    return request.app.state.screenshots


def create_app(settings: Settings | None = None, sessions: BrowserSessionManager | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.getLogger().setLevel(settings.log_level)
    sessions = sessions or BrowserSessionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Screenshot backend running on http://%s:%d", settings.host, settings.port)
        logger.info("POST /screenshot - Submit a URL to get a screenshot")
        logger.info("GET /health - Check service status")
        yield
        logger.info("Shutting down gracefully...")
        await sessions.shutdown()

    app = FastAPI(title="Snapshot Agent", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.sessions = sessions
    app.state.screenshots = ScreenshotService(sessions, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ScreenshotError)
    async def screenshot_error_handler(request: Request, exc: ScreenshotError):
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message).model_dump(),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg", "malformed body") if errors else "malformed body"
        return JSONResponse(status_code=400, content=ErrorResponse(error=f"Invalid request body: {detail}").model_dump())

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse()

    @app.post(
        "/screenshot",
        response_class=Response,
        responses={
            200: {"content": {"image/png": {}}},
            400: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
            503: {"model": ErrorResponse},
            504: {"model": ErrorResponse},
        },
    )
    async def screenshot_endpoint(
        req: ScreenshotRequest,
        service: ScreenshotService = Depends(get_screenshot_service),
    ):
        if not req.url:
            raise ScreenshotError(ErrorKind.INVALID_REQUEST, 400, MISSING_URL)

        validation = validate_url(req.url)
        if not validation.valid:
            logger.info("Rejected screenshot URL %r: %s", req.url, validation.reason)
            raise ScreenshotError(ErrorKind.VALIDATION_REJECTED, 400, validation.reason)

        try:
            outcome = await service.render(req.url)
        except BrowserLaunchError as e:
            logger.critical("%s", e)
            raise ScreenshotError(ErrorKind.RENDERING_FAILURE, 503, BROWSER_UNAVAILABLE) from e

        if isinstance(outcome, ScreenshotFailure):
            raise ScreenshotError(outcome.kind, outcome.status_code, outcome.message)
        return Response(content=outcome.image, media_type=outcome.mime, headers={"cache-control": "no-store"})

    return app


app = create_app()


def run() -> None:
    settings = app.state.settings
    # uvicorn maps SIGINT/SIGTERM to lifespan shutdown, which closes the browser.
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
