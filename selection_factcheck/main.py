import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .routers import fact_check
from .trial_quota import TrialQuotaMeter

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("fact_checking")

# chrome-extension://<id>, moz-extension://<id>, and local development servers
DEFAULT_ORIGIN_REGEX = r"^((chrome|moz)-extension://.+|https?://(localhost|127\.0\.0\.1)(:\d+)?)$"


def _field_path(loc: tuple[Any, ...]) -> str:
    parts = [str(p) for p in loc]
    if len(parts) > 1 and parts[0] in ("body", "header", "query"):
        parts = parts[1:]
    return ".".join(parts)


def _field_errors(errors: list[dict[str, Any]]) -> dict[str, list[str]]:
    """Group pydantic errors as {"userPreferences.maxSources": ["..."]}."""
    grouped: dict[str, list[str]] = {}
    for err in errors:
        msg = str(err.get("msg", "invalid value"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        grouped.setdefault(_field_path(tuple(err.get("loc", ()))), []).append(msg)
    return grouped


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        settings = get_settings()
    logging.getLogger("fact_checking").setLevel(settings.log_level.upper())

    app = FastAPI(title="Selection Fact-Check Service", version="1.0.0")
    app.state.trial_quota = TrialQuotaMeter(settings)
    app.dependency_overrides[get_settings] = lambda: settings

    if settings.cors_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allowed_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=DEFAULT_ORIGIN_REGEX,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = _field_errors(exc.errors())
        logger.info("Request validation failed: path=%s errors=%s", request.url.path, errors)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": {"title": fact_check.VALIDATION_TITLE, "errors": errors}},
        )

    @app.on_event("startup")
    async def startup() -> None:
        logger.info(
            "Selection fact-check starting: trial_enabled=%s trial_provider=%s",
            settings.trial_enabled,
            settings.trial_provider,
        )

    @app.on_event("shutdown")
    async def shutdown() -> None:
        app.state.trial_quota.clear()

    @app.get("/api/health")
    async def health() -> dict:
        return {"status": "ok", "utcTime": datetime.now(timezone.utc).isoformat()}

    app.include_router(fact_check.router, prefix="/api")
    return app


app = create_app()
