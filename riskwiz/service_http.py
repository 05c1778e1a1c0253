# FILE: riskwiz/service_http.py
from __future__ import annotations

import contextlib
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from .cache import ResultCache
from .config import Settings, make_reloadable_settings
from .datasets import DatasetRegistry
from .dispatch import build_strategy
from .errors import InputError, WizardError
from .logging import (
    RequestLogMiddleware,
    configure_json_logging,
    ensure_request_id,
    get_logger,
    reset,
)
from .metrics import WizardMetrics
from .orchestrator import DashboardOrchestrator
from .schemas import DashboardRequest, DashboardResult, ErrorResponse

DASHBOARD_ROUTE = "/api/wizard/dashboard"


# ---------------------------------------------------------------------------
# HTTP plane configuration
# ---------------------------------------------------------------------------


def _split_env_list(name: str) -> List[str]:
    raw = os.environ.get(name, "")
    return [p.strip() for p in raw.split(",") if p.strip()]


@dataclass
class ServiceHttpConfig:
    """Knobs of the HTTP surface that are not part of the wizard Settings."""

    enable_docs: bool = False

    # Body-level defenses
    max_body_bytes: int = 64 * 1024

    # CORS
    cors_allow_all: bool = False
    cors_origins: Tuple[str, ...] = (
        "http://127.0.0.1",
        "http://127.0.0.1:3000",
        "http://localhost",
        "http://localhost:3000",
    )

    @classmethod
    def from_env(cls) -> "ServiceHttpConfig":
        cfg = cls()
        cfg.enable_docs = os.environ.get("RISKWIZ_HTTP_ENABLE_DOCS", "0") == "1"
        try:
            cfg.max_body_bytes = max(1024, int(os.environ.get("RISKWIZ_HTTP_MAX_BODY_BYTES", cfg.max_body_bytes)))
        except ValueError:
            pass
        cfg.cors_allow_all = os.environ.get("RISKWIZ_HTTP_CORS_ALLOW_ALL", "0") == "1"
        origins = _split_env_list("RISKWIZ_HTTP_CORS_ORIGINS")
        if origins:
            cfg.cors_origins = tuple(origins)
        return cfg


# ---------------------------------------------------------------------------
# Error bodies
# ---------------------------------------------------------------------------


def _error_body(error: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return ErrorResponse(error=error, message=message, details=details or None).model_dump(
        exclude_none=True
    )


def _wizard_error_response(exc: WizardError) -> JSONResponse:
    """
    Input errors are the caller's fault (400); anything that went wrong after
    the inputs were accepted is a 500, with the specific kind under details.
    """
    headers = {"X-Request-Id": exc.fingerprint} if exc.fingerprint else None
    if isinstance(exc, InputError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content=exc.to_dict(), headers=headers
        )
    payload = exc.to_dict()
    details = dict(payload.get("details") or {}, kind=exc.code)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("internal_server_error", exc.message, details),
        headers=headers,
    )


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = str(err.get("msg") or "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "Malformed request: " + ("; ".join(parts) if parts else "invalid body")


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Optional[Settings] = None,
    *,
    orchestrator: Optional[DashboardOrchestrator] = None,
    http_cfg: Optional[ServiceHttpConfig] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the wizard HTTP surface:

    - POST /api/wizard/dashboard: run one orchestration call;
    - /healthz, /readyz, /version: liveness and build info;
    - /metrics: Prometheus text exposition of this app's registry.

    Registry, cache and strategy are created here from `settings` unless a
    ready orchestrator is injected.
    """
    settings = settings or make_reloadable_settings().get()
    http_cfg = http_cfg or ServiceHttpConfig.from_env()

    if configure_logging:
        configure_json_logging(settings.log_level)
        logger = get_logger("riskwiz.http")
    else:
        logger = logging.getLogger("riskwiz.http")

    metrics = WizardMetrics(
        version=settings.version,
        config_hash=settings.config_hash(),
        enabled=settings.prom_enabled,
    )
    if orchestrator is None:
        registry = DatasetRegistry.from_settings(settings)
        cache: ResultCache[DashboardResult] = ResultCache(default_ttl_s=settings.cache_ttl_s)
        orchestrator = DashboardOrchestrator(
            registry,
            cache,
            build_strategy(settings, registry),
            metrics=metrics,
        )
    elif orchestrator.metrics is None:
        orchestrator.metrics = metrics

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info(
            "service.start",
            extra={"mode": orchestrator.mode, "dataset_hash": orchestrator.registry.hash()},
        )
        yield
        await orchestrator.strategy.aclose()

    app = FastAPI(
        title="riskwiz",
        version=settings.version,
        openapi_url="/openapi.json" if http_cfg.enable_docs else None,
        docs_url="/docs" if http_cfg.enable_docs else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.metrics = metrics

    allowed_origins = ["*"] if http_cfg.cors_allow_all else list(http_cfg.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id", "X-Riskwiz-Config-Hash"],
    )

    # Edge guard: body size, request id, HTTP metrics
    @app.middleware("http")
    async def body_size_guard(request: Request, call_next):
        cl = request.headers.get("content-length")
        if cl is not None:
            try:
                cl_v = int(cl)
            except ValueError:
                return JSONResponse(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    content=_error_body("invalid_request", "invalid content-length"),
                )
            if cl_v > http_cfg.max_body_bytes:
                return JSONResponse(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    content=_error_body("payload_too_large", "body too large"),
                )

        ensure_request_id(request.headers)
        t0 = time.perf_counter()
        route_path = request.scope.get("path", "unknown")
        try:
            response = await call_next(request)
        finally:
            reset()
        if response.status_code == status.HTTP_404_NOT_FOUND:
            route_path = "unmatched"  # keep unknown paths out of label values
        metrics.observe_http(
            route=route_path,
            method=request.method,
            status=response.status_code,
            seconds=max(0.0, time.perf_counter() - t0),
        )
        response.headers["X-Riskwiz-Config-Hash"] = settings.config_hash()
        return response

    app.add_middleware(RequestLogMiddleware)

    # -----------------------------------------------------------------------
    # Error mapping: every error leaves as {error, message}
    # -----------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def _on_validation_error(_request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body("invalid_request", _validation_message(exc)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _on_http_error(_request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
            body = _error_body("method_not_allowed", "Only POST allowed")
        elif exc.status_code == status.HTTP_404_NOT_FOUND:
            body = _error_body("not_found", "Not found")
        else:
            body = _error_body("http_error", str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)

    @app.exception_handler(WizardError)
    async def _on_wizard_error(_request: Request, exc: WizardError):
        return _wizard_error_response(exc)

    @app.exception_handler(Exception)
    async def _on_unhandled(request: Request, exc: Exception):
        logger.exception(
            "wizard.unhandled_error",
            extra={"path": request.url.path, "method": request.method},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(
                "internal_server_error",
                "Unexpected server error",
                {"kind": type(exc).__name__},
            ),
        )

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    @app.get("/metrics")
    def metrics_endpoint() -> Response:
        body, content_type = metrics.render()
        return Response(body, media_type=content_type)

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {
            "ok": True,
            "mode": orchestrator.mode,
            "config_hash": settings.config_hash(),
            "dataset_hash": orchestrator.registry.hash(),
            "cache_entries": len(orchestrator.cache),
            "prom": bool(settings.prom_enabled),
        }

    @app.get("/readyz")
    def readyz() -> Dict[str, Any]:
        return {"ready": True, "mode": orchestrator.mode, "version": settings.version}

    @app.get("/version")
    def version() -> Dict[str, Any]:
        return {
            "version": settings.version,
            "config_origin": settings.config_origin,
            "mode": settings.mode,
            "dataset_versions": dict(orchestrator.registry.current()),
        }

    @app.post(DASHBOARD_ROUTE, response_model=DashboardResult)
    async def dashboard(req: DashboardRequest) -> JSONResponse:
        inputs = req.to_inputs()
        try:
            result = await orchestrator.get_dashboard(inputs)
        except WizardError as exc:
            if not isinstance(exc, InputError):
                logger.error("wizard.api_error", extra={"error_detail": exc.to_dict()})
            raise
        # Already validated; skip response_model re-validation.
        return JSONResponse(
            content=result.model_dump(mode="json"),
            headers={"X-Request-Id": orchestrator.request_key(inputs)},
        )

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        create_app(),
        host=os.environ.get("RISKWIZ_HTTP_HOST", "127.0.0.1"),
        port=int(os.environ.get("RISKWIZ_HTTP_PORT", "8000")),
        log_config=None,
    )
