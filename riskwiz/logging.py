# FILE: riskwiz/logging.py
from __future__ import annotations

import contextvars
import datetime as _dt
import json
import logging
import os
import sys
import time
import traceback
import uuid
from typing import Any, Dict, Mapping, Optional, Sequence, Set

# ---------- Module-level config (env-driven, safe defaults) ----------
_LOG_SCHEMA = os.environ.get("RISKWIZ_LOG_SCHEMA", "riskwiz.log.v1")
_LOG_SERVICE = os.environ.get("RISKWIZ_SERVICE", "riskwiz")
_LOG_VERSION = os.environ.get("RISKWIZ_VERSION", "0.0.0")
_LOG_ENV = os.environ.get("RISKWIZ_ENV", os.environ.get("ENV", "dev"))
_LOG_INSTANCE = os.environ.get(
    "RISKWIZ_INSTANCE", os.uname().nodename if hasattr(os, "uname") else "unknown"
)

# Max chars per string field (truncate to keep JSON small)
try:
    _MAX_FIELD = max(512, int(os.environ.get("RISKWIZ_LOG_MAX_FIELD", "8192")))
except ValueError:
    _MAX_FIELD = 8192

_INCLUDE_STACK = os.environ.get("RISKWIZ_LOG_INCLUDE_STACK", "1") == "1"

# Verbosity names used by the configuration layer -> logging levels.
# "silent" keeps every event flowing through the logging tree; only the
# handler refuses to render it.
VERBOSITY_LEVELS: Dict[str, int] = {
    "verbose": logging.DEBUG,
    "normal": logging.INFO,
    "silent": logging.CRITICAL + 1,
}

# Redaction keys (case-insensitive, for headers / obvious secrets)
_REDACT_KEYS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
}

# Standard LogRecord attributes that are not treated as dynamic meta
_LOG_RECORD_STD_ATTRS: Set[str] = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
}

# Envelope fields lifted from bound context or record attributes.
_ENVELOPE_FIELDS = (
    "req_id",
    "event",
    "mode",
    "stage",
    "outcome",
    "path",
    "method",
    "status",
    "latency_ms",
)

# ---------- Context management ----------
_log_ctx: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "riskwiz_log_ctx", default={}
)


def bind(**fields: Any) -> None:
    """Merge fields into the current logging context (per-coroutine)."""
    cur = dict(_log_ctx.get())
    for k, v in fields.items():
        if v is None:
            continue
        cur[str(k)] = v
    _log_ctx.set(cur)


def unbind(*keys: str) -> None:
    cur = dict(_log_ctx.get())
    for k in keys:
        cur.pop(k, None)
    _log_ctx.set(cur)


def reset() -> None:
    _log_ctx.set({})


def context() -> Dict[str, Any]:
    return dict(_log_ctx.get())


# ---------- Helpers ----------
def _ts_iso() -> str:
    # RFC3339 with milliseconds, UTC Z
    now = _dt.datetime.now(_dt.timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _compact_json(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=str)


def _truncate(v: Any) -> Any:
    if isinstance(v, str) and len(v) > _MAX_FIELD:
        return v[:_MAX_FIELD] + "...<truncated>"
    if isinstance(v, dict):
        return {k: _truncate(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_truncate(x) for x in v]
    return v


def scrub_dict(d: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Scrub obvious secrets from a dict (typically HTTP headers).

    Keys listed in `_REDACT_KEYS` get replaced by "***". Nested dictionaries
    are scrubbed recursively.
    """
    out: Dict[str, Any] = {}
    for k, v in (d or {}).items():
        if k.lower() in _REDACT_KEYS:
            out[k] = "***"
        else:
            out[k] = v if not isinstance(v, dict) else scrub_dict(v)
    return out


def _meta_from_record(record: logging.LogRecord, evt_keys: Set[str]) -> Dict[str, Any]:
    meta: Dict[str, Any] = {}
    for k, v in record.__dict__.items():
        if k in _LOG_RECORD_STD_ATTRS or k in evt_keys or k.startswith("_"):
            continue
        meta[k] = _truncate(v)
    return meta


# ---------- JSON formatter ----------
class JSONFormatter(logging.Formatter):
    """
    JSON formatter with a stable envelope.

    Core envelope fields:
      - schema, service, version, env, instance
      - ts, lvl, msg, logger
      - req_id (the request fingerprint during orchestration), event, mode,
        stage, outcome
      - path, method, status, latency_ms (HTTP lines)

    Everything else passed through `extra=` lands under "meta".
    """

    def __init__(self, *, include_stack: bool = True):
        super().__init__()
        self.include_stack = include_stack

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        ctx = context()

        evt: Dict[str, Any] = {
            "schema": _LOG_SCHEMA,
            "service": _LOG_SERVICE,
            "version": _LOG_VERSION,
            "env": _LOG_ENV,
            "instance": _LOG_INSTANCE,
            "ts": _ts_iso(),
            "lvl": record.levelname,
            "logger": record.name,
            "msg": str(record.getMessage()),
        }

        # Record attributes win over bound context for the same key.
        for name in _ENVELOPE_FIELDS:
            v = getattr(record, name, None)
            if v is None:
                v = ctx.get(name)
            if v is not None:
                evt[name] = _truncate(v)

        if record.exc_info and self.include_stack:
            exc_type, exc_val, exc_tb = record.exc_info
            evt["exc_type"] = getattr(exc_type, "__name__", str(exc_type))
            evt["exc_message"] = str(exc_val)[:_MAX_FIELD]
            evt["stack"] = "".join(
                traceback.format_exception(exc_type, exc_val, exc_tb)
            )[:_MAX_FIELD]

        meta = _meta_from_record(record, set(evt.keys()))
        if meta:
            evt["meta"] = meta

        return _compact_json(evt)


# ---------- Root / uvicorn integration ----------
def _clear_handlers(logger: logging.Logger, *, owned_only: bool = False) -> None:
    for h in list(logger.handlers):
        if owned_only and not getattr(h, "_riskwiz_json", False):
            continue
        logger.removeHandler(h)


def resolve_level(level: str) -> int:
    """Accept verbosity names (verbose/normal/silent) or logging level names."""
    name = (level or "normal").strip().lower()
    if name in VERBOSITY_LEVELS:
        return VERBOSITY_LEVELS[name]
    return getattr(logging, name.upper(), logging.INFO)


def configure_json_logging(
    level: str = "normal",
    *,
    include_uvicorn: bool = True,
    stream: Any = None,
    include_stack: bool = _INCLUDE_STACK,
) -> logging.Logger:
    """
    Configure root (+ optionally uvicorn) for JSON output.

    Loggers stay at DEBUG/INFO even when the verbosity is "silent": the
    events are still produced, the handler just does not write them.
    """
    global _configured
    lvl = resolve_level(level)
    stream = stream or sys.stderr

    h = logging.StreamHandler(stream=stream)
    h.setFormatter(JSONFormatter(include_stack=include_stack))
    h.setLevel(lvl)
    h._riskwiz_json = True  # type: ignore[attr-defined]

    # Root keeps foreign handlers (pytest capture, embedding apps); only a
    # previously installed JSON handler is replaced.
    root = logging.getLogger()
    root.setLevel(min(lvl, logging.INFO))
    _clear_handlers(root, owned_only=True)
    root.addHandler(h)

    if include_uvicorn:
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            lg = logging.getLogger(name)
            lg.setLevel(min(lvl, logging.INFO))
            _clear_handlers(lg)
            lg.addHandler(h)
            lg.propagate = False

    _configured = True
    return root


# ---------- Request helpers ----------
def ensure_request_id(headers: Optional[Mapping[str, str]] = None) -> str:
    """
    Get or create a request id and bind it into context immediately.

    Header values are used only as opaque IDs.
    """
    rid = None
    if headers:
        for k in ("x-request-id", "X-Request-Id", "X-Request-ID"):
            if k in headers:
                rid = headers[k]
                break
    if not rid:
        rid = uuid.uuid4().hex[:16]
    bind(req_id=rid)
    return rid


# ---------- Orchestration events ----------
def log_dashboard_request(
    logger: logging.Logger,
    *,
    fingerprint: str,
    inputs: Mapping[str, Any],
    mode: str,
) -> None:
    logger.info(
        "dashboard.request",
        extra={
            "event": "dashboard.request",
            "req_id": fingerprint,
            "mode": mode,
            "inputs": dict(inputs),
        },
    )


def log_dashboard_complete(
    logger: logging.Logger,
    *,
    fingerprint: str,
    as_of_timestamp: str,
    dataset_versions: Sequence[Mapping[str, Any]],
    node_count: int,
    cached: bool,
    latency_ms: Optional[float] = None,
) -> None:
    logger.info(
        "dashboard.complete",
        extra={
            "event": "dashboard.complete",
            "req_id": fingerprint,
            "outcome": "hit" if cached else "computed",
            "as_of_timestamp": as_of_timestamp,
            "dataset_versions": [
                {"source": v.get("source_id"), "version": v.get("version")}
                for v in dataset_versions
            ],
            "node_count": int(node_count),
            "latency_ms": None if latency_ms is None else round(latency_ms, 3),
        },
    )


def log_dashboard_failure(
    logger: logging.Logger,
    *,
    fingerprint: Optional[str],
    inputs: Mapping[str, Any],
    outcome: str,
    error: Mapping[str, Any],
    stage: Optional[str] = None,
) -> None:
    logger.error(
        "dashboard.failed",
        extra={
            "event": "dashboard.failed",
            "req_id": fingerprint,
            "outcome": outcome,
            "stage": stage,
            "inputs": dict(inputs),
            "error_detail": dict(error),
        },
    )


# ---------- ASGI middleware (structured request logs) ----------
class RequestLogMiddleware:
    """
    Lightweight ASGI middleware that emits a JSON `http.finish` line with
    method, path, status, latency_ms and byte counts.

    It never logs request or response bodies. Headers (optional) are
    scrubbed via `scrub_dict`.
    Usage:
        app.add_middleware(RequestLogMiddleware, log_headers=False)
    """

    def __init__(self, app, *, logger_name: str = "riskwiz.http", log_headers: bool = False):
        self.app = app
        self.log = logging.getLogger(logger_name)
        self.log_headers = bool(log_headers)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        method = scope.get("method", "")
        path = scope.get("path", "")
        headers = {
            k.decode("latin1").lower(): v.decode("latin1")
            for k, v in (scope.get("headers") or [])
        }

        if self.log_headers:
            self.log.debug("http.start", extra={"headers": scrub_dict(headers), "path": path})

        t0 = time.perf_counter()
        status_holder = {"code": None}
        bytes_out_holder = {"n": 0}
        rid_holder = {"rid": headers.get("x-request-id")}

        async def _send_wrapper(message):
            if message["type"] == "http.response.start":
                status_holder["code"] = message.get("status")
                for k, v in message.get("headers") or []:
                    if k.decode("latin1").lower() == "x-request-id":
                        rid_holder["rid"] = v.decode("latin1")
            if message["type"] == "http.response.body":
                bytes_out_holder["n"] += len(message.get("body", b"") or b"")
            await send(message)

        bytes_in = 0

        async def _recv_wrapper():
            nonlocal bytes_in
            msg = await receive()
            if msg["type"] == "http.request":
                bytes_in += len(msg.get("body", b"") or b"")
            return msg

        try:
            await self.app(scope, _recv_wrapper, _send_wrapper)
        finally:
            dt_ms = (time.perf_counter() - t0) * 1000.0
            self.log.info(
                "http.finish",
                extra={
                    "req_id": rid_holder["rid"],
                    "path": path,
                    "method": method,
                    "status": status_holder["code"],
                    "latency_ms": round(dt_ms, 3),
                    "bytes_in": bytes_in,
                    "bytes_out": bytes_out_holder["n"],
                },
            )


# ---------- Convenience: module-level logger ----------
_configured = False


def get_logger(name: str = "riskwiz", level: Optional[str] = None) -> logging.Logger:
    """
    Return a logger, initializing root+uvicorn JSON output on first call.
    """
    global _configured
    if not _configured:
        configure_json_logging(level or os.environ.get("RISKWIZ_LOG_LEVEL", "normal"))
        _configured = True
    return logging.getLogger(name)


__all__ = [
    "bind",
    "unbind",
    "reset",
    "context",
    "configure_json_logging",
    "get_logger",
    "resolve_level",
    "ensure_request_id",
    "log_dashboard_request",
    "log_dashboard_complete",
    "log_dashboard_failure",
    "JSONFormatter",
    "RequestLogMiddleware",
    "scrub_dict",
    "VERBOSITY_LEVELS",
]
