# FILE: riskwiz/config.py
from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from .kv import canonical_kv_hash


_log = logging.getLogger(__name__)

_MODES = ("mock", "real")
_LOG_LEVELS = ("verbose", "normal", "silent")

DEFAULT_BASE_URLS: Dict[str, str] = {
    "mock": "http://localhost:3000/api",
    "real": "https://api.staging.climatewizard.ai/v1",
}

DEFAULT_DATASET_VERSIONS: Dict[str, str] = {
    "baseline": "CMIP6-v1.2",
    "reanalysis": "v5.1",
    "exposure": "gap-uw-v2.1",
    "connectivity": "commuting-census-2020",
    "observations": "noaa-ncei-2024.10",
}


# ---------------------------------------------------------------------------
# Env helpers
# ---------------------------------------------------------------------------


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_choice(name: str, default: str, choices) -> str:
    raw = (os.environ.get(name) or "").strip().lower()
    if raw in choices:
        return raw
    if raw:
        _log.warning("ignoring invalid %s=%r; expected one of %s", name, raw, ", ".join(choices))
    return default


def _load_yaml_mapping(path: str) -> Dict[str, Any]:
    """
    Load a top-level mapping from YAML.

    Constraints:
      - Ignore if path missing.
      - Only accept dict at top-level.
      - `dataset_versions` may be a nested mapping of source -> version;
        everything else must be scalar and is coerced via str() otherwise.
    """
    if not path or not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        _log.warning("failed to load YAML config from %s", path, exc_info=True)
        return {}
    if not isinstance(doc, dict):
        return {}
    out: Dict[str, Any] = {}
    for k, v in doc.items():
        if k == "dataset_versions" and isinstance(v, dict):
            out[k] = {str(kk): str(vv) for kk, vv in v.items()}
        elif isinstance(v, (str, int, float, bool)) or v is None:
            out[str(k)] = v
        else:
            out[str(k)] = str(v)
    return out


# ---------------------------------------------------------------------------
# Settings model (single resolved configuration snapshot)
# ---------------------------------------------------------------------------


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # --- Core / identity --------------------------------------------------

    version: str = "0.3.0"
    app_name: str = "Climate Risk Wizard"

    # Indicates how this config reached the process (defaults/yaml).
    config_origin: str = "defaults"

    # --- Acquisition ------------------------------------------------------

    # "mock" runs the local simulated generators, "real" calls the backend.
    mode: Literal["mock", "real"] = "mock"
    base_url: str = ""
    timeout_ms: int = Field(30_000, ge=1, le=600_000)

    # Scales the artificial latency of the simulated generators; 0 disables it.
    mock_latency_scale: float = Field(1.0, ge=0.0, le=100.0)

    # --- Cache ------------------------------------------------------------

    cache_ttl_s: float = Field(3600.0, gt=0.0)

    # --- Logging / observability -------------------------------------------

    log_level: Literal["verbose", "normal", "silent"] = "normal"
    prom_enabled: bool = True

    # --- Datasets ---------------------------------------------------------

    dataset_versions: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_DATASET_VERSIONS)
    )

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #

    @property
    def is_mock(self) -> bool:
        return self.mode == "mock"

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    def endpoint_url(self, path: str) -> str:
        clean = path if path.startswith("/") else f"/{path}"
        base = (self.base_url or DEFAULT_BASE_URLS[self.mode]).rstrip("/")
        return f"{base}{clean}"

    def config_hash(self) -> str:
        """
        Stable hash of the current settings, safe to embed in logs and headers.
        """
        payload = self.model_dump(mode="json")
        return canonical_kv_hash(payload, ctx="riskwiz:settings", label="settings")


# ---------------------------------------------------------------------------
# Loading / merging
# ---------------------------------------------------------------------------


def _load_settings() -> Settings:
    """
    Load Settings from defaults, optional YAML, and environment variables.

    Priority:
      1. Settings defaults (in-code).
      2. YAML file pointed to by RISKWIZ_CONFIG_PATH.
      3. Environment variables (RISKWIZ_*), bounds-checked; out-of-range
         values keep the previous layer's value.
    """
    merged: Dict[str, Any] = Settings().model_dump()
    origin = "defaults"

    # 1) YAML overlay
    yaml_path = os.environ.get("RISKWIZ_CONFIG_PATH", "").strip()
    yaml_doc = _load_yaml_mapping(yaml_path)
    if yaml_doc:
        tmp = dict(merged)
        tmp.update(yaml_doc)
        merged = Settings(**tmp).model_dump()  # enforces extra="forbid"
        origin = "yaml"

    # 2) Environment overrides
    merged["version"] = os.environ.get("RISKWIZ_VERSION", merged["version"])
    merged["mode"] = _env_choice("RISKWIZ_API_MODE", merged["mode"], _MODES)
    merged["base_url"] = os.environ.get("RISKWIZ_API_BASE_URL", merged["base_url"]).strip()
    merged["log_level"] = _env_choice("RISKWIZ_LOG_LEVEL", merged["log_level"], _LOG_LEVELS)

    timeout_env = _env_int("RISKWIZ_API_TIMEOUT_MS", merged["timeout_ms"])
    if 1 <= timeout_env <= 600_000:
        merged["timeout_ms"] = timeout_env

    ttl_env = _env_float("RISKWIZ_CACHE_TTL_S", merged["cache_ttl_s"])
    if ttl_env > 0.0:
        merged["cache_ttl_s"] = ttl_env

    latency_env = _env_float("RISKWIZ_MOCK_LATENCY_SCALE", merged["mock_latency_scale"])
    if 0.0 <= latency_env <= 100.0:
        merged["mock_latency_scale"] = latency_env

    prom_raw = os.environ.get("RISKWIZ_PROM_ENABLE")
    if prom_raw:
        merged["prom_enabled"] = prom_raw.strip().lower() in ("1", "true", "yes", "on")

    merged["config_origin"] = origin
    return Settings(**merged)


# ---------------------------------------------------------------------------
# Reloadable wrapper
# ---------------------------------------------------------------------------


class ReloadableSettings:
    """
    Thread-safe holder of the resolved Settings snapshot.

    The acquisition mode is read once when the app is built; refresh() only
    affects components constructed afterwards.
    """

    def __init__(self, initial: Optional[Settings] = None) -> None:
        self._lock = threading.RLock()
        self._settings = initial or _load_settings()

    def get(self) -> Settings:
        with self._lock:
            return self._settings

    def refresh(self) -> Settings:
        with self._lock:
            self._settings = _load_settings()
            return self._settings

    def set(self, **overrides: Any) -> Settings:
        """Apply in-memory overrides; unknown keys are ignored."""
        with self._lock:
            data = self._settings.model_dump()
            for key, value in overrides.items():
                if key in data:
                    data[key] = value
            self._settings = Settings(**data)
            return self._settings


def load_settings() -> Settings:
    return _load_settings()


def make_reloadable_settings() -> ReloadableSettings:
    return ReloadableSettings(_load_settings())
