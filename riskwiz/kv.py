# FILE: riskwiz/kv.py

"""
Helpers for stable key/value hashing.

This module is used to build:
  - the dataset-version digest that feeds every request fingerprint;
  - the settings hash exposed on /healthz and in response headers.

Key properties:
  - Deterministic, canonical encoding of basic Python types;
  - Streaming hasher with explicit domain separation via labels and
    context strings;
  - Independent of mapping insertion order.

These digests are cache keys and correlation tags, not a security boundary,
so no keyed/HMAC mode is offered.
"""
from __future__ import annotations

import hashlib
import json
import os
from typing import Any, Mapping


# Rough guard for total size of KV material before hashing (in bytes).
_KV_MAX_APPROX_BYTES = int(os.environ.get("RISKWIZ_KV_MAX_BYTES", "16384"))


def _encode_float(value: float) -> str:
    v = float(value)
    if not (v == v) or v in (float("inf"), float("-inf")):
        raise ValueError("NaN or infinite values are not allowed in kv float encoding")
    return repr(v)


class RollingHasher:
    """
    Streaming hasher for building stable digests over simple structures.

    Features:
      - SHA-256 digest;
      - Domain separation via an explicit `label` and user-provided `ctx`;
      - Helpers for bytes, strings, and JSON-compatible values.
    """

    def __init__(self, ctx: str = "", *, label: str = ""):
        self._h = hashlib.sha256()

        if label:
            self._h.update(b"kv.label:")
            self._h.update(label.encode("utf-8", errors="ignore"))
            self._h.update(b"\x00")

        if ctx:
            self._h.update(ctx.encode("utf-8", errors="ignore"))

    def update_bytes(self, data: bytes) -> None:
        if not data:
            return
        self._h.update(data)

    def update_str(self, value: str) -> None:
        if not value:
            return
        self._h.update(value.encode("utf-8", errors="ignore"))

    def update_json(self, obj: Any) -> None:
        """
        Update the hasher with a canonical JSON encoding of the given object.

        Canonical JSON:
          - sort_keys=True for deterministic key ordering;
          - separators=(",", ":") for a compact, stable representation;
          - ensure_ascii=False to keep Unicode stable.
        """
        payload = json.dumps(
            obj,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )
        self._h.update(payload.encode("utf-8"))

    def hex(self) -> str:
        """
        Return the hex digest of the current hash state.

        Calling this does NOT reset the internal state.
        """
        return self._h.hexdigest()


def _feed_scalar(h: RollingHasher, value: Any) -> None:
    """
    Feed a scalar into the hasher in a stable, typed way.

    Scalars are encoded as a small type tag followed by a canonical string
    to avoid ambiguity between, for example, "True" and "1".
    """
    if value is None:
        h.update_bytes(b"t:none;")
        return

    if isinstance(value, bool):
        h.update_bytes(b"t:bool;")
        h.update_bytes(b"1" if value else b"0")
        h.update_bytes(b";")
        return

    if isinstance(value, int):
        h.update_bytes(b"t:int;")
        h.update_str(str(int(value)))
        h.update_bytes(b";")
        return

    if isinstance(value, float):
        h.update_bytes(b"t:float;")
        h.update_str(_encode_float(value))
        h.update_bytes(b";")
        return

    if isinstance(value, str):
        h.update_bytes(b"t:str;")
        h.update_str(value)
        h.update_bytes(b";")
        return

    # Sets are unordered; sort them so the digest is stable.
    if isinstance(value, (set, frozenset)):
        value = sorted(value, key=str)

    h.update_bytes(b"t:json;")
    h.update_json(value)
    h.update_bytes(b";")


def canonical_kv_hash(
    mapping: Mapping[str, Any],
    *,
    ctx: str = "",
    label: str = "kv",
) -> str:
    """
    Compute a canonical hash for a mapping of key/value pairs.

    Rules:
      - Keys are converted to strings and sorted lexicographically.
      - For each key, we feed "k:<key>;v:<typed_value>;" into the hasher.
      - The overall hash is independent of the original insertion order.

    Rejects overly large mappings based on an approximate byte estimate; the
    inputs here are version tags and settings, never result payloads.
    """
    approx = 0
    for k, v in mapping.items():
        approx += len(str(k))
        if isinstance(v, str):
            approx += len(v.encode("utf-8", errors="ignore"))
        else:
            approx += len(repr(v))
        if approx > _KV_MAX_APPROX_BYTES:
            raise ValueError("canonical_kv_hash: mapping too large for envelope hashing")

    rh = RollingHasher(ctx=ctx, label=label)
    for k in sorted(mapping.keys(), key=lambda x: str(x)):
        rh.update_bytes(b"k:")
        rh.update_str(str(k))
        rh.update_bytes(b";v:")
        _feed_scalar(rh, mapping[k])
        rh.update_bytes(b";")
    return rh.hex()


def short_digest(
    mapping: Mapping[str, Any],
    *,
    label: str,
    length: int = 16,
) -> str:
    """
    Truncated `canonical_kv_hash`, small enough to embed in a cache key.

    16 hex characters (64 bits) keeps accidental collisions negligible for
    the handful of dataset snapshots a deployment ever sees.
    """
    if length < 8:
        raise ValueError("short_digest: length must be at least 8")
    return canonical_kv_hash(mapping, ctx="riskwiz", label=label)[:length]
