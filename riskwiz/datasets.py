# FILE: riskwiz/datasets.py
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from .config import DEFAULT_DATASET_VERSIONS, Settings
from .kv import short_digest


@dataclass(frozen=True)
class DatasetRecord:
    """
    Provenance entry published in dashboard metadata.

    `source` names the registry key whose version the record reports, so a
    version bump in configuration shows up in every dashboard built after it.
    """

    source_id: str
    source: str
    as_of: str


# Upstream sources cited in dashboard metadata.
DEFAULT_RECORDS: Tuple[DatasetRecord, ...] = (
    DatasetRecord(source_id="IPCC-AR6", source="baseline", as_of="2023-11-10"),
    DatasetRecord(source_id="NOAA", source="reanalysis", as_of="2024-01-15"),
    DatasetRecord(source_id="ERA5", source="observations", as_of="2024-02-01"),
)


class DatasetRegistry:
    """
    Version identifiers of every upstream data source.

    The snapshot is fixed at construction; a dataset upgrade means a new
    deploy, hence a new registry, hence a new hash() and new fingerprints for
    every request. That is the only cache invalidation the service needs.
    """

    def __init__(
        self,
        versions: Optional[Mapping[str, str]] = None,
        *,
        records: Tuple[DatasetRecord, ...] = DEFAULT_RECORDS,
    ) -> None:
        src = DEFAULT_DATASET_VERSIONS if versions is None else versions
        self._versions: Mapping[str, str] = MappingProxyType(
            {str(k): str(v) for k, v in src.items()}
        )
        self._records = tuple(r for r in records if r.source in self._versions)
        self._hash = short_digest(self._versions, label="dataset_versions")

    @classmethod
    def from_settings(cls, settings: Settings) -> "DatasetRegistry":
        return cls(settings.dataset_versions)

    def current(self) -> Mapping[str, str]:
        """Read-only snapshot of source name -> version."""
        return self._versions

    def hash(self) -> str:
        return self._hash

    def records(self) -> Tuple[Dict[str, str], ...]:
        """Dataset version entries as they appear in `metadata.dataset_versions`."""
        return tuple(
            {
                "source_id": r.source_id,
                "version": self._versions[r.source],
                "as_of": r.as_of,
            }
            for r in self._records
        )

    def __repr__(self) -> str:
        return f"DatasetRegistry(hash={self._hash!r}, sources={sorted(self._versions)!r})"
