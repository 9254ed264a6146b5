"""Per-build reports with artifact digests, exported as JSON or CBOR."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import cbor2

ReportFormat = Literal["json", "cbor"]


@dataclass(frozen=True, slots=True)
class BuildReport:
    project: str
    version: str
    strategy: str
    output_dir: Path
    artifact_digests: dict[str, str] = field(default_factory=dict)
    logs: tuple[dict[str, Any], ...] = ()
    schema_version: int = 1

    @classmethod
    def from_artifacts(
        cls,
        *,
        project: str,
        version: str,
        strategy: str,
        output_dir: Path,
        artifacts: list[Path],
        logs: list[dict[str, Any]] | None = None,
    ) -> BuildReport:
        digests = {
            path.name: hashlib.sha256(path.read_bytes()).hexdigest()
            for path in sorted(artifacts)
        }
        return cls(
            project=project,
            version=version,
            strategy=strategy,
            output_dir=output_dir,
            artifact_digests=digests,
            logs=tuple(logs or ()),
        )

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self._payload(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def to_cbor(self, path: str | Path | None = None) -> bytes:
        encoded = cbor2.dumps(self._payload(), canonical=True)
        if path is not None:
            Path(path).write_bytes(encoded)
        return encoded

    def write(self, reports_dir: Path, report_format: ReportFormat) -> Path:
        reports_dir.mkdir(parents=True, exist_ok=True)
        path = reports_dir / f"{self.project}-{self.version}.{report_format}"
        if report_format == "cbor":
            self.to_cbor(path)
        else:
            self.to_json(path)
        return path

    def _payload(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "project": self.project,
            "version": self.version,
            "strategy": self.strategy,
            "output_dir": str(self.output_dir),
            "artifact_digests": dict(sorted(self.artifact_digests.items())),
            "logs": list(self.logs),
        }


__all__ = ["BuildReport", "ReportFormat"]
