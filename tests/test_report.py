import hashlib
import json
from pathlib import Path

import cbor2

from nodesmith.observability import StructuredLogger
from nodesmith.report import BuildReport


def _report(tmp_path: Path) -> BuildReport:
    binary = tmp_path / "bitcoind"
    binary.write_bytes(b"\x7fELF fake")
    logger = StructuredLogger()
    logger.log(
        operation="pipeline",
        project="bitcoin",
        version="v27.0",
        phase="build",
        message="CMake build finished.",
    )
    logger.log(
        operation="pipeline",
        project="electrs",
        version="v0.10.5",
        phase="build",
        message="cargo build finished.",
    )
    return BuildReport.from_artifacts(
        project="bitcoin",
        version="v27.0",
        strategy="cmake",
        output_dir=tmp_path,
        artifacts=[binary],
        logs=logger.records_for_project("bitcoin"),
    )


def test_report_digests_artifacts(tmp_path: Path) -> None:
    report = _report(tmp_path)

    assert report.artifact_digests == {
        "bitcoind": hashlib.sha256(b"\x7fELF fake").hexdigest()
    }
    assert [record["project"] for record in report.logs] == ["bitcoin"]


def test_json_export_is_stable(tmp_path: Path) -> None:
    report = _report(tmp_path)
    encoded = report.to_json()
    payload = json.loads(encoded)

    assert encoded == report.to_json()
    assert payload["schema_version"] == 1
    assert payload["output_dir"] == str(tmp_path)
    assert list(payload) == sorted(payload)


def test_cbor_export_is_canonical(tmp_path: Path) -> None:
    report = _report(tmp_path)
    encoded = report.to_cbor()

    assert encoded == report.to_cbor()
    assert cbor2.loads(encoded) == json.loads(report.to_json())


def test_write_uses_format_extension(tmp_path: Path) -> None:
    report = _report(tmp_path)

    json_path = report.write(tmp_path / "reports", "json")
    cbor_path = report.write(tmp_path / "reports", "cbor")

    assert json_path == tmp_path / "reports" / "bitcoin-v27.0.json"
    assert cbor_path == tmp_path / "reports" / "bitcoin-v27.0.cbor"
    assert cbor2.loads(cbor_path.read_bytes())["project"] == "bitcoin"


def test_structured_logger_writes_json_lines(tmp_path: Path) -> None:
    logger = StructuredLogger()
    logger.log(
        operation="pipeline",
        project="bitcoin",
        version="v27.0",
        phase="sync",
        message="Source synchronized.",
        extra={"outcome": "cloned"},
    )

    path = logger.to_json_lines(tmp_path / "logs" / "records.jsonl")

    lines = path.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["extra"] == {"outcome": "cloned"}
