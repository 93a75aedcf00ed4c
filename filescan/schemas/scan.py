from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator


# ---------- SERVICE PAYLOADS ----------

class EngineResult(BaseModel):
    """One engine's entry under ``scan_results.scan_details``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    threat_found: str | None = None  # blank or missing means clean
    scan_result: StrictInt = Field(alias="scan_result_i")
    def_time: str | None = None  # definition-set timestamp, as reported

    @field_validator("threat_found", "def_time", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def is_clean(self) -> bool:
        return not (self.threat_found or "").strip()


class ScanVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    overall_result: str
    engines: dict[str, EngineResult] = Field(default_factory=dict)
    sha256: str | None = None
    data_id: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ScanVerdict":
        """
        Build a verdict from the MetaDefender hash-lookup body:

            {"file_info": {"display_name": ...},
             "process_info": {"result": ...},
             "scan_results": {"scan_details": {"<engine>": {...}}}}

        Raises ``pydantic.ValidationError`` (a ``ValueError``) when required
        fields are missing or have the wrong type.
        """
        file_info = _section(payload, "file_info")
        process_info = _section(payload, "process_info")
        scan_results = _section(payload, "scan_results")

        details = scan_results.get("scan_details")
        if details is None:
            details = {}
        if not isinstance(details, dict):
            raise ValueError("scan_results.scan_details must be an object")

        return cls.model_validate(
            {
                "filename": file_info.get("display_name"),
                "overall_result": process_info.get("result"),
                "engines": details,
                "sha256": file_info.get("sha256"),
                "data_id": payload.get("data_id"),
            }
        )


def _section(payload: dict[str, Any], name: str) -> dict[str, Any]:
    section = payload.get(name)
    if not isinstance(section, dict):
        raise ValueError(f"{name} is missing from the response")
    return section


def parse_progress(payload: dict[str, Any]) -> int:
    """
    Read ``scan_results.progress_percentage`` (string or number) as an int in 0..100.
    Fractional values are truncated, so only a full 100 reads as complete.

    Raises ValueError on anything else.
    """
    scan_results = _section(payload, "scan_results")
    raw = scan_results.get("progress_percentage")
    if raw is None or isinstance(raw, bool):
        raise ValueError("scan_results.progress_percentage is missing")

    try:
        value = float(str(raw).strip())
    except ValueError as exc:
        raise ValueError(f"progress_percentage is not numeric: {raw!r}") from exc

    if not 0 <= value <= 100:
        raise ValueError(f"progress_percentage out of range: {raw!r}")
    return int(value)


# ---------- WORKFLOW OUTPUT ----------

class ScanOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    verdict: ScanVerdict
    fingerprint: str
    cached: bool
    data_id: str | None = None
    status_checks: int = 0
