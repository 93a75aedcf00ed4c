from __future__ import annotations

from filescan.schemas.scan import EngineResult, ScanOutcome, ScanVerdict

CLEAN_LABEL = "Clean"


def threat_label(result: EngineResult) -> str:
    # Engines report "" (or nothing) when they found no threat.
    if result.is_clean:
        return CLEAN_LABEL
    return (result.threat_found or "").strip()


def format_verdict(verdict: ScanVerdict) -> str:
    lines = [
        f"Filename: {verdict.filename}",
        f"OverallStatus: {verdict.overall_result}",
    ]
    for name in sorted(verdict.engines):
        result = verdict.engines[name]
        lines.extend(
            [
                f"Engine: {name}",
                f"Threat Found: {threat_label(result)}",
                f"Scan Result: {result.scan_result}",
                f"DefTime: {result.def_time or ''}",
                "",
            ]
        )
    return "\n".join(lines)


def format_outcome_json(outcome: ScanOutcome) -> str:
    return outcome.model_dump_json(indent=2)
