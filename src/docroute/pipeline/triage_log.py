"""Triage log sink - one JSON file per processed document."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from docroute.models import TriageDecision, TriageResult
from docroute.pipeline.stage_triage import summarize

logger = logging.getLogger(__name__)


class TriageLogPage(BaseModel):
    page: int = Field(..., ge=1, description="1-indexed page number")
    decision: TriageDecision
    confidence: float
    signals: dict[str, Any] = Field(default_factory=dict)


class TriageLog(BaseModel):
    """Contents of ``<stem>_triage.json``."""

    document: str
    backend: str
    mode: str
    generated_at: datetime
    summary: dict[str, int]
    pages: list[TriageLogPage]


def build_triage_log(
    document_name: str,
    backend: str,
    mode: str,
    results: dict[int, TriageResult],
) -> TriageLog:
    return TriageLog(
        document=document_name,
        backend=backend,
        mode=mode,
        generated_at=datetime.now(timezone.utc),
        summary=summarize(results),
        pages=[
            TriageLogPage(
                page=page + 1,
                decision=result.decision,
                confidence=result.confidence,
                signals=result.signals.model_dump(),
            )
            for page, result in sorted(results.items())
        ],
    )


def triage_log_path(output_dir: Path, document_name: str) -> Path:
    return Path(output_dir) / f"{Path(document_name).stem}_triage.json"


def write_triage_log(
    output_dir: Path,
    document_name: str,
    backend: str,
    mode: str,
    results: dict[int, TriageResult],
) -> Optional[Path]:
    """Write the triage log; failures are logged and None is returned."""
    path = triage_log_path(output_dir, document_name)
    try:
        log = build_triage_log(document_name, backend, mode, results)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(log.model_dump_json(indent=2), encoding="utf-8")
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to write triage log {path}: {e}")
        return None
    logger.debug(f"Triage log written to {path}")
    return path
