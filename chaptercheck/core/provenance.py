"""JSONL provenance log for analysis runs."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field


class ProvenanceEvent(BaseModel):
    """One stage record of an analysis run."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stage: str = Field(..., description="Run stage: 'bootstrap', 'extract', 'detect', 'evaluate' or 'aggregate'.")
    message: str = Field(..., description="Short summary of what the stage produced.")
    agent: str = Field(default="chaptercheck.engine", description="Dotted name of the component that emitted it.")
    payload: Dict[str, Any] = Field(default_factory=dict)


class ProvenanceLogger:
    """Append one JSON line per event to ``output_path``.

    Writes are serialized so an engine running evaluators on a thread pool can
    share one logger.
    """

    def __init__(self, output_path: Path | str):
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def log(self, event: ProvenanceEvent | Dict[str, Any]) -> ProvenanceEvent:
        if not isinstance(event, ProvenanceEvent):
            event = ProvenanceEvent.model_validate(event)
        with self._lock, self.output_path.open("a", encoding="utf-8") as handle:
            handle.write(event.model_dump_json() + "\n")
        return event

    def record(self, stage: str, message: str, *, agent: str = "chaptercheck.engine", **payload: Any) -> ProvenanceEvent:
        """Shorthand for logging an event built from keyword payload fields."""
        return self.log(ProvenanceEvent(stage=stage, message=message, agent=agent, payload=payload))

    def extend(self, events: Iterable[ProvenanceEvent | Dict[str, Any]]) -> None:
        for event in events:
            self.log(event)

    def read(self, stage: Optional[str] = None) -> List[ProvenanceEvent]:
        """Events written so far, optionally only those of ``stage``. Missing file reads as empty."""
        if not self.output_path.exists():
            return []
        with self.output_path.open("r", encoding="utf-8") as handle:
            events = [ProvenanceEvent.model_validate_json(line) for line in handle if line.strip()]
        if stage is not None:
            events = [event for event in events if event.stage == stage]
        return events


__all__ = ["ProvenanceEvent", "ProvenanceLogger"]
