"""Per-iteration and per-window training diagnostics.

Purely observational: nothing here is read back by the training loop.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from topicstream.optimizers.base import Score


@dataclass
class IterationMetrics:
    """Timing and score of one inner iteration."""

    iteration: int
    elapsed_seconds: float
    score: Score


@dataclass
class WindowSummary:
    """Everything recorded while training one window."""

    index: int
    begin: int
    end: int
    num_documents: int
    iterations: list[IterationMetrics] = field(default_factory=list)

    @property
    def iteration_times(self) -> list[float]:
        return [m.elapsed_seconds for m in self.iterations]

    @property
    def scores(self) -> list[Score]:
        return [m.score for m in self.iterations]

    def to_dict(self) -> dict[str, Any]:
        return {
            "window": self.index,
            "begin": self.begin,
            "end": self.end,
            "num_documents": self.num_documents,
            "iteration_times": self.iteration_times,
            "scores": [list(s) for s in self.scores],
        }


@dataclass
class TrainingReport:
    """Diagnostics of a whole run, one summary per processed window."""

    monitor_path: str
    optimizer: str
    windows: list[WindowSummary] = field(default_factory=list)

    @property
    def total_iterations(self) -> int:
        return sum(len(w.iterations) for w in self.windows)

    def to_dict(self) -> dict[str, Any]:
        """Structured dictionary for JSON export."""
        return {
            "monitor_path": self.monitor_path,
            "optimizer": self.optimizer,
            "windows_processed": len(self.windows),
            "total_iterations": self.total_iterations,
            "windows": [w.to_dict() for w in self.windows],
        }

    def to_frame(self) -> pd.DataFrame:
        """One row per (window, iteration)."""
        rows = [
            {
                "window": w.index,
                "iteration": m.iteration,
                "num_documents": w.num_documents,
                "elapsed_seconds": m.elapsed_seconds,
                "document_score": m.score.document,
                "topic_score": m.score.topic,
            }
            for w in self.windows
            for m in w.iterations
        ]
        columns = [
            "window", "iteration", "num_documents",
            "elapsed_seconds", "document_score", "topic_score",
        ]
        return pd.DataFrame(rows, columns=columns)

    def export_json(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")

    def export_csv(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(path, index=False)
