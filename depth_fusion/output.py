from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from marker_pipeline.ip_types import FrameResult
from marker_pipeline.services.csv_writer import CsvWriter


class OutputSink(ABC):
    @abstractmethod
    def open(self, session_dir: Path) -> None: ...

    @abstractmethod
    def write_frame(self, result: FrameResult) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvOutput(OutputSink):
    """Pose records, one row per visible marker per frame."""

    def __init__(self, filename: str = "poses.csv"):
        self.filename = filename
        self._writer: Optional[CsvWriter] = None

    def open(self, session_dir: Path) -> None:
        path = session_dir / self.filename
        self._writer = CsvWriter(str(path))
        self._writer.open()

    def write_frame(self, result: FrameResult) -> None:
        if self._writer is None:
            return
        for rec in result.records:
            self._writer.append(rec)

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None


class JsonLinesOutput(OutputSink):
    """Camera->marker transforms and box annotations, one JSON object per line."""

    def __init__(self, filename: str = "markers.jsonl"):
        self.filename = filename
        self._fh = None

    def open(self, session_dir: Path) -> None:
        self._fh = open(session_dir / self.filename, "w", encoding="utf-8")

    def write_frame(self, result: FrameResult) -> None:
        if self._fh is None:
            return
        for tf in result.transforms:
            self._fh.write(json.dumps({"type": "transform", **asdict(tf)}) + "\n")
        for vm in result.visual_markers:
            self._fh.write(json.dumps({"type": "visual_marker", **asdict(vm)}) + "\n")

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None


class MemoryOutput(OutputSink):
    def __init__(self):
        self.results: list[FrameResult] = []

    def open(self, session_dir: Path) -> None:
        return None

    def write_frame(self, result: FrameResult) -> None:
        self.results.append(result)

    def close(self) -> None:
        return None

