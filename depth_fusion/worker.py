from __future__ import annotations

import time
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from marker_pipeline.facade import MarkerPoseFacade
from marker_pipeline.factory import StrategyFactory
from marker_pipeline.services.object_data import load_objects
from marker_pipeline.services.storage import SessionStorage

from .config import FusionConfig
from .logging_utils import session_log, setup_logger
from .output import CsvOutput, JsonLinesOutput, OutputSink
from .source import EventSource, RecordedSession, SyntheticSource


@dataclass
class SessionSummary:
    session_path: str
    frames_processed: int
    frames_dropped: int
    clouds_received: int
    poses_emitted: int
    csv_path: str
    log_path: str
    avg_fps: float


class _CountingSink(OutputSink):
    def __init__(self):
        self.poses = 0

    def open(self, session_dir: Path) -> None:
        return None

    def write_frame(self, result) -> None:
        self.poses += len(result.records)

    def close(self) -> None:
        return None


class FusionWorker:
    def __init__(
        self,
        config: FusionConfig,
        logger=None,
        outputs: Optional[list[OutputSink]] = None,
        source: Optional[EventSource] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.node_name, config.frame_id)
        if outputs is None:
            outputs = [CsvOutput()]
            if config.publish_tf or config.publish_visual_markers:
                outputs.append(JsonLinesOutput())
        self.outputs = outputs
        self.source = source
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def _build_source(self) -> EventSource:
        if self.source is not None:
            return self.source
        if self.config.dry_run or not self.config.session_path:
            return SyntheticSource(
                self.config.fps,
                self.config.width,
                self.config.height,
                self.config.cloud_width,
                frame_id=self.config.frame_id,
                max_frames=self.config.max_frames,
            )
        return RecordedSession(self.config.session_path, frame_id=self.config.frame_id)

    def _log_parameters(self) -> None:
        cfg = self.config
        self.logger.info("Publish transforms: %s", cfg.publish_tf)
        self.logger.info("Publish visual markers: %s", cfg.publish_visual_markers)
        self.logger.info("Threshold: %d", cfg.threshold)
        self.logger.info("Marker Pattern Filename: %s", cfg.marker_pattern_list)
        self.logger.info("Marker Data Directory: %s", cfg.marker_data_directory)

    def build_facade(self, outputs: list[OutputSink]) -> MarkerPoseFacade:
        objects, dict_name = load_objects(
            self.config.marker_pattern_list, self.config.marker_data_directory
        )
        self.logger.debug("Objectfile num = %d", len(objects))
        pre, sel, trk, conv, ref, emit = StrategyFactory.from_config(self.config)
        return MarkerPoseFacade(
            objects, pre, sel, trk, conv, ref, emit,
            detector_factory=StrategyFactory.detector_factory(dict_name, self.config.threshold),
            logger=self.logger,
            outputs=outputs,
            normal_estimator=StrategyFactory.normal_estimator(self.config),
        )

    def run(self) -> SessionSummary:
        self._log_parameters()
        counter = _CountingSink()
        # fatal if marker data is missing: nothing can be tracked without it
        facade = self.build_facade(self.outputs + [counter])

        storage = SessionStorage(self.config.session_root, name=f"{self.config.node_name}_session")
        session_path = storage.begin()
        storage.write_manifest(self.config.as_dict())
        log_file = str(Path(storage.logs_dir) / "session.log")

        with session_log(self.logger, self.config.node_name, log_file, self.config.frame_id):
            for out in self.outputs:
                out.open(Path(storage.session_dir))

            src = self._build_source()
            self.logger.info("session started: %s", session_path)
            t0 = time.time()
            try:
                src.start()
                self._dispatch(facade, src)
            finally:
                try:
                    src.stop()
                except Exception:
                    pass

                for out in self.outputs:
                    try:
                        out.close()
                    except Exception:
                        pass

            frames = facade.frames_processed
            avg = frames / max(1e-6, (time.time() - t0))
            self.logger.info(
                "summary frames=%d dropped=%d clouds=%d poses=%d avg_fps=%.2f",
                frames, facade.frames_dropped, facade.clouds_received, counter.poses, avg,
            )

        csv_path = str(Path(storage.session_dir) / "poses.csv")
        return SessionSummary(
            str(session_path),
            frames,
            facade.frames_dropped,
            facade.clouds_received,
            counter.poses,
            csv_path,
            log_file,
            avg,
        )

    def _dispatch(self, facade: MarkerPoseFacade, src: EventSource) -> None:
        for kind, payload in src.events():
            if self._stop_event.is_set():
                break
            if kind == "camera_info":
                facade.on_camera_info(payload)
            elif kind == "cloud":
                facade.on_cloud(payload)
            elif kind == "image":
                result = facade.on_image(payload)
                if result is not None:
                    self.logger.info(
                        "frame=%d poses=%d", result.frame_idx, len(result.records)
                    )
                if (
                    self.config.max_frames
                    and facade.frames_processed + facade.frames_dropped >= self.config.max_frames
                ):
                    break
