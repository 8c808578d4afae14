"""Input sources for the fusion worker.

A source yields (kind, payload) events in delivery order, where kind is one of
"camera_info", "image" or "cloud":
- RecordedSession replays a directory recorded from a camera + depth sensor
- SyntheticSource produces blank frames and a flat cloud for dry runs
"""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterator, Optional

import cv2
import numpy as np

from marker_pipeline.errors import DetectorInitError
from marker_pipeline.ip_types import CameraInfo, ImageFrame, OrganizedCloud
from marker_pipeline.services.calib import load_camera_info

Event = tuple[str, Any]

_FRAME_RE = re.compile(r"^f(\d+)_(\d+)\.(png|jpg|jpeg|bmp)$", re.IGNORECASE)
_CLOUD_RE = re.compile(r"^c(\d+)_(\d+)\.npz$", re.IGNORECASE)

# clouds sort before images with the same stamp
_KIND_ORDER = {"cloud": 0, "image": 1}

_ENCODINGS = {
    (np.dtype(np.uint8), 1): "mono8",
    (np.dtype(np.uint8), 3): "bgr8",
    (np.dtype(np.uint8), 4): "bgra8",
    (np.dtype(np.uint16), 1): "mono16",
    (np.dtype(np.uint16), 3): "bgr16",
    (np.dtype(np.uint16), 4): "bgra16",
}


class EventSource(ABC):
    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def events(self) -> Iterator[Event]: ...

    @abstractmethod
    def stop(self) -> None: ...


class RecordedSession(EventSource):
    """
    Replays a recorded session directory:

        camera_info.yml
        frames/f<idx>_<stamp_ns>.png
        clouds/c<idx>_<stamp_ns>.npz   (arrays: points (H,W,3), optional normals)

    Images and clouds are merged by timestamp. No pairing is attempted: the
    pipeline uses whichever cloud arrived last.
    """

    def __init__(self, path: str | Path, frame_id: str = "camera"):
        self.path = Path(path)
        self.frame_id = frame_id
        self._index: list[tuple[float, int, str, int, Path]] = []

    def start(self) -> None:
        if not (self.path / "camera_info.yml").exists():
            raise DetectorInitError(f"camera_info.yml not found in {self.path}")
        index = []
        for kind, sub, pattern in (("image", "frames", _FRAME_RE), ("cloud", "clouds", _CLOUD_RE)):
            folder = self.path / sub
            if not folder.is_dir():
                continue
            for p in folder.iterdir():
                m = pattern.match(p.name)
                if not m:
                    continue
                idx, stamp_ns = int(m.group(1)), int(m.group(2))
                index.append((stamp_ns * 1e-9, _KIND_ORDER[kind], kind, idx, p))
        index.sort(key=lambda e: (e[0], e[1], e[3]))
        self._index = index

    def _read_image(self, idx: int, stamp: float, p: Path) -> ImageFrame:
        img = cv2.imread(str(p), cv2.IMREAD_UNCHANGED)
        if img is None:
            return ImageFrame(idx, stamp, self.frame_id, np.zeros((0, 0, 3), np.uint8), "")
        channels = 1 if img.ndim == 2 else img.shape[2]
        return ImageFrame(idx, stamp, self.frame_id, img, _ENCODINGS.get((img.dtype, channels), ""))

    def _read_cloud(self, stamp: float, p: Path) -> OrganizedCloud:
        with np.load(p) as data:
            points = np.asarray(data["points"], dtype=np.float64)
            normals = np.asarray(data["normals"], dtype=np.float64) if "normals" in data.files else None
        return OrganizedCloud(points, normals, stamp, self.frame_id)

    def events(self) -> Iterator[Event]:
        yield "camera_info", load_camera_info(self.path / "camera_info.yml", self.frame_id)
        for stamp, _order, kind, idx, p in self._index:
            if kind == "image":
                yield "image", self._read_image(idx, stamp, p)
            else:
                yield "cloud", self._read_cloud(stamp, p)

    def stop(self) -> None:
        self._index = []


class SyntheticSource(EventSource):
    def __init__(
        self,
        fps: int,
        width: int,
        height: int,
        cloud_width: int,
        frame_id: str = "camera",
        max_frames: Optional[int] = None,
    ):
        self.fps = fps
        self.width = width
        self.height = height
        self.cloud_width = max(1, cloud_width)
        self.frame_id = frame_id
        self.max_frames = max_frames
        self._running = False

    def start(self) -> None:
        self._running = True

    def _camera_info(self) -> CameraInfo:
        f = float(self.width)
        P = [f, 0.0, self.width / 2.0, 0.0, 0.0, f, self.height / 2.0, 0.0, 0.0, 0.0, 1.0, 0.0]
        return CameraInfo(self.width, self.height, P, [0.0, 0.0, 0.0, 0.0], self.frame_id)

    def _flat_cloud(self, stamp: float) -> OrganizedCloud:
        cw = self.cloud_width
        ch = max(1, self.height * cw // self.width)
        xs = (np.arange(cw) - cw / 2.0) / cw
        ys = (np.arange(ch) - ch / 2.0) / cw
        gx, gy = np.meshgrid(xs, ys)
        points = np.dstack([gx, gy, np.ones_like(gx)])
        return OrganizedCloud(points, None, stamp, self.frame_id)

    def events(self) -> Iterator[Event]:
        yield "camera_info", self._camera_info()
        idx = 0
        period = 1.0 / self.fps if self.fps > 0 else 0.0
        t0 = time.time()
        while self._running:
            if self.max_frames is not None and idx >= self.max_frames:
                break
            idx += 1
            stamp = t0 + idx * period
            yield "cloud", self._flat_cloud(stamp)
            img = np.zeros((self.height, self.width, 3), dtype=np.uint8)
            yield "image", ImageFrame(idx, stamp, self.frame_id, img, "bgr8")

    def stop(self) -> None:
        self._running = False
