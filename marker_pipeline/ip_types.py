from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np


@dataclass
class CameraInfo:
    width: int
    height: int
    P: Any  # 3x4 projection matrix (or 12 values)
    D: Any  # distortion parameters, first 4 used
    frame_id: str = ""


@dataclass
class ImageFrame:
    idx: int
    stamp: float
    frame_id: str
    image: Any  # numpy array
    encoding: str = "bgr8"

    @property
    def width(self) -> int:
        return int(self.image.shape[1])


@dataclass
class Candidate:
    marker_id: int
    pos: tuple[float, float]  # image-space centroid (x, y)
    cf: float
    corners: Any = None  # (4,2) ndarray
    frame_idx: int = 0


@dataclass
class TrackedObject:
    id: int
    name: str
    marker_width: float
    marker_center: tuple[float, float] = (0.0, 0.0)
    visible: bool = False
    trans: Optional[np.ndarray] = None  # last native 4x4, camera -> marker


@dataclass
class OrganizedCloud:
    """Depth frame as a grid of points with per-cell surface normals."""

    points: np.ndarray  # (H, W, 3)
    normals: Optional[np.ndarray] = None  # (H, W, 3)
    stamp: float = 0.0
    frame_id: str = ""

    @property
    def width(self) -> int:
        return int(self.points.shape[1])

    @property
    def height(self) -> int:
        return int(self.points.shape[0])

    def sample(self, col: int, row: int) -> Optional[tuple[np.ndarray, np.ndarray]]:
        if col < 0 or row < 0 or col >= self.width or row >= self.height:
            return None
        point = self.points[row, col]
        if self.normals is None:
            normal = np.full(3, np.nan)
        else:
            normal = self.normals[row, col]
        return point, normal


@dataclass(frozen=True)
class PoseRecord:
    id: int
    frame_id: str
    stamp: float
    frame_idx: int
    position: tuple[float, float, float]
    orientation: tuple[float, float, float, float]  # x, y, z, w
    confidence: float


@dataclass(frozen=True)
class StampedTransform:
    stamp: float
    frame_id: str
    child_frame_id: str
    position: tuple[float, float, float]
    orientation: tuple[float, float, float, float]


@dataclass(frozen=True)
class VisualMarker:
    id: int
    frame_id: str
    stamp: float
    position: tuple[float, float, float]
    orientation: tuple[float, float, float, float]
    scale: tuple[float, float, float]
    color: tuple[float, float, float, float]  # r, g, b, a
    ns: str = "basic_shapes"
    shape: str = "CUBE"
    action: str = "ADD"
    lifetime: float = 0.0  # 0 means persistent


@dataclass
class FrameResult:
    frame_idx: int
    stamp: float
    records: list[PoseRecord] = field(default_factory=list)
    transforms: list[StampedTransform] = field(default_factory=list)
    visual_markers: list[VisualMarker] = field(default_factory=list)
