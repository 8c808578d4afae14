from __future__ import annotations

from pathlib import Path
from typing import Tuple

import numpy as np
import yaml

from ..errors import DetectorInitError
from ..ip_types import CameraInfo


def camera_matrix_from_info(info: CameraInfo) -> Tuple[np.ndarray, np.ndarray]:
    """Intrinsics from the projection matrix plus the first 4 distortion terms."""
    try:
        P = np.asarray(info.P, dtype=np.float64).reshape(3, 4)
    except ValueError as exc:
        raise DetectorInitError(f"projection matrix must have 12 values: {exc}") from exc
    K = P[:, :3].copy()
    dist = np.zeros(4)
    D = np.asarray(info.D if info.D is not None else [], dtype=np.float64).reshape(-1)[:4]
    dist[: len(D)] = D
    if K[0, 0] <= 0 or K[1, 1] <= 0:
        raise DetectorInitError("projection matrix has non-positive focal length")
    return K, dist


def _data(node):
    if isinstance(node, dict):
        return node.get("data")
    return node


def load_camera_info(path: str | Path, frame_id: str = "") -> CameraInfo:
    """Read a ROS-style camera_info YAML (image_width, projection_matrix, ...)."""
    p = Path(path)
    with p.open("r", encoding="utf-8") as fp:
        raw = yaml.safe_load(fp) or {}
    P = _data(raw.get("projection_matrix", raw.get("P")))
    if P is None:
        K = _data(raw.get("camera_matrix", raw.get("K")))
        if K is None:
            raise DetectorInitError(f"{p}: no projection_matrix or camera_matrix")
        P = np.hstack([np.asarray(K, dtype=float).reshape(3, 3), np.zeros((3, 1))])
    D = _data(raw.get("distortion_coefficients", raw.get("D"))) or []
    return CameraInfo(
        width=int(raw.get("image_width", raw.get("width", 0))),
        height=int(raw.get("image_height", raw.get("height", 0))),
        P=np.asarray(P, dtype=float).reshape(3, 4),
        D=list(D),
        frame_id=str(raw.get("frame_id", frame_id)),
    )
