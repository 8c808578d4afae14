import numpy as np
import pytest

from marker_pipeline.facade import MarkerPoseFacade
from marker_pipeline.factory import StrategyFactory
from marker_pipeline.ip_types import (
    Candidate,
    CameraInfo,
    ImageFrame,
    OrganizedCloud,
    TrackedObject,
)


class FakeDetector:
    """Stands in for the detection library; records which solve path ran."""

    def __init__(self, trans=None):
        self.candidates: list[Candidate] = []
        self.trans = np.eye(4) if trans is None else np.asarray(trans, dtype=float)
        self.fresh_calls: list[int] = []
        self.cont_calls: list[int] = []
        self.prev_seen = []

    def detect(self, image, frame_idx=0):
        return list(self.candidates)

    def get_trans_mat(self, cand, center, width):
        self.fresh_calls.append(cand.marker_id)
        return self.trans.copy()

    def get_trans_mat_cont(self, cand, prev_trans, center, width):
        self.cont_calls.append(cand.marker_id)
        self.prev_seen.append(np.array(prev_trans))
        return self.trans.copy()


class Cfg:
    publish_tf = True
    publish_visual_markers = True
    unit_scale = 0.001
    estimate_normals = True


@pytest.fixture
def camera_info():
    P = [600.0, 0.0, 320.0, 0.0, 0.0, 600.0, 240.0, 0.0, 0.0, 0.0, 1.0, 0.0]
    return CameraInfo(640, 480, P, [0.0, 0.0, 0.0, 0.0], "camera")


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def make_facade(detector):
    def _make(objects=None, outputs=None, config=None):
        if objects is None:
            objects = [TrackedObject(5, "marker_5", 0.1)]
        cfg = config or Cfg()
        pre, sel, trk, conv, ref, emit = StrategyFactory.from_config(cfg)
        return MarkerPoseFacade(
            objects, pre, sel, trk, conv, ref, emit,
            detector_factory=lambda info: detector,
            outputs=outputs,
            normal_estimator=StrategyFactory.normal_estimator(cfg),
        )

    return _make


def make_frame(idx=1, stamp=10.0, width=640, height=480, encoding="bgr8"):
    channels = {"mono8": None, "bgra8": 4, "rgba8": 4}.get(encoding, 3)
    shape = (height, width) if channels is None else (height, width, channels)
    return ImageFrame(idx, stamp, "camera", np.zeros(shape, dtype=np.uint8), encoding)


def make_cloud(point=(0.1, 0.2, 1.5), normal=(0.0, 0.0, 1.0), width=320, height=240, stamp=0.0):
    points = np.tile(np.asarray(point, dtype=float), (height, width, 1))
    normals = None if normal is None else np.tile(np.asarray(normal, dtype=float), (height, width, 1))
    return OrganizedCloud(points, normals, stamp, "camera")
