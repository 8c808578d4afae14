import numpy as np

from ..ip_types import (
    Candidate,
    FrameResult,
    ImageFrame,
    PoseRecord,
    StampedTransform,
    TrackedObject,
    VisualMarker,
)
from ..transforms import compose_pose

# Indexed by position in the tracked-object list.
MARKER_COLORS = [
    (0.0, 0.0, 1.0, 1.0),
    (1.0, 0.0, 0.0, 1.0),
]
FALLBACK_COLOR = (0.0, 1.0, 0.0, 1.0)


def color_for(index: int) -> tuple[float, float, float, float]:
    if 0 <= index < len(MARKER_COLORS):
        return MARKER_COLORS[index]
    return FALLBACK_COLOR


def _tuple(v) -> tuple:
    return tuple(float(x) for x in np.asarray(v).reshape(-1))


class PoseEmit:
    """
    Strategy: append the final pose of a visible object to the frame result,
    plus its camera->marker transform and box annotation when enabled.
    """

    def __init__(self, publish_tf: bool = True, publish_visual_markers: bool = True, unit_scale: float = 0.001):
        self.publish_tf = publish_tf
        self.publish_visual_markers = publish_visual_markers
        self.unit_scale = unit_scale

    def begin(self, frame: ImageFrame) -> FrameResult:
        return FrameResult(frame.idx, frame.stamp)

    def emit(
        self,
        result: FrameResult,
        frame: ImageFrame,
        index: int,
        obj: TrackedObject,
        cand: Candidate,
        position: np.ndarray,
        orientation: np.ndarray,
    ) -> PoseRecord:
        pos = _tuple(position)
        quat = _tuple(orientation)
        record = PoseRecord(
            id=obj.id,
            frame_id=frame.frame_id,
            stamp=frame.stamp,
            frame_idx=frame.idx,
            position=pos,
            orientation=quat,
            confidence=float(cand.cf),
        )
        result.records.append(record)

        if self.publish_tf:
            result.transforms.append(
                StampedTransform(frame.stamp, frame.frame_id, obj.name, pos, quat)
            )

        if self.publish_visual_markers:
            result.visual_markers.append(self._box(frame, index, obj, position, orientation))
        return record

    def _box(self, frame, index, obj, position, orientation) -> VisualMarker:
        w = obj.marker_width * self.unit_scale
        # box sits on top of the marker plane
        center = compose_pose(position, orientation, [0.0, 0.0, 0.25 * w])
        return VisualMarker(
            id=obj.id,
            frame_id=frame.frame_id,
            stamp=frame.stamp,
            position=_tuple(center),
            orientation=_tuple(orientation),
            scale=(1.0 * w, 1.0 * w, 0.5 * w),
            color=color_for(index),
        )
