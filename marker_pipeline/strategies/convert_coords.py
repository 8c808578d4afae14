import numpy as np

from ..transforms import quat_from_matrix

# Detector native units (marker widths, mm) to output units (m).
AR_TO_ROS = 0.001


class NativeToTargetConvert:
    """
    Strategy: map the detector's camera->marker transform into the output
    convention. Translation is scaled; the quaternion has x, y, z negated to
    account for the detector's opposite handedness.
    """

    def __init__(self, unit_scale: float = AR_TO_ROS):
        self.unit_scale = unit_scale

    def convert(self, trans: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        trans = np.asarray(trans, dtype=float)
        ar_pos = trans[:3, 3]
        ar_quat = quat_from_matrix(trans[:3, :3])

        pos = ar_pos * self.unit_scale
        quat = np.array([-ar_quat[0], -ar_quat[1], -ar_quat[2], ar_quat[3]])
        return pos, quat
