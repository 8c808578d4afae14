from .services.calib import camera_matrix_from_info
from .strategies.convert_coords import AR_TO_ROS, NativeToTargetConvert
from .strategies.detect_aruco import ArucoMarkerDetector
from .strategies.emit_poses import PoseEmit
from .strategies.estimate_normals import OrganizedNormalEstimator
from .strategies.preprocess import Bgr8Frame
from .strategies.refine_depth import DepthRefine
from .strategies.select_best import BestCandidateSelect
from .strategies.track_continuity import ContinuityTrack


class StrategyFactory:
    @staticmethod
    def from_config(config):
        unit_scale = getattr(config, "unit_scale", AR_TO_ROS)

        pre = Bgr8Frame()
        sel = BestCandidateSelect()
        # detector is attached once calibration arrives
        trk = ContinuityTrack()
        conv = NativeToTargetConvert(unit_scale)
        ref = DepthRefine()
        emit = PoseEmit(
            publish_tf=getattr(config, "publish_tf", True),
            publish_visual_markers=getattr(config, "publish_visual_markers", True),
            unit_scale=unit_scale,
        )
        return pre, sel, trk, conv, ref, emit

    @staticmethod
    def normal_estimator(config):
        if not getattr(config, "estimate_normals", True):
            return None
        return OrganizedNormalEstimator()

    @staticmethod
    def detector_factory(dict_name: str, threshold: int = 100):
        def _build(info):
            K, dist = camera_matrix_from_info(info)
            return ArucoMarkerDetector(K, dist, dict_name, threshold)

        return _build
