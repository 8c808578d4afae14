import logging
from typing import Callable, Optional

from .errors import DetectorInitError, ImageFormatError
from .ip_types import CameraInfo, FrameResult, ImageFrame, OrganizedCloud, TrackedObject


class MarkerPoseFacade:
    """
    Pipeline context shared by the calibration, image and cloud handlers.

    Handlers run to completion; the only state touched from more than one
    handler besides the flags is the cloud, which DepthRefine swaps under a
    lock. Image and cloud handling stay inactive until calibration arrives.
    """

    def __init__(
        self,
        objects: list[TrackedObject],
        pre,
        sel,
        trk,
        conv,
        ref,
        emit,
        detector_factory: Callable[[CameraInfo], object],
        logger: Optional[logging.Logger] = None,
        outputs=None,
        normal_estimator=None,
    ):
        self.objects = objects
        self.pre = pre
        self.sel = sel
        self.trk = trk
        self.conv = conv
        self.ref = ref
        self.emit = emit
        self.detector_factory = detector_factory
        self.log = logger or logging.getLogger(__name__)
        self.outputs = list(outputs or [])
        self.normal_estimator = normal_estimator

        self.detector = None
        self.camera_info: Optional[CameraInfo] = None
        self.got_calibration = False
        self.frames_processed = 0
        self.frames_dropped = 0
        self.clouds_received = 0

    def on_camera_info(self, info: CameraInfo) -> bool:
        """Consume the first calibration record; later ones are no-ops."""
        if self.got_calibration:
            return False
        try:
            detector = self.detector_factory(info)
        except DetectorInitError:
            raise
        except Exception as exc:
            raise DetectorInitError(f"detector initialization failed: {exc}") from exc

        self.camera_info = info
        self.detector = detector
        self.trk.detector = detector
        self.got_calibration = True
        self.log.info(
            "camera parameters: %dx%d, tracking %d object(s)",
            info.width, info.height, len(self.objects),
        )
        self.log.info("subscribing to image and cloud input")
        return True

    def on_cloud(self, cloud: OrganizedCloud) -> None:
        if not self.got_calibration:
            self.log.debug("cloud ignored before calibration")
            return
        if cloud.normals is None and self.normal_estimator is not None:
            cloud = self.normal_estimator.apply(cloud)
        previous = self.ref.swap_cloud(cloud)
        if previous is None:
            self.log.info("first cloud received: %dx%d", cloud.width, cloud.height)
        self.clouds_received += 1

    def on_image(self, frame: ImageFrame) -> Optional[FrameResult]:
        if not self.got_calibration:
            self.log.debug("image %d ignored before calibration", frame.idx)
            return None
        try:
            frame = self.pre.apply(frame)
        except ImageFormatError as exc:
            self.log.error("frame %d dropped: %s", frame.idx, exc)
            self.frames_dropped += 1
            return None

        # DetectionError propagates: detector state is unrecoverable
        cands = self.detector.detect(frame.image, frame.idx)

        cloud = self.ref.cloud
        result = self.emit.begin(frame)
        for index, obj, cand in self.sel.select(cands, self.objects):
            trans = self.trk.update(obj, cand)
            pos, quat = self.conv.convert(trans)
            pos, quat, refined = self.ref.refine(cand, pos, quat, frame.width, cloud)
            self.emit.emit(result, frame, index, obj, cand, pos, quat)
            self.log.debug("object %d (%s) refined=%s", obj.id, obj.name, refined)

        for out in self.outputs:
            out.write_frame(result)

        self.frames_processed += 1
        self.log.debug(
            "frame=%d candidates=%d poses=%d", frame.idx, len(cands), len(result.records)
        )
        return result
