from abc import ABC, abstractmethod

import cv2
import numpy as np

from ..errors import ImageFormatError
from ..ip_types import ImageFrame


class PreprocessStrategy(ABC):
    @abstractmethod
    def apply(self, f: ImageFrame) -> ImageFrame: ...


def _channels(image: np.ndarray) -> int:
    return 1 if image.ndim == 2 else image.shape[2]


class Bgr8Frame(PreprocessStrategy):
    """Convert incoming frames to the bgr8 layout the detector expects."""

    CONVERSIONS = {
        "rgb8": cv2.COLOR_RGB2BGR,
        "bgra8": cv2.COLOR_BGRA2BGR,
        "rgba8": cv2.COLOR_RGBA2BGR,
        "mono8": cv2.COLOR_GRAY2BGR,
    }
    CHANNELS = {"bgr8": 3, "rgb8": 3, "bgra8": 4, "rgba8": 4, "mono8": 1}

    def apply(self, f: ImageFrame) -> ImageFrame:
        encoding = (f.encoding or "").lower()
        expected = self.CHANNELS.get(encoding)
        image = np.asarray(f.image)
        # pixel data has to agree with the encoding label
        if (
            expected is None
            or image.dtype != np.uint8
            or image.ndim not in (2, 3)
            or _channels(image) != expected
        ):
            raise ImageFormatError(f"Could not convert from '{f.encoding}' to 'bgr8'.")
        if encoding == "bgr8":
            return f
        try:
            img = cv2.cvtColor(image, self.CONVERSIONS[encoding])
        except cv2.error as exc:
            raise ImageFormatError(f"Could not convert from '{f.encoding}' to 'bgr8'.") from exc
        return ImageFrame(f.idx, f.stamp, f.frame_id, img, "bgr8")
