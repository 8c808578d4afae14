import logging
import threading
from typing import Optional

import numpy as np

from ..ip_types import Candidate, OrganizedCloud
from ..transforms import align_to_normal

log = logging.getLogger(__name__)


class DepthRefine:
    """
    Strategy: correct a vision pose with the most recent organized cloud.

    The cloud is replaced wholesale on arrival and read without regard to its
    timestamp, so a cloud older than the image being processed is still used.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cloud: Optional[OrganizedCloud] = None

    @property
    def cloud(self) -> Optional[OrganizedCloud]:
        with self._lock:
            return self._cloud

    def swap_cloud(self, cloud: OrganizedCloud) -> Optional[OrganizedCloud]:
        with self._lock:
            previous, self._cloud = self._cloud, cloud
        return previous

    @staticmethod
    def cell_for(cand: Candidate, image_width: int, cloud_width: int) -> tuple[int, int]:
        downsize = max(1, int(image_width) // max(1, int(cloud_width)))
        return int(cand.pos[0] // downsize), int(cand.pos[1] // downsize)

    def refine(
        self,
        cand: Candidate,
        position: np.ndarray,
        orientation: np.ndarray,
        image_width: int,
        cloud: Optional[OrganizedCloud] = None,
    ) -> tuple[np.ndarray, np.ndarray, bool]:
        """Return (position, orientation, refined)."""
        if cloud is None:
            cloud = self.cloud
        if cloud is None:
            return position, orientation, False

        col, row = self.cell_for(cand, image_width, cloud.width)
        sample = cloud.sample(col, row)
        if sample is None:
            return position, orientation, False
        point, normal = sample
        point = np.asarray(point, dtype=float)
        if np.isnan(point).any():
            return position, orientation, False

        normal = np.asarray(normal, dtype=float)
        if not np.isfinite(normal).all():
            log.debug("marker %d: no normal at (%d, %d)", cand.marker_id, col, row)
            return point.copy(), orientation, True

        log.debug(
            "marker %d normal %s at (%d, %d)", cand.marker_id, normal.tolist(), col, row
        )
        return point.copy(), align_to_normal(orientation, normal), True
