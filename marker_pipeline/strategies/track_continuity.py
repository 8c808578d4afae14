import logging
from enum import Enum

import numpy as np

from ..ip_types import Candidate, TrackedObject

log = logging.getLogger(__name__)


class TrackState(Enum):
    UNSEEN = "unseen"
    VISIBLE = "visible"


def state_of(obj: TrackedObject) -> TrackState:
    return TrackState.VISIBLE if obj.visible else TrackState.UNSEEN


class ContinuityTrack:
    """
    Strategy: request a transform for a matched object.

    UNSEEN -> VISIBLE solves from scratch using the marker geometry;
    VISIBLE -> VISIBLE refines the previous transform.
    """

    def __init__(self, detector=None):
        self.detector = detector

    def update(self, obj: TrackedObject, cand: Candidate) -> np.ndarray:
        if state_of(obj) is TrackState.UNSEEN or obj.trans is None:
            trans = self.detector.get_trans_mat(cand, obj.marker_center, obj.marker_width)
            log.debug("object %d: fresh transform", obj.id)
        else:
            trans = self.detector.get_trans_mat_cont(
                cand, obj.trans, obj.marker_center, obj.marker_width
            )
            log.debug("object %d: continuity transform", obj.id)
        obj.trans = np.asarray(trans, dtype=float)
        obj.visible = True
        return obj.trans
