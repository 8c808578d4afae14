import cv2
import numpy as np

from ..errors import DetectionError, DetectorInitError
from ..ip_types import Candidate
from ..transforms import matrix_to_rvec_tvec, rvec_tvec_to_matrix


def get_dict(name: str):
    """
    ArUco-only dictionary resolver (no AprilTag).
    Unknown names are an initialization error.
    Works on OpenCV >= 4.7 (getPredefinedDictionary) and older (Dictionary_get).
    """
    key = (name or "").strip().lower()
    if key.startswith("dict_"):
        key = key[5:]
    table = {
        "4x4_50":  cv2.aruco.DICT_4X4_50,
        "4x4_100": cv2.aruco.DICT_4X4_100,
        "5x5_50":  cv2.aruco.DICT_5X5_50,
        "5x5_100": cv2.aruco.DICT_5X5_100,
        "6x6_50":  cv2.aruco.DICT_6X6_50,
        "6x6_100": cv2.aruco.DICT_6X6_100,
        "7x7_50":  cv2.aruco.DICT_7X7_50,
        "7x7_100": cv2.aruco.DICT_7X7_100,
    }
    if key not in table:
        raise DetectorInitError(f"Unknown ArUco dictionary: {name!r}")
    code = table[key]

    if hasattr(cv2.aruco, "getPredefinedDictionary"):           # OpenCV >= 4.7
        return cv2.aruco.getPredefinedDictionary(code)
    return cv2.aruco.Dictionary_get(code)                        # Older OpenCV


def _make_params():
    """Create detector parameters across OpenCV versions."""
    if hasattr(cv2.aruco, "DetectorParameters_create"):
        return cv2.aruco.DetectorParameters_create()
    return cv2.aruco.DetectorParameters()


def marker_object_points(center, width: float) -> np.ndarray:
    """Marker corners in its own plane, in ArUco corner order (TL, TR, BR, BL)."""
    cx, cy = float(center[0]), float(center[1])
    h = float(width) / 2.0
    return np.array(
        [
            [cx - h, cy + h, 0.0],
            [cx + h, cy + h, 0.0],
            [cx + h, cy - h, 0.0],
            [cx - h, cy - h, 0.0],
        ],
        dtype=np.float64,
    )


def squareness(corners: np.ndarray) -> float:
    """Area of the detected quad over the area of its minimum bounding rectangle."""
    pts = np.asarray(corners, dtype=np.float32).reshape(-1, 2)
    area = abs(float(cv2.contourArea(pts)))
    (_, _), (w, h), _ = cv2.minAreaRect(pts)
    rect = float(w) * float(h)
    if rect <= 0.0:
        return 0.0
    return float(min(1.0, area / rect))


class ArucoMarkerDetector:
    """
    Detection library adapter: finds ArUco candidates in a BGR frame and
    solves camera->marker transforms for them (native units = marker width units).
    """

    def __init__(self, K, dist, dict_name: str = "4x4_50", threshold: int = 100):
        self.K = np.asarray(K, dtype=np.float64).reshape(3, 3)
        self.dist = np.asarray(dist, dtype=np.float64).reshape(-1, 1)
        self.threshold = threshold
        self.dictionary = get_dict(dict_name)
        self.params = _make_params()
        self._detector = None
        # Prefer the newer ArucoDetector API if present
        if hasattr(cv2.aruco, "ArucoDetector"):
            self._detector = cv2.aruco.ArucoDetector(self.dictionary, self.params)

    def _binarize(self, image):
        gray = image
        if image.ndim == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        if self.threshold is None or self.threshold < 0:
            return gray
        _, binary = cv2.threshold(gray, int(self.threshold), 255, cv2.THRESH_BINARY)
        return binary

    def detect(self, image, frame_idx: int = 0) -> list[Candidate]:
        try:
            img = self._binarize(image)
            if self._detector is not None:
                corners, ids, _rej = self._detector.detectMarkers(img)
            else:
                corners, ids, _rej = cv2.aruco.detectMarkers(
                    img, self.dictionary, parameters=self.params
                )
        except cv2.error as exc:
            raise DetectionError(f"marker detection failed: {exc}") from exc

        cands: list[Candidate] = []
        if ids is not None and len(ids) > 0:
            for i, mid in enumerate(ids.flatten()):
                c = np.asarray(corners[i], dtype=np.float64).reshape(4, 2)
                cx, cy = c.mean(axis=0)
                cands.append(Candidate(int(mid), (float(cx), float(cy)), squareness(c), c, frame_idx))
        return cands

    def _solve(self, cand: Candidate, center, width, guess=None) -> np.ndarray:
        obj_pts = marker_object_points(center, width)
        img_pts = np.asarray(cand.corners, dtype=np.float64).reshape(4, 2)
        try:
            if guess is None:
                ok, rvec, tvec = cv2.solvePnP(
                    obj_pts, img_pts, self.K, self.dist, flags=cv2.SOLVEPNP_IPPE
                )
            else:
                rvec0, tvec0 = matrix_to_rvec_tvec(guess)
                ok, rvec, tvec = cv2.solvePnP(
                    obj_pts, img_pts, self.K, self.dist, rvec0, tvec0,
                    useExtrinsicGuess=True, flags=cv2.SOLVEPNP_ITERATIVE,
                )
        except cv2.error as exc:
            raise DetectionError(f"pose solve failed for marker {cand.marker_id}: {exc}") from exc
        if not ok:
            raise DetectionError(f"pose solve failed for marker {cand.marker_id}")
        return rvec_tvec_to_matrix(rvec, tvec)

    def get_trans_mat(self, cand: Candidate, center, width: float) -> np.ndarray:
        return self._solve(cand, center, width)

    def get_trans_mat_cont(self, cand: Candidate, prev_trans, center, width: float) -> np.ndarray:
        return self._solve(cand, center, width, guess=prev_trans)
