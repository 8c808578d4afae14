import numpy as np
from scipy.spatial import cKDTree

from ..ip_types import OrganizedCloud


class OrganizedNormalEstimator:
    """
    Per-cell surface normals for an organized cloud.

    Each finite point gets the normal of the plane fitted (PCA, smallest
    eigenvector of the neighbourhood covariance) to its k nearest finite
    neighbours, flipped to face the sensor origin. Non-finite points, and
    clouds with fewer than three finite points, get NaN normals.
    """

    def __init__(self, k_neighbors: int = 25):
        self.k_neighbors = max(3, int(k_neighbors))

    def compute(self, points: np.ndarray) -> np.ndarray:
        pts = np.asarray(points, dtype=np.float64)
        normals = np.full(pts.shape, np.nan)
        valid = np.isfinite(pts).all(axis=2)
        xyz = pts[valid]
        if len(xyz) < 3:
            return normals

        k = min(self.k_neighbors, len(xyz))
        _, nn = cKDTree(xyz).query(xyz, k=k)
        hood = xyz[nn]
        centered = hood - hood.mean(axis=1, keepdims=True)
        cov = np.einsum("nki,nkj->nij", centered, centered) / k
        # eigh sorts eigenvalues ascending
        _, vecs = np.linalg.eigh(cov)
        n = vecs[:, :, 0]

        # viewpoint at the sensor origin
        facing_away = np.einsum("ij,ij->i", n, xyz) > 0
        n[facing_away] *= -1.0
        normals[valid] = n
        return normals

    def apply(self, cloud: OrganizedCloud) -> OrganizedCloud:
        if cloud.normals is not None:
            return cloud
        return OrganizedCloud(cloud.points, self.compute(cloud.points), cloud.stamp, cloud.frame_id)
