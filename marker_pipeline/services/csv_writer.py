import csv

from ..ip_types import PoseRecord


class CsvWriter:
    HEADER = [
        "stamp",
        "frame_idx", "frame_id", "marker_id",
        "pos_x", "pos_y", "pos_z",
        "quat_x", "quat_y", "quat_z", "quat_w",
        "confidence",
    ]

    def __init__(self, csv_path: str):
        self.csv_path = csv_path
        self._opened = False
        self._fh = None
        self._w = None

    def open(self):
        self._fh = open(self.csv_path, "w", newline="")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.HEADER)
        self._opened = True

    @staticmethod
    def _row(rec: PoseRecord) -> list:
        return [
            f"{rec.stamp:.6f}",
            rec.frame_idx, rec.frame_id, rec.id,
            *rec.position,
            *rec.orientation,
            f"{rec.confidence:.4f}",
        ]

    def append(self, rec: PoseRecord):
        self._w.writerow(self._row(rec))

    def close(self):
        if self._opened and self._fh:
            self._fh.close()
            self._opened = False
            self._fh = None
            self._w = None
