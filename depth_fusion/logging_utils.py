import logging
from contextlib import contextmanager
from typing import Iterator

LOG_FORMAT = "%(asctime)s %(levelname)s [%(node)s:%(frame_id)s] %(message)s"


class NodeContextFilter(logging.Filter):
    """Stamps every record with the node name and the camera frame it reports in."""

    def __init__(self, node_name: str, frame_id: str = "camera"):
        super().__init__()
        self.node_name = node_name
        self.frame_id = frame_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.node = self.node_name
        record.frame_id = self.frame_id
        return True


def _handler(handler: logging.Handler, node_name: str, frame_id: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(NodeContextFilter(node_name, frame_id))
    return handler


def setup_logger(node_name: str, frame_id: str = "camera", level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(f"depth_fusion.{node_name}")
    logger.setLevel(level)
    if not logger.handlers:
        logger.addHandler(_handler(logging.StreamHandler(), node_name, frame_id))
    return logger


@contextmanager
def session_log(logger: logging.Logger, node_name: str, log_path: str, frame_id: str = "camera") -> Iterator[logging.Handler]:
    """Mirror ``logger`` into ``log_path`` for the duration of one session."""
    handler = _handler(logging.FileHandler(log_path), node_name, frame_id)
    logger.addHandler(handler)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)
        handler.close()
