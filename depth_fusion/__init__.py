"""Marker + depth pose fusion service."""

from .config import FusionConfig
from .worker import FusionWorker

__all__ = ["FusionConfig", "FusionWorker"]
