"""Marker pose pipeline: selection, continuity tracking, conversion and depth refinement."""

from .facade import MarkerPoseFacade
from .factory import StrategyFactory

__all__ = ["MarkerPoseFacade", "StrategyFactory"]
