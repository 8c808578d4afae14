from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Optional

import yaml

from marker_pipeline.services.object_data import DATA_DIR, DEFAULT_PATTERN_LIST


@dataclass
class FusionConfig:
    node_name: str = "ar_kinect"
    publish_tf: bool = True
    publish_visual_markers: bool = True
    threshold: int = 100
    marker_pattern_list: str = str(DEFAULT_PATTERN_LIST)
    marker_data_directory: str = str(DATA_DIR)
    unit_scale: float = 0.001  # detector native (mm) -> output (m)
    estimate_normals: bool = True
    frame_id: str = "camera"
    session_path: Optional[str] = None  # recorded input session
    session_root: str = "data/sessions"
    max_frames: Optional[int] = None
    dry_run: bool = False
    # synthetic source (dry run)
    width: int = 640
    height: int = 480
    cloud_width: int = 320
    fps: int = 30

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "FusionConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def load_config(path: str | Path) -> FusionConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    cfg = FusionConfig()
    cfg.node_name = str(raw.get("node_name", cfg.node_name))
    cfg.publish_tf = _as_bool(raw.get("publish_tf", cfg.publish_tf))
    cfg.publish_visual_markers = _as_bool(
        raw.get("publish_visual_markers", cfg.publish_visual_markers)
    )
    cfg.threshold = int(raw.get("threshold", cfg.threshold))

    # relative data paths are taken from the config file's directory
    for key in ("marker_pattern_list", "marker_data_directory", "session_path"):
        value = raw.get(key)
        if value is None:
            continue
        vp = Path(str(value))
        if not vp.is_absolute():
            vp = p.parent / vp
        setattr(cfg, key, str(vp))

    cfg.unit_scale = float(raw.get("unit_scale", cfg.unit_scale))
    cfg.estimate_normals = _as_bool(raw.get("estimate_normals", cfg.estimate_normals))
    cfg.frame_id = str(raw.get("frame_id", cfg.frame_id))
    cfg.session_root = str(raw.get("session_root", cfg.session_root))
    cfg.max_frames = raw.get("max_frames", cfg.max_frames)
    if cfg.max_frames is not None:
        cfg.max_frames = int(cfg.max_frames)
    cfg.dry_run = _as_bool(raw.get("dry_run", cfg.dry_run))
    cfg.width = int(raw.get("width", cfg.width))
    cfg.height = int(raw.get("height", cfg.height))
    cfg.cloud_width = int(raw.get("cloud_width", cfg.cloud_width))
    cfg.fps = int(raw.get("fps", cfg.fps))
    return cfg
