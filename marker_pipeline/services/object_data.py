from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import ObjectDataError
from ..ip_types import TrackedObject

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
DEFAULT_PATTERN_LIST = DATA_DIR / "objects_kinect.yml"


def _read_mapping(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ObjectDataError(f"Marker data not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as fp:
            if path.suffix.lower() == ".json":
                data = json.load(fp)
            else:
                data = yaml.safe_load(fp) or {}
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise ObjectDataError(f"Could not parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ObjectDataError(f"{path}: root must be a mapping")
    return data


def _object_from_entry(
    entry: Any, data_directory: Path, default_dict: Optional[str]
) -> tuple[TrackedObject, Optional[str]]:
    if not isinstance(entry, dict):
        raise ObjectDataError(f"object entry must be a mapping, got {entry!r}")
    dict_name = default_dict
    if "id" in entry:
        marker_id = entry["id"]
    elif "pattern" in entry:
        pattern = _read_mapping(data_directory / str(entry["pattern"]))
        if "id" not in pattern:
            raise ObjectDataError(f"pattern {entry['pattern']} has no id")
        marker_id = pattern["id"]
        dict_name = pattern.get("dictionary", dict_name)
    else:
        raise ObjectDataError(f"object entry needs 'id' or 'pattern': {entry!r}")

    try:
        center = entry.get("center", [0.0, 0.0])
        obj = TrackedObject(
            id=int(marker_id),
            name=str(entry.get("name", f"marker_{int(marker_id)}")),
            marker_width=float(entry["width"]),
            marker_center=(float(center[0]), float(center[1])),
        )
    except (KeyError, TypeError, ValueError, IndexError) as exc:
        raise ObjectDataError(f"invalid object entry {entry!r}: {exc}") from exc
    if obj.marker_width <= 0:
        raise ObjectDataError(f"object {obj.name}: width must be positive")
    return obj, dict_name


def load_objects(
    pattern_list: str | Path | None = None,
    data_directory: str | Path | None = None,
) -> tuple[list[TrackedObject], str]:
    """
    Load the tracked objects and the ArUco dictionary they share.

    Pattern paths are resolved against data_directory.
    """
    list_path = Path(pattern_list) if pattern_list else DEFAULT_PATTERN_LIST
    data_dir = Path(data_directory) if data_directory else DATA_DIR
    raw = _read_mapping(list_path)

    entries = raw.get("objects")
    if not isinstance(entries, list) or not entries:
        raise ObjectDataError(f"{list_path}: 'objects' must be a non-empty list")

    default_dict = raw.get("dictionary")
    objects: list[TrackedObject] = []
    dicts: set[str] = set()
    for entry in entries:
        obj, dict_name = _object_from_entry(entry, data_dir, default_dict)
        objects.append(obj)
        if dict_name:
            dicts.add(str(dict_name).lower())

    if len(dicts) > 1:
        raise ObjectDataError(f"objects mix ArUco dictionaries: {sorted(dicts)}")
    ids = [o.id for o in objects]
    if len(set(ids)) != len(ids):
        raise ObjectDataError(f"duplicate marker ids in {list_path}: {ids}")
    return objects, (dicts.pop() if dicts else "4x4_50")
