import argparse
import signal
import sys

from marker_pipeline.errors import FusionError

from .config import FusionConfig, load_config
from .logging_utils import setup_logger
from .worker import FusionWorker


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Fuse ArUco marker poses with an organized depth cloud")
    ap.add_argument("--config", help="Path to JSON/YAML config")

    ap.add_argument("--node-name")
    ap.add_argument("--session", help="Recorded session directory to replay")
    ap.add_argument("--out", help="Output session root")
    ap.add_argument("--threshold", type=int)
    ap.add_argument("--marker-pattern-list")
    ap.add_argument("--marker-data-directory")
    ap.add_argument("--unit-scale", type=float)
    ap.add_argument("--frame-id")
    ap.add_argument("--max-frames", type=int)
    ap.add_argument("--dry-run", action="store_true")
    ap.add_argument("--no-publish-tf", action="store_true")
    ap.add_argument("--no-visual-markers", action="store_true")
    ap.add_argument("--no-normals", action="store_true", help="Require clouds to carry normals")

    return ap


def _apply_args(cfg: FusionConfig, args: argparse.Namespace) -> FusionConfig:
    cfg.apply_overrides(
        node_name=args.node_name,
        session_path=args.session,
        session_root=args.out,
        threshold=args.threshold,
        marker_pattern_list=args.marker_pattern_list,
        marker_data_directory=args.marker_data_directory,
        unit_scale=args.unit_scale,
        frame_id=args.frame_id,
        max_frames=args.max_frames,
        dry_run=args.dry_run if args.dry_run else None,
        publish_tf=False if args.no_publish_tf else None,
        publish_visual_markers=False if args.no_visual_markers else None,
        estimate_normals=False if args.no_normals else None,
    )
    return cfg


def main(argv=None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    cfg = load_config(args.config) if args.config else FusionConfig()
    cfg = _apply_args(cfg, args)

    logger = setup_logger(cfg.node_name, cfg.frame_id)
    worker = FusionWorker(cfg, logger=logger)

    def _handle_signal(_sig, _frame):
        worker.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    try:
        summary = worker.run()
    except FusionError as exc:
        logger.critical("aborting: %s", exc)
        return 1

    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
