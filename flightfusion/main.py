"""Entry point: CLI argument parsing + flight processing + uvicorn startup."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from flightfusion.config import AppConfig, load_config
from flightfusion.errors import FusionError, ValidationError
from flightfusion.parsing.scanner import scan_directory
from flightfusion.pipeline import FlightProcessor
from flightfusion.recording.models import FlightRequest
from flightfusion.recording.store import FlightStore

logger = logging.getLogger(__name__)


def setup_logging(log_dir: str, verbose: bool = False) -> None:
    """Configure logging to both console and file."""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_path / "flightfusion.log"),
        ],
    )


def parse_path_list(value: str) -> list[str]:
    """Split a comma-separated list of paths."""
    return [p.strip() for p in value.split(",") if p.strip()]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Drone telemetry / video tracking fusion"
    )
    parser.add_argument(
        "-c", "--config",
        default="config/default.yaml",
        help="Path to YAML config file (default: config/default.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    process = sub.add_parser("process", help="Process a flight and store the results")
    process.add_argument("--name", required=True, help="Flight name")
    process.add_argument("--date", required=True, help="Flight date (YYYY-MM-DD)")
    process.add_argument("--description", default="", help="Flight description")
    process.add_argument("--log", default=None, help="Flight log CSV path")
    process.add_argument(
        "--videos", type=parse_path_list, default=None,
        help="Video file paths (comma-separated)",
    )
    process.add_argument(
        "--tracking", type=parse_path_list, default=None,
        help="Tracking result JSON paths (comma-separated, same order as --videos)",
    )
    process.add_argument(
        "--dir", default=None,
        help="Directory holding the log, DJI_*.MP4 videos and tracking files",
    )
    process.add_argument(
        "--camera-fov", type=float, default=None,
        help="Horizontal camera FOV in degrees (overrides config)",
    )

    segments = sub.add_parser("segments", help="List recording segments in a flight log")
    segments.add_argument("log", help="Flight log CSV path")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Web server host (overrides config)")
    serve.add_argument("--port", type=int, default=None,
                       help="Web server port (overrides config)")

    return parser.parse_args(argv)


def _resolve_existing(path: str) -> str:
    resolved = Path(path).resolve()
    if not resolved.exists():
        raise ValidationError(f"File not found: {path}")
    return str(resolved)


def build_request(args: argparse.Namespace) -> FlightRequest:
    """Turn `process` arguments into a FlightRequest with checked absolute paths."""
    log_path = args.log
    videos = args.videos or []
    tracking = args.tracking or []

    if args.dir:
        found = scan_directory(args.dir)
        log_path = log_path or str(found.log)
        videos = videos or found.video_paths
        tracking = tracking or found.tracking_paths

    try:
        date = datetime.fromisoformat(args.date)
    except ValueError:
        raise ValidationError(f"Invalid flight date: {args.date!r}") from None

    return FlightRequest(
        name=args.name,
        date=date,
        description=args.description,
        log_path=_resolve_existing(log_path) if log_path else None,
        video_paths=[_resolve_existing(p) for p in videos],
        tracking_paths=[_resolve_existing(p) for p in tracking],
        camera_fov=args.camera_fov,
    )


def run_process(args: argparse.Namespace, config: AppConfig) -> None:
    request = build_request(args)
    store = FlightStore(config.storage.db_path)
    try:
        processor = FlightProcessor(config, store)
        flight_id = processor.process(request)
        flight = store.get_flight(flight_id)
        logger.info("=== Processing complete ===")
        logger.info("Flight ID: %d", flight_id)
        logger.info("Name: %s", flight["name"])
        logger.info("Date: %s", flight["date"])
        if flight["description"]:
            logger.info("Description: %s", flight["description"])
        for video in flight["videos"]:
            logger.info("Video #%d: %s (%d frames)",
                        video["video_id"], Path(video["file_path"]).name,
                        video["total_frames"])
    finally:
        store.close()


def run_segments(args: argparse.Namespace, config: AppConfig) -> None:
    store = FlightStore(":memory:")
    try:
        segments = FlightProcessor(config, store).analyze_log(
            _resolve_existing(args.log)
        )
    finally:
        store.close()

    print(f"Recording segments found: {len(segments)}")
    for i, seg in enumerate(segments, start=1):
        print(f"Segment {i}: {seg.start_time / 1000:.1f}s -> "
              f"{seg.end_time / 1000:.1f}s ({seg.duration / 1000:.1f}s, "
              f"log rows {seg.start_index}-{seg.end_index})")


def run_serve(args: argparse.Namespace, config: AppConfig) -> None:
    import uvicorn

    from flightfusion.web.app import create_app

    if args.host:
        config.web.host = args.host
    if args.port:
        config.web.port = args.port

    logger.info("HTTP API: http://%s:%d", config.web.host, config.web.port)
    store = FlightStore(config.storage.db_path)
    app = create_app(config, store)
    try:
        uvicorn.run(app, host=config.web.host, port=config.web.port,
                    log_level="info")
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        store.close()
        logger.info("Shutdown complete")


COMMANDS = {
    "process": run_process,
    "segments": run_segments,
    "serve": run_serve,
}


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = load_config(args.config)

    setup_logging(config.storage.log_dir, args.verbose)
    logger.info("Starting flightfusion %s", args.command)

    try:
        COMMANDS[args.command](args, config)
    except FusionError as e:
        logger.error("Processing failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
