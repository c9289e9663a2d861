"""CLI tool running live face identification against a camera or video file."""
import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from faceguard.core.container import ServiceContainer
from faceguard.core.exceptions import InvalidSampleOperation
from faceguard.core.logging import bind_context, clear_context, get_logger, setup_logging

logger = get_logger(__name__)


def open_capture(source: str) -> cv2.VideoCapture:
    """Open a camera index (e.g. ``0``) or a video file path."""
    capture = cv2.VideoCapture(int(source) if source.isdigit() else source)
    if not capture.isOpened():
        raise RuntimeError(f"Unable to open video source: {source}")
    return capture


def capture_frame_source(capture: cv2.VideoCapture):
    """Wrap an OpenCV capture as a monitor frame source."""
    def read() -> Optional[np.ndarray]:
        ok, frame = capture.read()
        return frame if ok else None
    return read


async def run_monitor(
    source: str,
    profiles_path: Path,
    threshold: Optional[float] = None,
    interval_ms: Optional[int] = None,
    duration: Optional[float] = None,
) -> int:
    """
    Identify faces from a video source until interrupted.

    Args:
        source: Camera index or video file path
        profiles_path: JSON file of profile records
        threshold: Matching threshold override
        interval_ms: Tick interval override
        duration: Stop after this many seconds

    Returns:
        Process exit code
    """
    cont = ServiceContainer()
    await cont.initialize(preload=False)
    try:
        if profiles_path.exists():
            records = json.loads(profiles_path.read_text())
            cont.descriptor_store.load_records(records)
        else:
            logger.warning("Profiles file not found, every face is unknown", path=str(profiles_path))

        if threshold is not None:
            cont.recognition_service.threshold = threshold
        if interval_ms is not None:
            cont.monitor.interval_ms = interval_ms

        capture = open_capture(source)
        cont.monitor.frame_source = capture_frame_source(capture)

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                pass
        if duration:
            loop.call_later(duration, stop_event.set)

        try:
            started = await cont.monitor.run(stop_event)
        finally:
            capture.release()

        for entry in reversed(cont.debouncer.history):
            logger.info(
                "Recognition event",
                person=entry.person_name,
                confidence=entry.confidence,
                unknown=entry.is_unknown,
                timestamp=entry.timestamp,
            )
        return 0 if started else 2
    finally:
        await cont.cleanup()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Identify faces from a camera or video file")
    parser.add_argument("--source", default="0", help="Camera index or video file path")
    parser.add_argument("--profiles", default="profiles.json", help="JSON file of profile records")
    parser.add_argument("--threshold", type=float, help="Matching threshold (distance)")
    parser.add_argument("--interval-ms", type=int, help="Milliseconds between recognition ticks")
    parser.add_argument("--duration", type=float, help="Stop after this many seconds")
    args = parser.parse_args()

    setup_logging()
    bind_context(source=args.source)
    try:
        exit_code = asyncio.run(run_monitor(
            args.source,
            Path(args.profiles),
            threshold=args.threshold,
            interval_ms=args.interval_ms,
            duration=args.duration,
        ))
    except (InvalidSampleOperation, RuntimeError, ValueError) as e:
        logger.error("Monitor failed", error=str(e))
        sys.exit(1)
    finally:
        clear_context()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
