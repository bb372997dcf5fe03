#!/usr/bin/env python3
"""
Video Frame Scanner

Main CLI application entry point.

Runs one decode-and-analysis job against a video file:
1. details - frame count, dimensions, frame rate and codec
2. poster  - the middle frame, plus the seek drift check
3. fades   - fade-in and fade-out boundary frames
4. scan    - scene cuts and the per-frame brightness timeline
5. thumbs  - a batch of frames, with retry-search around undecodable ones
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from jobs import JobKind, JobRequest, JobRunner
from models import ThumbRequest
from reporting import (
    CollectingSink,
    FanOutSink,
    LoggingSink,
    OpenFailedEvent,
    JobFailedEvent,
    TqdmProgressSink,
)
from settings import load_settings


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def evenly_spaced_frames(first: int, last: int, count: int) -> List[int]:
    """``count`` frame numbers spread evenly over [first, last]"""
    if count <= 0 or last < first:
        return []
    return [int(f) for f in np.linspace(first, last, count, dtype=int)]


def result_to_dict(result: Any) -> Any:
    if hasattr(result, 'to_dict'):
        return result.to_dict()
    if isinstance(result, list):
        return [result_to_dict(r) for r in result]
    return result


def write_thumbs(results, output_dir: Path, stem: str, image_format: str) -> List[Path]:
    """Write non-empty thumbnail images to disk"""
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for result in results:
        if result.is_empty:
            logger.warning(f"Thumb {result.thumb_id} (frame {result.target_frame}) is empty, not written")
            continue
        path = output_dir / f"{stem}_{result.actual_frame:06d}{image_format}"
        path.write_bytes(result.image)
        written.append(path)
    logger.info(f"Wrote {len(written)} thumbnails to {output_dir}")
    return written


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Extract frames, fade boundaries and scene cuts from a video file',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # File details
  python main.py details ./movie.mp4

  # Fade in/out boundaries with a custom threshold
  python main.py fades ./movie.mp4 --threshold 25

  # Scene scan, result written to a file
  python main.py scan ./movie.mp4 --output ./scan.json

  # 20 evenly spaced thumbnails written as images
  python main.py thumbs ./movie.mp4 --count 20 --output-dir ./thumbs
        """
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('video', help='Path to the video file')
    common.add_argument('--config', default=None, help='YAML settings file')
    common.add_argument('--file-id', default=None, help='Identifier used in events (default: file name)')
    common.add_argument('--use-ratio', action='store_true', help='Seek by position ratio instead of frame index')
    common.add_argument('--output', default=None, help='Write the JSON result to this file instead of stdout')
    common.add_argument('--no-progress', action='store_true', help='Hide progress bars')
    common.add_argument('--verbose', action='store_true', help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('details', parents=[common], help='Probe file metadata')
    subparsers.add_parser('poster', parents=[common], help='Fetch the poster frame')

    fades = subparsers.add_parser('fades', parents=[common], help='Detect fade in and out points')
    fades.add_argument('--threshold', type=float, default=None,
                       help='Brightness threshold 0-255 (default: from settings)')
    fades.add_argument('--search-length', type=int, default=None,
                       help='Frames scanned from each end (default: from settings)')
    fades.add_argument('--no-detect', action='store_false', dest='detect',
                       help='Skip detection and return the full range')

    scan = subparsers.add_parser('scan', parents=[common], help='Detect scene cuts')
    scan.add_argument('--threshold', type=float, default=None,
                      help='Frame delta threshold (default: from settings)')
    scan.add_argument('--min-scene-length', type=int, default=None,
                      help='Minimum frames between cuts (default: from settings)')

    thumbs = subparsers.add_parser('thumbs', parents=[common], help='Retrieve thumbnails')
    group = thumbs.add_mutually_exclusive_group(required=True)
    group.add_argument('--frames', type=int, nargs='+', help='Frame numbers to retrieve')
    group.add_argument('--count', type=int, help='Number of evenly spaced frames to retrieve')
    thumbs.add_argument('--sync', action='store_true', help='Do not search neighbouring frames on failure')
    thumbs.add_argument('--output-dir', default=None, help='Write thumbnail images to this directory')
    thumbs.add_argument('--search-limit', type=int, default=None,
                        help='Largest frame offset probed around an empty frame (default: from settings)')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    overrides: Dict[str, Any] = {
        'fade_search_length': getattr(args, 'search_length', None),
        'min_scene_length': getattr(args, 'min_scene_length', None),
        'search_limit': getattr(args, 'search_limit', None),
    }
    try:
        settings = load_settings(args.config, overrides)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid settings: {e}")
        return 1

    file_id = args.file_id or Path(args.video).name
    collector = CollectingSink()
    progress = TqdmProgressSink(disable=args.no_progress)
    sink = FanOutSink(collector, progress, LoggingSink())

    with JobRunner(sink, settings) as runner:
        if args.command == 'details':
            request = JobRequest(JobKind.FILE_DETAILS, file_id, args.video)
        elif args.command == 'poster':
            request = JobRequest(JobKind.POSTER_FRAME, file_id, args.video, poster_frame_id=file_id)
        elif args.command == 'fades':
            request = JobRequest(JobKind.FADE_DETECTION, file_id, args.video, use_ratio=args.use_ratio,
                                 detect=args.detect, threshold=args.threshold)
        elif args.command == 'scan':
            request = JobRequest(JobKind.SCENE_SCAN, file_id, args.video, use_ratio=args.use_ratio,
                                 threshold=args.threshold)
        else:
            frames = args.frames
            if frames is None:
                details = runner.run(JobRequest(JobKind.FILE_DETAILS, file_id, args.video))
                if details is None:
                    return 1
                frames = evenly_spaced_frames(0, details.frame_count - 1, args.count)
            thumb_requests = [
                ThumbRequest(thumb_id=f"thumb-{i}", frame_id=f"frame-{i}", target_frame=frame)
                for i, frame in enumerate(frames)
            ]
            kind = JobKind.THUMBNAILS_SYNC if args.sync else JobKind.THUMBNAILS
            request = JobRequest(kind, file_id, args.video, use_ratio=args.use_ratio, thumbs=thumb_requests)

        result = runner.run(request)
    sink.close()

    if collector.of_type(OpenFailedEvent) or collector.of_type(JobFailedEvent) or result is None:
        return 1

    if args.command == 'thumbs' and args.output_dir:
        write_thumbs(result, Path(args.output_dir), Path(args.video).stem, settings.image_format)

    payload = json.dumps(result_to_dict(result), indent=2)
    if args.output:
        Path(args.output).write_text(payload)
        logger.info(f"Result written to {args.output}")
    else:
        print(payload)
    return 0


if __name__ == '__main__':
    sys.exit(main())
