#!/usr/bin/env python3
"""
chunkscribe v1.0.0 — command-line entry point.
Uploads media, runs transcription jobs and queries their status.
"""

import sys
import json
import shutil
import logging
import argparse
import traceback
from pathlib import Path
from datetime import datetime

# ── Determine project root ────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from chunkscribe.core.constants import APP_NAME, APP_VERSION, LOGS_DIRNAME, JobStatus
from chunkscribe.core.config import AppConfig
from chunkscribe.core.error_codes import JobError
from chunkscribe.core.service import TranscriberService
from chunkscribe.core.diagnostics import get_diagnostics
from chunkscribe.core.output_writer import write_transcript

logger = logging.getLogger(APP_NAME)


def setup_logging(data_dir: Path, verbose: bool = False) -> Path:
    """Log to <data_dir>/logs/app.log and to stderr."""
    log_dir = data_dir / LOGS_DIRNAME
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "app.log"

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding="utf-8"),
            stderr_handler,
        ],
    )
    return log_file


def check_prerequisites():
    """Check that ffmpeg and ffprobe are on PATH."""
    missing = [tool for tool in ("ffmpeg", "ffprobe") if not shutil.which(tool)]
    if missing:
        raise SystemExit(f"Missing required tools: {', '.join(missing)}")
    logger.info("ffmpeg found at: %s", shutil.which("ffmpeg"))


def _print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_transcribe(service: TranscriberService, args) -> int:
    check_prerequisites()
    job_id = service.upload_file(Path(args.file), content_type=args.content_type)
    status = service.start_processing(job_id)
    print(f"Job {job_id}: {status['status']}", file=sys.stderr)
    if not args.wait:
        _print_json({'jobId': job_id, **status})
        return 0

    result = service.wait(job_id)
    if args.output and result['status'] == JobStatus.COMPLETED:
        folder = write_transcript(service.get_job(job_id), Path(args.output))
        print(f"Transcript written to {folder}", file=sys.stderr)
    _print_json(result)
    return 0 if result['status'] == JobStatus.COMPLETED else 1


def cmd_status(service: TranscriberService, args) -> int:
    _print_json(service.get_status(args.job_id))
    return 0


def cmd_jobs(service: TranscriberService, args) -> int:
    for job in service.list_jobs():
        print(f"{job.id}  {job.status:<10}  {job.progress:>3}%  {job.original_name}")
    return 0


def cmd_themes(service: TranscriberService, args) -> int:
    job = service.get_job(args.job_id)
    if job.status != JobStatus.COMPLETED:
        print(f"Job {job.id} is {job.status}, not completed", file=sys.stderr)
        return 1
    duration = max((s.end for s in job.segments or []), default=0)
    _print_json(service.analyze_themes(job.transcription_text or "", remote_addr=args.client,
                                       segments=job.segments, duration_sec=duration))
    return 0


def cmd_config(service: TranscriberService, args) -> int:
    config = service.config
    if args.key is None:
        _print_json(config.as_dict())
        return 0
    if args.key not in config.as_dict() or args.value is None:
        print(f"Usage: config KEY VALUE, KEY one of: {', '.join(config.as_dict())}",
              file=sys.stderr)
        return 1
    config.set(args.key, args.value)
    print(f"{args.key} = {config.get(args.key)}", file=sys.stderr)
    return 0


def cmd_health(service: TranscriberService, args) -> int:
    health = service.health_check()
    _print_json(health)
    return 0 if health['healthy'] else 1


def cmd_doctor(service: TranscriberService, args) -> int:
    _print_json(get_diagnostics(service.config))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Chunked long-form media transcription with background jobs.",
    )
    parser.add_argument("--data-dir", help="Directory for jobs, uploads and logs.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("transcribe", help="Upload a media file and start a job.")
    p.add_argument("file", help="Path to the audio or video file.")
    p.add_argument("--content-type", help="MIME type of the file, if known.")
    p.add_argument("--wait", action="store_true", help="Print the finished job instead of its id. "
                        "The process stays up until the run ends either way.")
    p.add_argument("--output", help="Write transcript.txt and segments.json here (with --wait).")
    p.set_defaults(func=cmd_transcribe)

    p = sub.add_parser("status", help="Show a job's status.")
    p.add_argument("job_id")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("jobs", help="List all jobs.")
    p.set_defaults(func=cmd_jobs)

    p = sub.add_parser("themes", help="Split a completed job's transcript into themes.")
    p.add_argument("job_id")
    p.add_argument("--client", help="Caller key for per-client rate limiting.")
    p.set_defaults(func=cmd_themes)

    p = sub.add_parser("config", help="Show settings, or persist one (KEY VALUE).")
    p.add_argument("key", nargs="?")
    p.add_argument("value", nargs="?")
    p.set_defaults(func=cmd_config)

    p = sub.add_parser("health", help="Check the transcription service.")
    p.set_defaults(func=cmd_health)

    p = sub.add_parser("doctor", help="Show tool versions and settings.")
    p.set_defaults(func=cmd_doctor)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = AppConfig(data_dir=Path(args.data_dir) if args.data_dir else None)
    log_file = setup_logging(config.data_dir, args.verbose)

    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("Data dir: %s", config.data_dir)

    service = TranscriberService(config)
    try:
        return args.func(service, args)
    except JobError as e:
        logger.error("%s", e)
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    except Exception as e:
        logger.critical("Fatal error: %s: %s\n%s", type(e).__name__, e, traceback.format_exc())
        print(f"Fatal error: {e}. Check logs at {log_file}", file=sys.stderr)
        return 1
    finally:
        service.shutdown(wait=True)


if __name__ == "__main__":
    sys.exit(main())
