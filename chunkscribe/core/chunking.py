"""
Time-based audio chunking using ffmpeg.
Chunks start every chunk_duration seconds and carry a trailing overlap so
words split across a hard boundary appear whole in one of the two chunks.
"""

import json
import math
import logging
from pathlib import Path

from chunkscribe.core.audio_extract import extract_audio_slice, get_audio_duration
from chunkscribe.core.constants import CHUNK_DURATION_SEC, CHUNK_OVERLAP_SEC, NORM_FORMAT
from chunkscribe.core.models import Chunk

logger = logging.getLogger(__name__)


def _as_finite(value) -> float | None:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def resolve_chunk_settings(chunk_duration_sec, overlap_sec) -> tuple[float, float]:
    """
    Coerce chunk settings to a usable pair.
    chunk duration must be > 0; overlap must be >= 0 and < chunk duration.
    Invalid values fall back to the defaults.
    """
    chunk = _as_finite(chunk_duration_sec)
    if chunk is None or chunk <= 0:
        logger.warning("Invalid chunk duration %r, using %ss", chunk_duration_sec, CHUNK_DURATION_SEC)
        chunk = float(CHUNK_DURATION_SEC)

    overlap = _as_finite(overlap_sec)
    if overlap is None or overlap < 0 or overlap >= chunk:
        logger.warning("Invalid chunk overlap %r, using %ss", overlap_sec, CHUNK_OVERLAP_SEC)
        overlap = float(CHUNK_OVERLAP_SEC)
        if overlap >= chunk:
            # default overlap does not fit a very short chunk duration
            overlap = 0.0

    return chunk, overlap


def create_chunk_manifest(duration_sec: float,
                          chunk_duration_sec: float = CHUNK_DURATION_SEC,
                          overlap_sec: float = CHUNK_OVERLAP_SEC) -> list[dict]:
    """
    Create chunk manifest entries based on duration.
    Returns list of dicts with idx, start_sec, duration_sec.
    """
    if duration_sec <= 0:
        return []

    count = math.ceil(duration_sec / chunk_duration_sec)
    chunks = []
    for idx in range(count):
        start = idx * chunk_duration_sec
        if start >= duration_sec:
            break
        chunks.append({
            'idx': idx,
            'start_sec': start,
            'duration_sec': min(chunk_duration_sec + overlap_sec, duration_sec - start),
        })
    return chunks


def chunk_filename(idx: int) -> str:
    return f"chunk_{idx:03d}.{NORM_FORMAT}"


def split_audio_into_chunks(audio_path: Path, chunks_dir: Path,
                            manifest_entries: list[dict],
                            chunk_duration_sec: float,
                            overlap_sec: float) -> list[Chunk]:
    """
    Materialize manifest entries as standalone chunk files.
    Existing files with the same index are overwritten.
    """
    chunks_dir.mkdir(parents=True, exist_ok=True)
    chunks = []

    for entry in manifest_entries:
        chunk_file = chunks_dir / chunk_filename(entry['idx'])
        extract_audio_slice(audio_path, chunk_file, entry['start_sec'], entry['duration_sec'])
        chunks.append(Chunk(
            path=str(chunk_file),
            start=entry['start_sec'],
            duration=entry['duration_sec'],
        ))

    manifest = {
        'chunking_mode': 'time_based',
        'chunk_duration_sec': chunk_duration_sec,
        'overlap_sec': overlap_sec,
        'chunks': [
            {
                'idx': e['idx'],
                'file': chunk_filename(e['idx']),
                'start_sec': e['start_sec'],
                'duration_sec': e['duration_sec'],
            }
            for e in manifest_entries
        ],
    }

    with open(chunks_dir / "manifest.json", 'w') as f:
        json.dump(manifest, f, indent=2)

    logger.info("Created %d chunks in %s", len(chunks), chunks_dir)
    return chunks


def plan_chunks(audio_path: Path, output_dir: Path,
                chunk_duration_sec: float = CHUNK_DURATION_SEC,
                overlap_sec: float = CHUNK_OVERLAP_SEC) -> tuple[float, list[Chunk]]:
    """
    Probe the audio and cut it into overlapping chunks.
    Returns (total_duration, chunks). A failed or non-positive probe yields
    (0.0, []); callers must treat that as a failure.
    """
    chunk_duration_sec, overlap_sec = resolve_chunk_settings(chunk_duration_sec, overlap_sec)

    total_duration = get_audio_duration(audio_path)
    if total_duration <= 0:
        logger.warning("No usable duration for %s", audio_path)
        return 0.0, []

    manifest = create_chunk_manifest(total_duration, chunk_duration_sec, overlap_sec)
    chunks = split_audio_into_chunks(audio_path, output_dir, manifest,
                                     chunk_duration_sec, overlap_sec)
    return total_duration, chunks
