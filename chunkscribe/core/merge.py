"""
Merge chunk transcription results into a single transcript.
Handles overlap deduplication at chunk boundaries.
"""

import logging

from chunkscribe.core.models import ChunkResult, Segment

logger = logging.getLogger(__name__)


def merge_segments(chunk_results: list[ChunkResult], overlap_sec: float) -> list[Segment]:
    """
    Shift chunk-local segments to global time, sort them and drop the
    duplicates produced by overlapping chunk windows.

    A segment starting at or before (last accepted end - overlap / 2) is
    treated as a duplicate and discarded whole. Distinct speech that starts
    inside that window is lost as well.
    """
    overlap_threshold = overlap_sec * 0.5

    # Chunk order first so ties on start resolve the same way for any input order
    ordered = sorted(chunk_results, key=lambda r: r.offset)
    all_segments = [
        segment.shifted(result.offset)
        for result in ordered
        for segment in result.segments
    ]
    all_segments.sort(key=lambda s: s.start)

    merged: list[Segment] = []
    dropped = 0
    for segment in all_segments:
        if merged and segment.start <= merged[-1].end - overlap_threshold:
            dropped += 1
            continue
        merged.append(segment)

    if dropped:
        logger.debug("Dropped %d overlapping segments", dropped)
    return merged


def join_chunk_texts(texts: list[str]) -> str:
    """Plain transcript from per-chunk whole-text results, one chunk per line."""
    return '\n'.join((text or '').strip() for text in texts).strip()


def segments_to_text(segments: list[Segment]) -> str:
    return ' '.join(s.text.strip() for s in segments if s.text.strip())
