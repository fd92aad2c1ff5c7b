#!/usr/bin/env python3
"""
Unit tests for chunkscribe core modules.
Tests cover: chunk planning, segment merging, rate limiting, validation,
security utils, error codes and configuration.
"""

import sys
import math
import tempfile
from pathlib import Path
from unittest import mock

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

from chunkscribe.core.constants import (
    ErrorCode, CHUNK_DURATION_SEC, CHUNK_OVERLAP_SEC, MAX_FILE_SIZE,
)
from chunkscribe.core.chunking import (
    create_chunk_manifest, resolve_chunk_settings, plan_chunks,
)
from chunkscribe.core.merge import merge_segments, join_chunk_texts, segments_to_text
from chunkscribe.core.models import ChunkResult, Segment, Job, Chunk
from chunkscribe.core.rate_limiter import RateLimiter, client_identifier
from chunkscribe.core.validation import (
    validate_media_file, validate_media_path, validate_transcription,
)
from chunkscribe.core.error_codes import (
    JobError, ValidationError, RateLimitExceeded, JobNotFound, error_message,
)
from chunkscribe.core.security_utils import (
    sanitize_upload_name, sanitize_title, safe_output_path,
)
from chunkscribe.core.transcribe_groq import extract_segments, extract_transcript_text
from chunkscribe.core.config import AppConfig


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class TestChunking(unittest.TestCase):
    """Test time-based chunk planning."""

    def test_manifest_for_1000_seconds(self):
        manifest = create_chunk_manifest(1000, chunk_duration_sec=480, overlap_sec=10)
        self.assertEqual([e['start_sec'] for e in manifest], [0, 480, 960])
        self.assertEqual([e['duration_sec'] for e in manifest], [490, 490, 40])
        self.assertEqual([e['idx'] for e in manifest], [0, 1, 2])

    def test_chunk_count_is_ceil(self):
        for duration in (1, 479.5, 480, 480.01, 3600, 7201.3):
            manifest = create_chunk_manifest(duration, 480, 10)
            self.assertEqual(len(manifest), math.ceil(duration / 480), duration)

    def test_chunks_cover_full_range_with_exact_overlap(self):
        for duration, chunk, overlap in [(1000, 480, 10), (3601.5, 600, 30),
                                         (59.9, 20, 0.5), (7200, 3600, 2)]:
            manifest = create_chunk_manifest(duration, chunk, overlap)
            self.assertEqual(manifest[0]['start_sec'], 0)
            last = manifest[-1]
            self.assertAlmostEqual(last['start_sec'] + last['duration_sec'], duration)
            for prev, nxt in zip(manifest, manifest[1:]):
                prev_end = prev['start_sec'] + prev['duration_sec']
                # no gap
                self.assertGreaterEqual(prev_end, nxt['start_sec'])
                if nxt is not last:
                    self.assertAlmostEqual(prev_end - nxt['start_sec'], overlap)

    def test_empty_duration(self):
        self.assertEqual(create_chunk_manifest(0, 480, 10), [])
        self.assertEqual(create_chunk_manifest(-5, 480, 10), [])

    def test_resolve_settings_valid(self):
        self.assertEqual(resolve_chunk_settings(300, 5), (300.0, 5.0))
        self.assertEqual(resolve_chunk_settings("600", "0"), (600.0, 0.0))

    def test_resolve_settings_fallbacks(self):
        self.assertEqual(resolve_chunk_settings(0, 5)[0], CHUNK_DURATION_SEC)
        self.assertEqual(resolve_chunk_settings(-1, 5)[0], CHUNK_DURATION_SEC)
        self.assertEqual(resolve_chunk_settings("abc", 5)[0], CHUNK_DURATION_SEC)
        self.assertEqual(resolve_chunk_settings(float('nan'), 5)[0], CHUNK_DURATION_SEC)
        self.assertEqual(resolve_chunk_settings(480, -1)[1], CHUNK_OVERLAP_SEC)
        self.assertEqual(resolve_chunk_settings(480, 480)[1], CHUNK_OVERLAP_SEC)
        self.assertEqual(resolve_chunk_settings(480, None)[1], CHUNK_OVERLAP_SEC)

    def test_resolve_settings_overlap_never_reaches_chunk(self):
        chunk, overlap = resolve_chunk_settings(5, 50)
        self.assertLess(overlap, chunk)

    def test_plan_chunks_zero_duration(self):
        with tempfile.TemporaryDirectory() as tmpdir, \
                mock.patch('chunkscribe.core.chunking.get_audio_duration', return_value=0.0), \
                mock.patch('chunkscribe.core.chunking.extract_audio_slice') as slicer:
            duration, chunks = plan_chunks(Path(tmpdir) / "a.mp3", Path(tmpdir) / "chunks", 480, 10)
        self.assertEqual(duration, 0.0)
        self.assertEqual(chunks, [])
        slicer.assert_not_called()

    def test_plan_chunks_materializes_files(self):
        def fake_slice(src, out, start, duration):
            out.write_bytes(b"x")
            return out

        with tempfile.TemporaryDirectory() as tmpdir, \
                mock.patch('chunkscribe.core.chunking.get_audio_duration', return_value=1000.0), \
                mock.patch('chunkscribe.core.chunking.extract_audio_slice',
                           side_effect=fake_slice) as slicer:
            chunks_dir = Path(tmpdir) / "chunks"
            duration, chunks = plan_chunks(Path(tmpdir) / "a.mp3", chunks_dir, 480, 10)

            self.assertEqual(duration, 1000.0)
            self.assertEqual([c.start for c in chunks], [0, 480, 960])
            self.assertEqual([c.duration for c in chunks], [490, 490, 40])
            self.assertEqual([Path(c.path).name for c in chunks],
                             ["chunk_000.mp3", "chunk_001.mp3", "chunk_002.mp3"])
            self.assertTrue((chunks_dir / "manifest.json").exists())
            self.assertEqual(slicer.call_count, 3)

    def test_plan_chunks_propagates_ffmpeg_failure(self):
        with tempfile.TemporaryDirectory() as tmpdir, \
                mock.patch('chunkscribe.core.chunking.get_audio_duration', return_value=100.0), \
                mock.patch('chunkscribe.core.chunking.extract_audio_slice',
                           side_effect=JobError(ErrorCode.CHUNKING, "boom")):
            with self.assertRaises(JobError) as ctx:
                plan_chunks(Path(tmpdir) / "a.mp3", Path(tmpdir) / "chunks", 480, 10)
        self.assertEqual(ctx.exception.code, ErrorCode.CHUNKING)


class TestMerge(unittest.TestCase):
    """Test segment merging across overlapping chunks."""

    def test_three_chunk_scenario(self):
        results = [
            ChunkResult(offset=0, segments=[Segment(0, 480, "one")]),
            ChunkResult(offset=480, segments=[Segment(0, 480, "two")]),
            ChunkResult(offset=960, segments=[Segment(0, 40, "three")]),
        ]
        merged = merge_segments(results, overlap_sec=10)
        self.assertEqual([s.start for s in merged], [0, 480, 960])
        self.assertEqual([s.end for s in merged], [480, 960, 1000])
        self.assertEqual(segments_to_text(merged), "one two three")

    def test_duplicate_in_overlap_is_dropped(self):
        # chunk 0 runs to 490s, so its last segment is heard again by chunk 1
        results = [
            ChunkResult(offset=0, segments=[Segment(470, 476, "before"),
                                            Segment(476, 489, "boundary words")]),
            ChunkResult(offset=480, segments=[Segment(0, 9, "boundary words again"),
                                              Segment(9, 15, "next")]),
        ]
        merged = merge_segments(results, overlap_sec=10)
        self.assertEqual([s.text for s in merged], ["before", "boundary words", "next"])
        self.assertEqual(merged[-1].start, 489)

    def test_threshold_boundary(self):
        # last.end = 100, overlap 10 -> threshold 5 -> cutoff 95
        base = ChunkResult(offset=0, segments=[Segment(90, 100, "a")])
        at_cutoff = ChunkResult(offset=95, segments=[Segment(0, 5, "dup")])
        merged = merge_segments([base, at_cutoff], overlap_sec=10)
        self.assertEqual([s.text for s in merged], ["a"])

        just_after = ChunkResult(offset=95.01, segments=[Segment(0, 5, "new")])
        merged = merge_segments([base, just_after], overlap_sec=10)
        self.assertEqual([s.text for s in merged], ["a", "new"])

    def test_padded_chunk_duplicate_dropped(self):
        results = [
            ChunkResult(offset=0, segments=[Segment(0, 490, "first")]),
            ChunkResult(offset=480, segments=[Segment(0, 490, "second")]),
        ]
        merged = merge_segments(results, overlap_sec=10)
        self.assertEqual([s.text for s in merged], ["first"])

    def test_input_order_does_not_matter(self):
        results = [
            ChunkResult(offset=0, segments=[Segment(0, 4, "a"), Segment(4, 9, "b"),
                                            Segment(476, 489, "c")]),
            ChunkResult(offset=480, segments=[Segment(0, 8, "c again"), Segment(9, 15, "d")]),
            ChunkResult(offset=960, segments=[Segment(1, 5, "e")]),
        ]
        expected = merge_segments(results, overlap_sec=10)
        for order in ([2, 1, 0], [1, 0, 2], [0, 2, 1]):
            shuffled = [results[i] for i in order]
            self.assertEqual(merge_segments(shuffled, overlap_sec=10), expected)

    def test_silent_chunk(self):
        results = [
            ChunkResult(offset=0, segments=[Segment(1, 2, "hi")]),
            ChunkResult(offset=480, segments=[]),
        ]
        self.assertEqual(len(merge_segments(results, overlap_sec=10)), 1)
        self.assertEqual(merge_segments([], overlap_sec=10), [])

    def test_join_chunk_texts(self):
        self.assertEqual(join_chunk_texts([" Part one. ", "Part two.", ""]), "Part one.\nPart two.")
        self.assertEqual(join_chunk_texts([]), "")


class TestRateLimiter(unittest.TestCase):
    """Test fixed-window rate limiting."""

    def test_admits_up_to_max(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=3, window_sec=60, clock=clock)
        results = [limiter.check() for _ in range(5)]
        self.assertEqual([r.allowed for r in results], [True, True, True, False, False])
        self.assertEqual([r.remaining for r in results], [2, 1, 0, 0, 0])
        self.assertEqual(results[3].reset_at, clock.now + 60)

    def test_window_reset(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=1, window_sec=60, clock=clock)
        self.assertTrue(limiter.check().allowed)
        denied = limiter.check()
        self.assertFalse(denied.allowed)

        clock.now = denied.reset_at
        again = limiter.check()
        self.assertTrue(again.allowed)
        self.assertEqual(again.remaining, 0)
        self.assertEqual(again.reset_at, clock.now + 60)

    def test_per_caller_counters_are_independent(self):
        limiter = RateLimiter(max_requests=1, window_sec=60, clock=FakeClock())
        self.assertTrue(limiter.check("10.0.0.1").allowed)
        self.assertFalse(limiter.check("10.0.0.1").allowed)
        self.assertTrue(limiter.check("10.0.0.2").allowed)

    def test_explicit_limits_override_defaults(self):
        limiter = RateLimiter(max_requests=1, window_sec=60, clock=FakeClock())
        self.assertTrue(limiter.check("k", max_requests=2).allowed)
        self.assertTrue(limiter.check("k", max_requests=2).allowed)
        self.assertFalse(limiter.check("k", max_requests=2).allowed)

    def test_expired_keys_are_evicted(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=5, window_sec=10, clock=clock,
                              cleanup_interval_sec=60)
        for i in range(4):
            limiter.check(f"client-{i}")
        self.assertEqual(limiter.tracked_keys(), 4)
        clock.advance(61)
        limiter.check("fresh")
        self.assertEqual(limiter.tracked_keys(), 1)

    def test_concurrent_checks_never_over_admit(self):
        import threading
        limiter = RateLimiter(max_requests=50, window_sec=3600)
        admitted = []
        lock = threading.Lock()

        def hammer():
            for _ in range(20):
                if limiter.check().allowed:
                    with lock:
                        admitted.append(1)

        threads = [threading.Thread(target=hammer) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(admitted), 50)

    def test_client_identifier(self):
        self.assertEqual(client_identifier("1.2.3.4", "5.6.7.8"), "1.2.3.4")
        self.assertEqual(client_identifier(None, "5.6.7.8, 9.9.9.9"), "5.6.7.8")
        self.assertEqual(client_identifier(None, ["5.6.7.8"]), "5.6.7.8")
        self.assertEqual(client_identifier(), "unknown")

    def test_result_as_dict(self):
        limiter = RateLimiter(max_requests=2, window_sec=60, clock=FakeClock(0))
        data = limiter.check().as_dict()
        self.assertEqual(data['remaining'], 1)
        self.assertTrue(data['resetAt'].startswith("1970-01-01T00:01:00"))


class TestValidation(unittest.TestCase):
    """Test upload and transcript validation."""

    def test_valid_media(self):
        validate_media_file("talk.MP4", 1024, "video/mp4")
        validate_media_file("episode.mp3", 10, None)
        validate_media_file("clip.mkv", 10, "application/octet-stream")

    def test_txt_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_media_file("notes.txt", 100)
        self.assertIn(".txt", ctx.exception.message)
        self.assertEqual(ctx.exception.code, ErrorCode.VALIDATION)

    def test_missing_name_or_data(self):
        with self.assertRaises(ValidationError):
            validate_media_file("", 100)
        with self.assertRaises(ValidationError):
            validate_media_file("a.mp3", None)

    def test_empty_and_oversize(self):
        with self.assertRaises(ValidationError):
            validate_media_file("a.mp3", 0)
        with self.assertRaises(ValidationError) as ctx:
            validate_media_file("a.mp3", MAX_FILE_SIZE + 1)
        self.assertIn("too large", ctx.exception.message)

    def test_bad_mime(self):
        with self.assertRaises(ValidationError):
            validate_media_file("a.mp3", 10, "text/plain")

    def test_validate_media_path(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "a.wav"
            path.write_bytes(b"RIFF")
            validate_media_path(path)
            with self.assertRaises(ValidationError):
                validate_media_path(Path(tmpdir) / "missing.wav")

    def test_transcription(self):
        self.assertEqual(validate_transcription("hello"), "hello")
        for bad in ("", None, 42, "x" * 500_001,
                    "<script>alert(1)</script>", "javascript:void(0)", "img onerror = x"):
            with self.assertRaises(ValidationError):
                validate_transcription(bad)


class TestErrorCodes(unittest.TestCase):

    def test_job_error_message(self):
        err = JobError(ErrorCode.CHUNKING, "ffmpeg failed")
        self.assertEqual(str(err), "[ERR_CHUNKING] ffmpeg failed")
        self.assertEqual(error_message(err), "ffmpeg failed")
        self.assertEqual(error_message(RuntimeError("plain")), "plain")
        self.assertEqual(error_message(RuntimeError()), "RuntimeError")

    def test_rate_limit_error(self):
        err = RateLimitExceeded("slow down", reset_at=123.0)
        self.assertEqual(err.remaining, 0)
        self.assertEqual(err.reset_at, 123.0)
        self.assertEqual(err.code, ErrorCode.RATE_LIMITED)

    def test_not_found(self):
        err = JobNotFound("abc")
        self.assertEqual(err.code, ErrorCode.JOB_NOT_FOUND)
        self.assertEqual(err.job_id, "abc")


class TestSecurityUtils(unittest.TestCase):

    def test_sanitize_upload_name(self):
        self.assertEqual(sanitize_upload_name("my talk (final).mp4"), "my_talk_final_.mp4")
        self.assertNotIn("/", sanitize_upload_name("../../etc/passwd"))
        self.assertFalse(sanitize_upload_name("../x.mp3").startswith("."))
        self.assertEqual(sanitize_upload_name(""), "upload")

    def test_sanitize_title(self):
        self.assertEqual(sanitize_title("Hello World"), "Hello World")
        self.assertNotIn("..", sanitize_title("../../../etc/passwd"))

    def test_safe_output_path(self):
        root = Path("/tmp/test_output")
        result = safe_output_path(root, "../../etc/passwd.mp4", "job1")
        self.assertTrue(str(result.resolve()).startswith(str(root.resolve())))
        self.assertEqual(safe_output_path(root, "", "job1").name, "job_job1")
        self.assertEqual(safe_output_path(root, "Episode 12.mp3", "job1").name, "Episode 12")


class TestResponseParsing(unittest.TestCase):

    def test_extract_segments(self):
        response = {
            'text': ' Hello there. General Kenobi. ',
            'segments': [
                {'id': 0, 'start': 0.0, 'end': 1.5, 'text': ' Hello there.'},
                {'id': 1, 'start': 1.5, 'end': 1.5, 'text': 'zero length'},
                {'id': 2, 'start': 2.0, 'end': 3.0, 'text': '   '},
                {'id': 3, 'start': None, 'end': 3.0, 'text': 'bad'},
                {'id': 4, 'start': 3.0, 'end': 4.2, 'text': 'General Kenobi.'},
            ],
        }
        segments = extract_segments(response)
        self.assertEqual(segments, [Segment(0.0, 1.5, "Hello there."),
                                    Segment(3.0, 4.2, "General Kenobi.")])
        self.assertEqual(extract_transcript_text(response), "Hello there. General Kenobi.")

    def test_missing_fields(self):
        self.assertEqual(extract_segments({}), [])
        self.assertEqual(extract_transcript_text({}), "")


class TestModels(unittest.TestCase):

    def test_job_round_trip_keys(self):
        job = Job(id="j1", original_name="a.mp4", video_path="/v/a.mp4",
                  chunks=[Chunk("/c/0.mp3", 0, 490)], segments=[Segment(0, 1, "hi")],
                  created_at="t0", updated_at="t1")
        data = job.to_dict()
        self.assertEqual(data['originalName'], "a.mp4")
        self.assertEqual(data['videoPath'], "/v/a.mp4")
        self.assertEqual(data['chunks'], [{'path': "/c/0.mp3", 'start': 0, 'duration': 490}])
        self.assertEqual(Job.from_dict(data), job)

    def test_status_view_omits_unset_outputs(self):
        job = Job(id="j1", original_name="a.mp4", video_path="/v/a.mp4", updated_at="t1")
        self.assertEqual(job.status_view(),
                         {'id': "j1", 'status': "uploaded", 'progress': 0, 'updatedAt': "t1"})


class TestConfig(unittest.TestCase):

    def test_defaults_and_api_key(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = AppConfig(data_dir=Path(tmpdir), env={})
            self.assertIsNone(config.api_key)
            self.assertEqual(config.chunk_settings, (CHUNK_DURATION_SEC, CHUNK_OVERLAP_SEC))

            config = AppConfig(data_dir=Path(tmpdir), env={'GROQ_API_KEY': ' key '})
            self.assertEqual(config.api_key, "key")

    def test_env_overrides(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = AppConfig(data_dir=Path(tmpdir), env={
                'CHUNK_DURATION_SEC': '300',
                'CHUNK_OVERLAP_SEC': '4',
                'RATE_LIMIT_MAX_REQUESTS': '7',
                'RATE_LIMIT_WINDOW_SEC': 'not-a-number',
            })
            self.assertEqual(config.chunk_settings, (300.0, 4.0))
            self.assertEqual(config.rate_limit_max_requests, 7)
            self.assertEqual(config.rate_limit_window_sec, 3600)

    def test_invalid_overlap_falls_back(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = AppConfig(data_dir=Path(tmpdir), env={})
            config.set('chunk_duration_sec', 60)
            config.set('chunk_overlap_sec', 90)
            self.assertEqual(config.chunk_settings, (60.0, CHUNK_OVERLAP_SEC))

    def test_persisted_file_is_loaded(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            AppConfig(data_dir=Path(tmpdir), env={}).set('max_concurrent_jobs', 4)
            self.assertEqual(AppConfig(data_dir=Path(tmpdir), env={}).max_concurrent_jobs, 4)


if __name__ == "__main__":
    unittest.main()
