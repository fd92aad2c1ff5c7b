"""
Data models (plain dataclasses) for chunkscribe.
Jobs are persisted as JSON with camelCase keys.
"""

from dataclasses import dataclass, field, fields
from typing import Optional


@dataclass
class Chunk:
    path: str
    start: float                     # offset into the full audio, seconds
    duration: float                  # seconds, includes trailing overlap

    def to_dict(self) -> dict:
        return {'path': self.path, 'start': self.start, 'duration': self.duration}

    @classmethod
    def from_dict(cls, data: dict) -> "Chunk":
        return cls(path=data['path'], start=float(data['start']),
                   duration=float(data['duration']))


@dataclass
class Segment:
    start: float
    end: float
    text: str

    def to_dict(self) -> dict:
        return {'start': self.start, 'end': self.end, 'text': self.text}

    @classmethod
    def from_dict(cls, data: dict) -> "Segment":
        return cls(start=float(data['start']), end=float(data['end']),
                   text=str(data.get('text', '')))

    def shifted(self, offset: float) -> "Segment":
        return Segment(start=self.start + offset, end=self.end + offset, text=self.text)


@dataclass
class ChunkResult:
    """Segments of one chunk, still in chunk-local time."""
    offset: float
    segments: list[Segment] = field(default_factory=list)


@dataclass
class Theme:
    start: float
    end: float
    title: str
    summary: str
    interest_score: float

    def to_dict(self) -> dict:
        return {
            'start': self.start,
            'end': self.end,
            'title': self.title,
            'summary': self.summary,
            'interestScore': self.interest_score,
        }


# attribute name -> persisted key
_JOB_KEYS = {
    'id': 'id',
    'status': 'status',
    'progress': 'progress',
    'original_name': 'originalName',
    'video_path': 'videoPath',
    'audio_path': 'audioPath',
    'chunks': 'chunks',
    'chunk_overlap': 'chunkOverlap',
    'transcription_text': 'transcriptionText',
    'segments': 'segments',
    'error': 'error',
    'created_at': 'createdAt',
    'updated_at': 'updatedAt',
}


@dataclass
class Job:
    id: str                          # UUID
    original_name: str
    video_path: str
    status: str = "uploaded"
    progress: int = 0
    audio_path: Optional[str] = None
    chunks: Optional[list[Chunk]] = None
    chunk_overlap: Optional[float] = None
    transcription_text: Optional[str] = None
    segments: Optional[list[Segment]] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    def to_dict(self) -> dict:
        data = {}
        for attr, key in _JOB_KEYS.items():
            value = getattr(self, attr)
            if attr in ('chunks', 'segments') and value is not None:
                value = [item.to_dict() for item in value]
            data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        kwargs = {}
        for attr, key in _JOB_KEYS.items():
            if key in data:
                kwargs[attr] = data[key]
        if kwargs.get('chunks') is not None:
            kwargs['chunks'] = [Chunk.from_dict(c) for c in kwargs['chunks']]
        if kwargs.get('segments') is not None:
            kwargs['segments'] = [Segment.from_dict(s) for s in kwargs['segments']]
        return cls(**kwargs)

    def status_view(self) -> dict:
        """Read-only view returned to pollers. Optional outputs only when set."""
        view = {
            'id': self.id,
            'status': self.status,
            'progress': self.progress,
        }
        if self.transcription_text is not None:
            view['transcriptionText'] = self.transcription_text
        if self.segments is not None:
            view['segments'] = [s.to_dict() for s in self.segments]
        if self.error is not None:
            view['error'] = self.error
        view['updatedAt'] = self.updated_at
        return view
