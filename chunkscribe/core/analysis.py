"""
Theme analysis: asks an LLM chat-completions endpoint to split a transcript
into titled chapters with an interest score.
"""

import json
import logging
import requests

from chunkscribe.core.error_codes import JobError, ConfigurationError
from chunkscribe.core.constants import (
    ErrorCode, GROQ_API_BASE, ANALYSIS_MODEL, ANALYSIS_TIMEOUT,
)
from chunkscribe.core.models import Theme, Segment
from chunkscribe.core.validation import validate_transcription

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an expert podcast editor. Output ONLY valid JSON."

THEMES_PROMPT = """Analyze the following video transcription and divide it into logical "themes" or "chapters".
For each theme, provide:
1. A start time in seconds (as a number).
2. An end time in seconds (as a number).
3. A short, punchy title.
4. A one-sentence summary.
5. An interestScore (a number between 0 and 1) representing how engaging or "viral" this specific segment is.

Format the output as a JSON object with a key "themes" containing an array of these objects.
Example:
{{
  "themes": [
    {{ "start": 0, "end": 60, "title": "Introduction", "summary": "The speakers introduce themselves and the topic.", "interestScore": 0.4 }}
  ]
}}

Ensure the segments cover the entire duration and do not overlap significantly.
Mandatory to write in the language of the transcription.
{context}
Transcription:
{transcription}"""


def build_prompt(transcription: str, segments: list[Segment] | None = None,
                 duration_sec: float = 0) -> str:
    context = ""
    if duration_sec > 0:
        context += f"\nThe video lasts {duration_sec:.0f} seconds.\n"
    if segments:
        timed = '\n'.join(f"[{s.start:.1f}-{s.end:.1f}] {s.text}" for s in segments)
        transcription = timed
    return THEMES_PROMPT.format(context=context, transcription=transcription)


def parse_themes(content: str) -> list[Theme]:
    """Parse the model's JSON answer. Malformed entries are skipped."""
    try:
        parsed = json.loads(content or '{"themes": []}')
    except json.JSONDecodeError as e:
        raise JobError(ErrorCode.ANALYSIS_FAILED, f"Model returned invalid JSON: {e}")

    raw_themes = parsed.get('themes') if isinstance(parsed, dict) else None
    if not isinstance(raw_themes, list):
        return []

    themes = []
    for item in raw_themes:
        if not isinstance(item, dict):
            continue
        try:
            score = float(item.get('interestScore', 0))
            themes.append(Theme(
                start=float(item['start']),
                end=float(item['end']),
                title=str(item.get('title', '')).strip(),
                summary=str(item.get('summary', '')).strip(),
                interest_score=min(1.0, max(0.0, score)),
            ))
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping malformed theme: %r", item)
    return themes


def analyze_themes(transcription: str, api_key: str,
                   segments: list[Segment] | None = None,
                   duration_sec: float = 0,
                   model: str = ANALYSIS_MODEL,
                   api_base: str = GROQ_API_BASE) -> list[Theme]:
    if not api_key:
        raise ConfigurationError("Analysis API key not configured")
    validate_transcription(transcription)

    payload = {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(transcription, segments, duration_sec)},
        ],
        "response_format": {"type": "json_object"},
    }

    try:
        resp = requests.post(
            f"{api_base}/chat/completions",
            headers={"Authorization": f"Bearer {api_key}"},
            json=payload,
            timeout=ANALYSIS_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        raise JobError(ErrorCode.ANALYSIS_FAILED, f"Theme analysis request failed: {e}")

    if resp.status_code != 200:
        error_body = resp.text[:300] if resp.text else "No response body"
        raise JobError(ErrorCode.ANALYSIS_FAILED,
                       f"Analysis service returned {resp.status_code}: {error_body}")

    try:
        content = resp.json()['choices'][0]['message']['content']
    except (ValueError, KeyError, IndexError, TypeError):
        raise JobError(ErrorCode.ANALYSIS_FAILED, "Unexpected analysis response shape")

    themes = parse_themes(content)
    logger.info("Theme analysis returned %d themes", len(themes))
    return themes
