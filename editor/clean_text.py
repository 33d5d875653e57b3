from __future__ import annotations

import html
import math
import re
from typing import Any

import config
from editor import markup

_TAG_RE = re.compile(r"<[^>]*>")
_WORD_RE = re.compile(r"\b[\w'-]+\b")


def strip_annotations(content: str) -> str:
    """
    Remove comment, mention and event-marker tags, nested ones included,
    keeping their inner text. Other markup is left as written.
    """
    if not content:
        return content or ""
    return markup.serialize(markup.unwrap(markup.parse(content), markup.matching()))


def clean_text(content: str) -> str:
    """Plain prose: annotations stripped, remaining tags dropped, entities decoded."""
    s = strip_annotations(content)
    s = _TAG_RE.sub("", s)
    return html.unescape(s)


# ---------- counts ----------

def word_count(text: str) -> int:
    return len((text or "").split())


def char_count(text: str) -> int:
    return len(text or "")


def reading_time(words: int) -> tuple[int, int]:
    """(fast, slow) minutes."""
    return (math.ceil(words / config.READING_WPM_FAST),
            math.ceil(words / config.READING_WPM_SLOW))


def format_reading_time(words: int) -> str:
    if words <= 0:
        return "0 min"
    low, high = reading_time(words)
    if low == high == 1 and words < 10:
        return "< 1 min"
    if low == high:
        return f"{low} min"
    return f"{low}-{high} min"


def compute_metrics(content: str) -> dict[str, Any]:
    plain = clean_text(content)
    words = word_count(plain)
    low, high = reading_time(words)

    paragraphs = [p for p in re.split(r"\n\s*\n", plain) if p.strip()]
    flat = re.sub(r"\s+", " ", plain).strip()
    sentences = re.split(r"(?<=[.!?])\s+", flat) if flat else []

    # dialogue: words inside quotes
    quoted = re.findall(r"\"([^\"]+)\"|“([^”]+)”", plain)
    d_words = len(_WORD_RE.findall(" ".join("".join(t) for t in quoted)))

    return dict(
        word_count=words,
        char_count=char_count(plain),
        paragraph_count=len(paragraphs),
        sentence_count=len(sentences),
        dialogue_words=d_words,
        dialogue_ratio=(d_words / words) if words else 0.0,
        reading_min=low,
        reading_max=high,
        reading_label=format_reading_time(words),
    )
