# chapter file reading, title helpers
import re
from pathlib import Path

from utils.md import read_file_as_markdown

SUPPORTED_SUFFIXES = (".md", ".markdown", ".txt", ".docx", ".html", ".htm")

_NUMBERED = re.compile(r"^\s*(\d+)[\s.\-_:]*")

def parse_chapter_filename(fname: str, split_mode: str | None = None) -> tuple[int | None, str]:
    """
    "01 - The Storm.md" -> (1, "The Storm"); "Epilogue.docx" -> (None, "Epilogue").

    The leading number is an ordering hint. With split_mode the title is whatever
    follows the first occurrence of that separator, when present.
    """
    stem = Path(fname).stem.strip()
    m = _NUMBERED.match(stem)
    order_hint = int(m.group(1)) if m else None

    rest = stem
    if split_mode and split_mode in stem:
        rest = stem.split(split_mode, 1)[1] or stem
    title = _NUMBERED.sub("", rest).strip()
    return order_hint, title or stem

def extract_title_from_markdown(content: str) -> str | None:
    """First line as title when it is an H1 ("# Title")."""
    first = (content or "").lstrip("\n").split("\n", 1)[0].strip()
    if first.startswith("# "):
        return first[2:].strip() or None
    return None

def read_chapter_file(path: str) -> tuple[str, str]:
    """-> (title, markdown content). Title from the first H1, else the file name."""
    if Path(path).suffix.lower() not in SUPPORTED_SUFFIXES:
        raise ValueError(f"Unsupported chapter file: {path}")
    content = read_file_as_markdown(path)
    title = extract_title_from_markdown(content) or parse_chapter_filename(path)[1]
    return title, content
