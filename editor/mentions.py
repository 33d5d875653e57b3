from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import config
from codex.models import Chapter, Character
from editor import markup
from editor.markup import Element, Node, Text

logger = logging.getLogger(__name__)

# characters that may sit directly before / after a tagged name
_BEFORE = "\\s.,;:!?(\"'“”*_-"
_AFTER = "\\s.,;:!?)\"'“”*_-"
_TAG_RE = re.compile(r"<[^>]*>")


@dataclass
class MentionMatch:
    chapter_id: str
    chapter_title: str
    excerpt: str
    index: int


# ---- @ trigger

def _trigger(text_before_cursor: str) -> Optional[tuple[str, int]]:
    text = text_before_cursor or ""
    at = text.rfind("@")
    while at > 0 and text[at - 1] == "\\":
        at = text.rfind("@", 0, at - 1)
    if at == -1:
        return None
    query = text[at + 1:]
    if any(ch.isspace() for ch in query):
        return None
    return query, at


def detect_trigger(text_before_cursor: str) -> Optional[str]:
    """Query typed after the nearest unescaped '@', or None once whitespace follows it."""
    found = _trigger(text_before_cursor)
    return found[0] if found else None


def filter_characters_by_query(characters: Iterable[Character], query: str) -> list[Character]:
    q = (query or "").lower()
    return [c for c in characters
            if q in c.name.lower() or any(q in n.lower() for n in c.nicknames)]


def insert_mention(content: str, cursor: int, character: Character) -> tuple[str, int]:
    """
    Replace the '@query' that ends at `cursor` with mention markup followed by
    a space. Without a trigger the mention is inserted at the cursor.
    -> (new content, cursor after the inserted space)
    """
    found = _trigger(content[:cursor])
    start = found[1] if found else cursor
    tag = markup.mention_markup(character.id, character.name)
    new_content = content[:start] + tag + " " + content[cursor:]
    return new_content, start + len(tag) + 1


# ---- auto tagging

def _terms(characters: Sequence[Character]) -> dict[str, Character]:
    terms: dict[str, Character] = {}
    for c in characters:
        for raw in [c.name, *c.nicknames]:
            t = (raw or "").strip()
            if not t:
                continue
            for form in (t, t + "'s"):
                terms.setdefault(form, c)
    return terms


def _compile_terms(terms: Iterable[str], flags: int = 0) -> Optional[re.Pattern]:
    # longest first; equal lengths keep character order (sorted is stable)
    ordered = sorted(terms, key=len, reverse=True)
    if not ordered:
        return None
    alternation = "|".join(re.escape(t) for t in ordered)
    return re.compile(rf"(?<![^{_BEFORE}])(?:{alternation})(?![^{_AFTER}])", flags)


def _tag_text(value: str, rx: re.Pattern, terms: dict[str, Character]) -> list[Node]:
    out: list[Node] = []
    head = 0
    for m in rx.finditer(value):
        c = terms[m.group(0)]
        if m.start() > head:
            out.append(Text(value[head:m.start()]))
        out.append(Element("span", {
            "data-character-id": c.id,
            "data-character-name": c.name,
            "class": "character-mention",
        }, [Text(m.group(0))]))
        head = m.end()
    if not out:
        return [Text(value)]
    if head < len(value):
        out.append(Text(value[head:]))
    return out


def _walk_untagged(nodes: list[Node], rx: re.Pattern, terms: dict[str, Character]) -> list[Node]:
    out: list[Node] = []
    for n in nodes:
        if isinstance(n, Text):
            out.extend(_tag_text(n.value, rx, terms))
        elif isinstance(n, Element):
            if n.kind != markup.MENTION:
                n.children = _walk_untagged(n.children, rx, terms)
            out.append(n)
        else:
            out.append(n)
    return out


def auto_tag(content: str, characters: Sequence[Character]) -> str:
    """Wrap known names and nicknames that appear outside existing mention tags."""
    terms = _terms(characters)
    rx = _compile_terms(terms)
    if not content or rx is None:
        return content or ""
    return markup.serialize(_walk_untagged(markup.parse(content), rx, terms))


def characters_in_text(text: str, characters: Sequence[Character]) -> list[str]:
    """Ids of characters whose name or a nickname appears in plain text (case-insensitive)."""
    found = []
    for c in characters:
        rx = _compile_terms({n.strip() for n in [c.name, *c.nicknames] if n and n.strip()},
                            re.IGNORECASE)
        if rx is not None and rx.search(text or ""):
            found.append(c.id)
    return found


# ---- queries

def extract_mentioned_ids(content: str) -> list[str]:
    if not content:
        return []
    return markup.ref_ids(content, markup.MENTION)


def _trim_partial_tags(before: str, after: str) -> tuple[str, str]:
    # the excerpt window may cut a tag token in half at either edge
    gt, lt = before.find(">"), before.find("<")
    if gt != -1 and (lt == -1 or gt < lt):
        before = before[gt + 1:]
    lt = after.rfind("<")
    if lt != -1 and after.find(">", lt) == -1:
        after = after[:lt]
    return before, after


def _highlight(inner: str, color: str) -> str:
    return (f'<mark class="mention-highlight" style="background-color: {color}25; '
            f'color: {color}">{inner}</mark>')


def find_mentions(chapters: Iterable[Chapter], character: Character,
                  radius: int = config.MENTION_EXCERPT_RADIUS) -> list[MentionMatch]:
    if not character.id:
        return []
    color = character.color or config.DEFAULT_MENTION_COLOR
    matches: list[MentionMatch] = []
    for ch in chapters:
        content = ch.content or ""
        for el, start, end in markup.element_spans(markup.parse(content)):
            if el.kind != markup.MENTION or el.ref_id != character.id:
                continue
            before, after = _trim_partial_tags(content[max(0, start - radius):start],
                                               content[end:min(len(content), end + radius)])
            inner = markup.text_content(el.children)
            excerpt = _TAG_RE.sub("", before) + _highlight(inner, html.escape(color)) + _TAG_RE.sub("", after)
            matches.append(MentionMatch(ch.id, ch.title, excerpt, start))
    logger.debug("character %s: %d mentions", character.id, len(matches))
    return matches
