"""
Render-time projection of chapter content.

Decoration (state classes on comments, character colours on mentions) is a
pure function of the snapshot and the active comment id. It is injected here
and stripped again by utils.md.to_structured, so it never reaches storage.
"""
from __future__ import annotations

from typing import Mapping, Optional, Sequence

from codex.models import Character, Comment, Snapshot
from editor import markup
from editor.clean_text import strip_annotations
from editor.markup import Element
from utils.md import md_to_html

WRITE = "write"
PREVIEW = "preview"


def comment_classes(comment: Optional[Comment], active_comment_id: Optional[str],
                    mode: str = WRITE) -> list[str]:
    if comment is None:
        return []
    classes = []
    if comment.id == active_comment_id:
        classes.append("comment-active")
    if comment.is_suggestion and comment.is_previewing:
        classes.append("suggestion-applied")
    if comment.is_hidden and mode == WRITE:
        classes.append("comment-hidden")
    return classes


def mention_style(color: str) -> str:
    return (f"background-color: {color}25; color: {color}; border-bottom: 2px solid {color}; "
            f"padding: 0 4px; border-radius: 4px; font-weight: 500;")


def decorate(content: str, comments: Mapping[str, Comment], characters: Sequence[Character],
             active_comment_id: Optional[str] = None, mode: str = WRITE) -> str:
    """
    Content with decoration applied, still in markdown form.
    Hidden comments are unwrapped in preview and only flagged in write mode.
    Tags whose record is missing are left exactly as stored.
    """
    by_id = {c.id: c for c in characters}
    nodes = markup.parse(content or "")

    if mode == PREVIEW:
        hidden = {cid for cid, c in comments.items() if c.is_hidden}
        nodes = markup.unwrap(nodes, lambda el: el.kind == markup.COMMENT and el.ref_id in hidden)

    for el in markup.iter_elements(nodes):
        if el.kind == markup.COMMENT and not el.pending:
            extra = comment_classes(comments.get(el.ref_id), active_comment_id, mode)
            if extra:
                el.set_classes([*el.classes, *extra])
        elif el.kind == markup.MENTION:
            character = by_id.get(el.ref_id)
            if character is None or not character.color:
                continue
            attrs = {"style": mention_style(character.color)}
            if mode == WRITE:
                attrs["contenteditable"] = "false"
            el.children = [Element("span", attrs, el.children)]
    return markup.serialize(nodes)


def render_chapter(content: str, snapshot: Snapshot, active_comment_id: Optional[str] = None,
                   mode: str = WRITE) -> str:
    decorated = decorate(content, snapshot.comments, snapshot.characters, active_comment_id, mode)
    return md_to_html(decorated, include_scaffold=False)


def clean_preview(content: str) -> str:
    """HTML with every annotation removed; ordinary formatting kept."""
    return md_to_html(strip_annotations(content or ""), include_scaffold=False)
