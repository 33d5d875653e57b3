"""
Comment and event-marker lifecycle inside one chapter's content:

    none -> pending -> committed | cancelled

A pending annotation is wrapped immediately under a temporary id so the
anchor survives until the user saves or dismisses. Only one may be pending
per session.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, replace
from typing import Optional, Sequence

import config
from codex.exceptions import AnnotationError
from codex.models import Comment, Event, new_id
from editor import markup
from editor.markup import Element, Text
from editor.mentions import extract_mentioned_ids

logger = logging.getLogger(__name__)

PENDING_PREFIX = "pending-"


@dataclass(frozen=True)
class PendingAnnotation:
    id: str
    kind: str               # markup.COMMENT | markup.EVENT
    anchor_id: str          # chapter the wrapper lives in
    original_text: str      # selected content, markup included


@dataclass
class AnnotationSession:
    chapter_id: str
    content: str
    pending: Optional[PendingAnnotation] = None

    # ---- none -> pending
    def _begin(self, kind: str, start: int, end: int) -> PendingAnnotation:
        if self.pending is not None:
            raise AnnotationError("Finish or cancel the current annotation first.")
        selected = markup.check_selection(self.content, start, end)
        if has_overlapping(self.content, start, end, kind):
            what = "comment" if kind == markup.COMMENT else "event"
            raise AnnotationError(f"The selection overlaps an existing {what}.")

        temp_id = PENDING_PREFIX + uuid.uuid4().hex[:12]
        wrap = (markup.comment_markup if kind == markup.COMMENT else markup.event_markup)
        self.content = self.content[:start] + wrap(temp_id, selected, pending=True) + self.content[end:]
        self.pending = PendingAnnotation(temp_id, kind, self.chapter_id, selected)
        logger.debug("chapter %s: pending %s %s", self.chapter_id, kind, temp_id)
        return self.pending

    def begin_comment(self, start: int, end: int) -> PendingAnnotation:
        return self._begin(markup.COMMENT, start, end)

    def begin_event(self, start: int, end: int) -> PendingAnnotation:
        return self._begin(markup.EVENT, start, end)

    # ---- pending -> committed
    def _swap_id(self, kind: str, permanent_id: str) -> None:
        pending = self._require(kind)

        def _edit(el: Element) -> None:
            if kind == markup.COMMENT:
                el.set_attr("data-comment-id", permanent_id)
                el.set_classes(c for c in el.classes if c != "pending")
            else:
                el.set_attr("data-event-id", permanent_id)
                el.set_attr("data-event-pending", None)

        content, count = markup.rewrite_tags(self.content, kind, pending.id, _edit)
        if not count:
            raise AnnotationError("The annotated text is no longer in the chapter.")
        self.content = content
        self.pending = None
        logger.debug("chapter %s: %s %s -> %s", self.chapter_id, kind, pending.id, permanent_id)

    def commit_comment(self, text: str, author: str = config.DEFAULT_COMMENT_AUTHOR, *,
                       replacement_text: Optional[str] = None,
                       comment_id: Optional[str] = None,
                       timestamp: Optional[int] = None) -> Comment:
        pending = self._require(markup.COMMENT)
        if not (text or "").strip() and replacement_text is None:
            raise AnnotationError("A comment needs some text.")
        comment = Comment(
            id=comment_id or new_id(),
            author=author or config.DEFAULT_COMMENT_AUTHOR,
            text=text or "",
            timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
            is_suggestion=replacement_text is not None,
            replacement_text=replacement_text,
            original_text=pending.original_text,
        )
        self._swap_id(markup.COMMENT, comment.id)
        return comment

    def commit_event(self, title: str, *, date: Optional[str] = None,
                     description: Optional[str] = None,
                     characters: Optional[Sequence[str]] = None,
                     event_id: Optional[str] = None) -> Event:
        pending = self._require(markup.EVENT)
        if not (title or "").strip():
            raise AnnotationError("An event needs a title.")
        event = Event(
            id=event_id or new_id(),
            title=title.strip(),
            date=date,
            description=description,
            characters=list(characters) if characters is not None
            else extract_mentioned_ids(pending.original_text),
        )
        self._swap_id(markup.EVENT, event.id)
        return event

    # ---- pending -> cancelled
    def cancel(self) -> None:
        if self.pending is None:
            return
        self.content = markup.unwrap_tags(self.content, self.pending.kind, self.pending.id)
        logger.debug("chapter %s: cancelled %s", self.chapter_id, self.pending.id)
        self.pending = None

    def _require(self, kind: str) -> PendingAnnotation:
        if self.pending is None or self.pending.kind != kind:
            raise AnnotationError(f"No pending {kind} to save.")
        return self.pending


def has_overlapping(content: str, start: int, end: int, kind: str) -> bool:
    """Same-kind tag inside the selection, or the selection sits inside one."""
    return (markup.has_overlap(content[start:end], kind)
            or kind in markup.enclosing_kinds(content, start))


def strip_pending(content: str) -> str:
    """Unwrap any pending wrappers left in content (never persisted)."""
    nodes = markup.unwrap(markup.parse(content), lambda el: el.pending)
    return markup.serialize(nodes)


# ---- committed annotations

def delete_annotation(content: str, kind: str, ref_id: str) -> str:
    return markup.unwrap_tags(content, kind, ref_id)


def toggle_suggestion_preview(content: str, comment: Comment) -> tuple[str, Comment]:
    """
    Swap the visible text inside the comment tag between the original and the
    suggested replacement. The tag's attributes are left untouched.
    """
    if not comment.is_suggestion or comment.replacement_text is None:
        raise AnnotationError("This comment has no suggestion to preview.")
    previewing = not comment.is_previewing
    original = comment.original_text
    if previewing and not original:
        # older comments were saved without originalText; take it from the tag
        found = markup.find(markup.parse(content), markup.COMMENT, comment.id)
        if found:
            original = markup.serialize(found[0].children)
    shown = comment.replacement_text if previewing else original

    def _edit(el: Element) -> None:
        if shown or previewing:
            el.children = markup.parse(shown)

    new_content, _ = markup.rewrite_tags(content, markup.COMMENT, comment.id, _edit)
    return new_content, replace(comment, is_previewing=previewing, original_text=original)


def apply_suggestion(content: str, comment: Comment) -> str:
    """Replace the whole tagged span with the replacement text. One way."""
    if not comment.is_suggestion or comment.replacement_text is None:
        raise AnnotationError("This comment has no suggestion to apply.")
    nodes = markup.replace_elements(
        markup.parse(content), markup.matching(markup.COMMENT, comment.id),
        lambda el: [Text(comment.replacement_text)])
    return markup.serialize(nodes)


def set_hidden(comment: Comment, hidden: bool = True) -> Comment:
    return replace(comment, is_hidden=hidden)
