"""
Single-writer action dispatch over a Snapshot.

dispatch(snapshot, action) validates first and raises ValidationError before
anything changes; otherwise it runs the sync cascades and returns a new
Snapshot. The input snapshot is never mutated.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

from codex import sync
from codex.exceptions import ValidationError
from codex.models import (
    LIFE_EVENT_TYPES, RELATIONSHIP_TYPES, Chapter, Character, Comment, Event,
    Relationship, Snapshot, new_id,
)
from codex.relationships import (
    describe_relationship, find_equivalent, names_for, validate_relationship_dates,
)
from editor import annotations, markup
from utils.dates import is_valid_datetime, normalize_datetime, parse_datetime

logger = logging.getLogger(__name__)

# ---- Action types
ADD_CHARACTER = "ADD_CHARACTER"
UPDATE_CHARACTER = "UPDATE_CHARACTER"
DELETE_CHARACTER = "DELETE_CHARACTER"
ADD_EVENT = "ADD_EVENT"
UPDATE_EVENT = "UPDATE_EVENT"
DELETE_EVENT = "DELETE_EVENT"
ADD_RELATIONSHIP = "ADD_RELATIONSHIP"
UPDATE_RELATIONSHIP = "UPDATE_RELATIONSHIP"
DELETE_RELATIONSHIP = "DELETE_RELATIONSHIP"
ADD_CHAPTER = "ADD_CHAPTER"
UPDATE_CHAPTER = "UPDATE_CHAPTER"
DELETE_CHAPTER = "DELETE_CHAPTER"
REORDER_CHAPTERS = "REORDER_CHAPTERS"
ADD_COMMENT = "ADD_COMMENT"
UPDATE_COMMENT = "UPDATE_COMMENT"
DELETE_COMMENT = "DELETE_COMMENT"
HIDE_COMMENT = "HIDE_COMMENT"
TOGGLE_SUGGESTION_PREVIEW = "TOGGLE_SUGGESTION_PREVIEW"
APPLY_SUGGESTION = "APPLY_SUGGESTION"
SET_META = "SET_META"


@dataclass
class Action:
    """
    type:     one of the constants above
    payload:  full new record for ADD/UPDATE, record id for DELETE and the
              comment operations, list of ids for REORDER_CHAPTERS, dict for SET_META
    previous: value before the edit; looked up in the snapshot when omitted
    options:  life_event_type (ADD_EVENT), chapter_id (ADD_COMMENT), hidden (HIDE_COMMENT)
    """
    type: str
    payload: Any = None
    previous: Any = None
    options: dict = field(default_factory=dict)


@dataclass
class ActionResult:
    snapshot: Snapshot
    created: int = 0
    updated: int = 0
    deleted: int = 0


# ---- Validation

def _check_date(value: Optional[str], label: str) -> None:
    if not is_valid_datetime(value):
        raise ValidationError(f"{label} must be a date in dd/MM/yyyy HH:mm:ss format.")


def _check_known(ids, known: set[str], what: str) -> None:
    missing = [i for i in ids if i not in known]
    if missing:
        raise ValidationError(f"{what} refers to unknown character(s): {', '.join(missing)}")


def validate_character(ch: Character, snapshot: Snapshot) -> None:
    name = (ch.name or "").strip()
    if not name:
        raise ValidationError("Character name is required.")
    if any(c.id != ch.id and c.name.strip().lower() == name.lower() for c in snapshot.characters):
        raise ValidationError(f'A character named "{name}" already exists.')
    _check_date(ch.dob, "Date of birth")
    _check_date(ch.death_date, "Date of death")
    born, died = parse_datetime(ch.dob), parse_datetime(ch.death_date)
    if born and died and died < born:
        raise ValidationError("Date of death cannot be before date of birth.")

    known = {c.id for c in snapshot.characters} | {ch.id}
    for le in ch.life_events:
        if le.type not in LIFE_EVENT_TYPES:
            raise ValidationError(f"Unknown life event type: {le.type}")
        if not (le.date or "").strip():
            raise ValidationError("Date is required for life events.")
        _check_date(le.date, "Life event date")
        _check_date(le.end_date, "Life event end date")
        _check_known(le.characters, known, "Life event")
        if le.type == "birth-of-child":
            if not le.child_id:
                raise ValidationError("Birth of child needs the child.")
            _check_known([le.child_id], known, "Life event")
            if le.child_id in le.characters:
                raise ValidationError("A child cannot be its own parent.")
        elif le.type == "marriage" and len(set(le.characters)) != 2:
            raise ValidationError("Marriage requires exactly 2 characters.")
        elif le.type == "friendship" and len(set(le.characters)) < 2:
            raise ValidationError("Friendship requires at least 2 characters.")


def validate_event(ev: Event, snapshot: Snapshot, life_event_type: Optional[str] = None) -> None:
    if not (ev.title or "").strip():
        raise ValidationError("Title is required.")
    _check_date(ev.date, "Event date")
    _check_known(ev.characters, {c.id for c in snapshot.characters}, "Event")
    if not life_event_type:
        return
    if life_event_type not in LIFE_EVENT_TYPES:
        raise ValidationError(f"Unknown life event type: {life_event_type}")
    count = len(set(ev.characters))
    if life_event_type == "marriage" and count != 2:
        raise ValidationError("Marriage requires exactly 2 characters.")
    if life_event_type == "friendship" and count < 2:
        raise ValidationError("Friendship requires at least 2 characters.")
    if life_event_type == "birth-of-child" and count < 2:
        raise ValidationError("Birth of Child requires at least 2 characters.")
    if not (ev.date or "").strip():
        raise ValidationError("Date is required for life events.")


def validate_relationship(rel: Relationship, snapshot: Snapshot) -> None:
    if rel.type not in RELATIONSHIP_TYPES:
        raise ValidationError(f"Unknown relationship type: {rel.type}")
    if len(set(rel.character_ids)) < 2:
        raise ValidationError("A relationship needs at least 2 characters.")
    _check_known(rel.character_ids, {c.id for c in snapshot.characters}, "Relationship")
    _check_date(rel.start_date, "Start date")
    _check_date(rel.end_date, "End date")
    if not validate_relationship_dates(rel.start_date, rel.end_date):
        raise ValidationError("End date cannot be before start date.")
    if find_equivalent(rel.type, rel.character_ids, snapshot.relationships, exclude_id=rel.id):
        raise ValidationError("This relationship already exists.")


# ---- Helpers

def _normalize_character(ch: Character) -> Character:
    return replace(
        ch,
        name=ch.name.strip(),
        dob=normalize_datetime(ch.dob) or "",
        death_date=normalize_datetime(ch.death_date) or "",
        life_events=[replace(le, date=normalize_datetime(le.date) or le.date)
                     for le in ch.life_events],
    )


def _replace_by_id(items: list, item) -> list:
    return [item if x.id == item.id else x for x in items]


def _require(value, what: str, ref: str):
    if value is None:
        raise ValidationError(f"Unknown {what}: {ref}")
    return value


def _unwrap_everywhere(chapters: list[Chapter], kind: str, ref_id: str) -> list[Chapter]:
    out = []
    for ch in chapters:
        content = markup.unwrap_tags(ch.content, kind, ref_id)
        out.append(ch if content == ch.content else replace(ch, content=content))
    return out


def _chapter_with_comment(snapshot: Snapshot, comment_id: str) -> Optional[Chapter]:
    owner = next((ch for ch in snapshot.chapters if comment_id in ch.comment_ids), None)
    if owner is not None:
        return owner
    return next((ch for ch in snapshot.chapters
                 if markup.find(markup.parse(ch.content), markup.COMMENT, comment_id)), None)


def _changed_count(before: list, after: list) -> int:
    old = {x.id: x for x in before}
    return sum(1 for x in after if x.id in old and old[x.id] != x)


# ---- Characters

def _add_character(s: Snapshot, a: Action) -> ActionResult:
    validate_character(a.payload, s)
    ch = _normalize_character(a.payload)
    if s.character(ch.id) is not None:
        raise ValidationError(f"Character {ch.id} already exists.")
    characters = [*s.characters, ch]
    r1 = sync.sync_character_to_events(ch, None, s.events)
    r2 = sync.sync_character_life_events_to_timeline(ch, r1.events, s.relationships, characters)
    return ActionResult(
        replace(s, characters=r2.characters, events=r2.events, relationships=r2.relationships),
        created=r1.created_count + r2.created_count,
        updated=r1.updated_count + r2.updated_count,
        deleted=r1.deleted_count,
    )


def _update_character(s: Snapshot, a: Action) -> ActionResult:
    previous = a.previous or _require(s.character(a.payload.id), "character", a.payload.id)
    validate_character(a.payload, s)
    ch = _normalize_character(a.payload)
    characters = _replace_by_id(s.characters, ch)
    r1 = sync.sync_character_to_events(ch, previous, s.events)
    r2 = sync.sync_character_life_events_to_timeline(ch, r1.events, s.relationships, characters)
    chapters = s.chapters
    if previous.name != ch.name:
        chapters = [_rename_mentions(c, ch) for c in chapters]
    return ActionResult(
        replace(s, characters=r2.characters, events=r2.events,
                relationships=r2.relationships, chapters=chapters),
        created=r1.created_count + r2.created_count,
        updated=r1.updated_count + r2.updated_count,
        deleted=r1.deleted_count,
    )


def _rename_mentions(chapter: Chapter, ch: Character) -> Chapter:
    content, count = markup.rewrite_tags(
        chapter.content, markup.MENTION, ch.id,
        lambda el: el.set_attr("data-character-name", ch.name))
    return replace(chapter, content=content) if count else chapter


def _delete_character(s: Snapshot, a: Action) -> ActionResult:
    cid = a.payload
    target = _require(s.character(cid), "character", cid)
    deleted = 0

    events = []
    for e in s.events:
        if any(sync.is_field_event(e, target, f, label) for f, label in sync.LIFE_FIELDS):
            deleted += 1
            continue
        events.append(replace(e, characters=[x for x in e.characters if x != cid])
                      if cid in e.characters else e)

    relationships = []
    for r in s.relationships:
        if cid not in r.character_ids:
            relationships.append(r)
            continue
        ids = [x for x in r.character_ids if x != cid]
        if len(ids) < 2:
            deleted += 1
            continue
        relationships.append(replace(r, character_ids=ids))

    characters = []
    for c in s.characters:
        if c.id == cid:
            continue
        kept = [le for le in c.life_events if cid not in le.characters and le.child_id != cid]
        characters.append(c if len(kept) == len(c.life_events) else replace(c, life_events=kept))

    chapters = _unwrap_everywhere(s.chapters, markup.MENTION, cid)
    logger.info("deleted character %s (%d derived records removed)", cid, deleted)
    return ActionResult(
        replace(s, characters=characters, events=events,
                relationships=relationships, chapters=chapters),
        deleted=deleted + 1,
    )


# ---- Events

def _add_event(s: Snapshot, a: Action) -> ActionResult:
    ev: Event = a.payload
    life_event_type = a.options.get("life_event_type")
    validate_event(ev, s, life_event_type)
    if s.event(ev.id) is not None:
        raise ValidationError(f"Event {ev.id} already exists.")
    ev = replace(ev, title=ev.title.strip(), date=normalize_datetime(ev.date) or "")
    events = [*s.events, ev]
    characters = sync.sync_event_to_characters(ev, None, s.characters)
    relationships = s.relationships
    created = 1
    updated = _changed_count(s.characters, characters)
    if life_event_type:
        r = sync.sync_life_event_to_relationships(life_event_type, ev, relationships, characters)
        relationships, characters = r.relationships, r.characters
        created += r.created_count
        updated += r.updated_count
    return ActionResult(
        replace(s, events=events, characters=characters, relationships=relationships),
        created=created, updated=updated,
    )


def _update_event(s: Snapshot, a: Action) -> ActionResult:
    ev: Event = a.payload
    previous = a.previous or _require(s.event(ev.id), "event", ev.id)
    validate_event(ev, s)
    ev = replace(ev, title=ev.title.strip(), date=normalize_datetime(ev.date) or "",
                 derived_from=ev.derived_from or previous.derived_from)
    characters = sync.sync_event_to_characters(ev, previous, s.characters)
    return ActionResult(
        replace(s, events=_replace_by_id(s.events, ev), characters=characters),
        updated=1 + _changed_count(s.characters, characters),
    )


def _delete_event(s: Snapshot, a: Action) -> ActionResult:
    ev = _require(s.event(a.payload), "event", a.payload)
    characters = sync.clear_character_fields_on_event_delete(ev, s.characters)
    return ActionResult(
        replace(s, events=[e for e in s.events if e.id != ev.id], characters=characters,
                chapters=_unwrap_everywhere(s.chapters, markup.EVENT, ev.id)),
        updated=_changed_count(s.characters, characters),
        deleted=1,
    )


# ---- Relationships

def _with_description(rel: Relationship, s: Snapshot) -> Relationship:
    if rel.description:
        return rel
    return replace(rel, description=describe_relationship(rel.type, names_for(rel.character_ids, s.characters)))


def _add_relationship(s: Snapshot, a: Action) -> ActionResult:
    rel: Relationship = a.payload
    validate_relationship(rel, s)
    rel = _with_description(replace(
        rel,
        start_date=normalize_datetime(rel.start_date) or None,
        end_date=normalize_datetime(rel.end_date) or None,
    ), s)
    r = sync.sync_relationship_to_event(rel, s.events, s.characters)
    return ActionResult(
        replace(s, relationships=[*s.relationships, rel], events=r.events),
        created=1 + r.created_count, updated=r.updated_count,
    )


def _update_relationship(s: Snapshot, a: Action) -> ActionResult:
    rel: Relationship = a.payload
    _require(a.previous or s.relationship(rel.id), "relationship", rel.id)
    validate_relationship(rel, s)
    rel = replace(rel, start_date=normalize_datetime(rel.start_date) or None,
                  end_date=normalize_datetime(rel.end_date) or None)
    r = sync.sync_relationship_to_event(rel, s.events, s.characters)
    return ActionResult(
        replace(s, relationships=_replace_by_id(s.relationships, rel), events=r.events),
        created=r.created_count, updated=1 + r.updated_count,
    )


def _delete_relationship(s: Snapshot, a: Action) -> ActionResult:
    _require(s.relationship(a.payload), "relationship", a.payload)
    return ActionResult(
        replace(s, relationships=[r for r in s.relationships if r.id != a.payload]),
        deleted=1,
    )


# ---- Chapters

def _add_chapter(s: Snapshot, a: Action) -> ActionResult:
    ch: Chapter = a.payload or Chapter(id=new_id(), title="New Chapter")
    ch = replace(ch, order=len(s.chapters), content=annotations.strip_pending(ch.content))
    return ActionResult(replace(s, chapters=[*s.chapters, ch]), created=1)


def _update_chapter(s: Snapshot, a: Action) -> ActionResult:
    ch: Chapter = a.payload
    _require(s.chapter(ch.id), "chapter", ch.id)
    ch = replace(ch, content=annotations.strip_pending(ch.content))
    return ActionResult(replace(s, chapters=_replace_by_id(s.chapters, ch)), updated=1)


def _delete_chapter(s: Snapshot, a: Action) -> ActionResult:
    ch = _require(s.chapter(a.payload), "chapter", a.payload)
    if len(s.chapters) <= 1:
        raise ValidationError("A book needs at least one chapter.")
    comments = {k: v for k, v in s.comments.items() if k not in ch.comment_ids}
    chapters = [c for c in s.chapters if c.id != ch.id]
    chapters = [replace(c, order=i) for i, c in enumerate(chapters)]
    return ActionResult(replace(s, chapters=chapters, comments=comments),
                        deleted=1 + len(s.comments) - len(comments))


def _reorder_chapters(s: Snapshot, a: Action) -> ActionResult:
    ids = list(a.payload or [])
    if sorted(ids) != sorted(c.id for c in s.chapters):
        raise ValidationError("Reorder must list every chapter exactly once.")
    by_id = {c.id: c for c in s.chapters}
    return ActionResult(
        replace(s, chapters=[replace(by_id[cid], order=i) for i, cid in enumerate(ids)]),
        updated=len(ids),
    )


# ---- Comments

def _add_comment(s: Snapshot, a: Action) -> ActionResult:
    c: Comment = a.payload
    chapter_id = a.options.get("chapter_id")
    chapter = _require(s.chapter(chapter_id), "chapter", str(chapter_id))
    if not (c.text or "").strip() and c.replacement_text is None:
        raise ValidationError("A comment needs some text.")
    comments = {**s.comments, c.id: c}
    chapter = replace(chapter, comment_ids=[*chapter.comment_ids, c.id])
    return ActionResult(replace(s, comments=comments, chapters=_replace_by_id(s.chapters, chapter)),
                        created=1)


def _update_comment(s: Snapshot, a: Action) -> ActionResult:
    c: Comment = a.payload
    _require(s.comments.get(c.id), "comment", c.id)
    return ActionResult(replace(s, comments={**s.comments, c.id: c}), updated=1)


def _drop_comment(s: Snapshot, comment_id: str, chapters: list[Chapter]) -> Snapshot:
    chapters = [replace(ch, comment_ids=[x for x in ch.comment_ids if x != comment_id])
                if comment_id in ch.comment_ids else ch for ch in chapters]
    comments = {k: v for k, v in s.comments.items() if k != comment_id}
    return replace(s, chapters=chapters, comments=comments)


def _delete_comment(s: Snapshot, a: Action) -> ActionResult:
    _require(s.comments.get(a.payload), "comment", a.payload)
    chapters = _unwrap_everywhere(s.chapters, markup.COMMENT, a.payload)
    return ActionResult(_drop_comment(s, a.payload, chapters), deleted=1)


def _hide_comment(s: Snapshot, a: Action) -> ActionResult:
    c = _require(s.comments.get(a.payload), "comment", a.payload)
    hidden = annotations.set_hidden(c, a.options.get("hidden", True))
    return ActionResult(replace(s, comments={**s.comments, c.id: hidden}), updated=1)


def _toggle_suggestion_preview(s: Snapshot, a: Action) -> ActionResult:
    c = _require(s.comments.get(a.payload), "comment", a.payload)
    chapter = _require(_chapter_with_comment(s, c.id), "chapter for comment", c.id)
    content, toggled = annotations.toggle_suggestion_preview(chapter.content, c)
    return ActionResult(
        replace(s, comments={**s.comments, c.id: toggled},
                chapters=_replace_by_id(s.chapters, replace(chapter, content=content))),
        updated=1,
    )


def _apply_suggestion(s: Snapshot, a: Action) -> ActionResult:
    c = _require(s.comments.get(a.payload), "comment", a.payload)
    chapter = _require(_chapter_with_comment(s, c.id), "chapter for comment", c.id)
    content = annotations.apply_suggestion(chapter.content, c)
    chapters = _replace_by_id(s.chapters, replace(chapter, content=content))
    return ActionResult(_drop_comment(s, c.id, chapters), updated=1, deleted=1)


# ---- Meta

def _set_meta(s: Snapshot, a: Action) -> ActionResult:
    updates = dict(a.payload or {})
    unknown = set(updates) - set(s.meta.__dataclass_fields__)
    if unknown:
        raise ValidationError(f"Unknown metadata field(s): {', '.join(sorted(unknown))}")
    return ActionResult(replace(s, meta=replace(s.meta, **updates)), updated=1)


_HANDLERS: dict[str, Callable[[Snapshot, Action], ActionResult]] = {
    ADD_CHARACTER: _add_character,
    UPDATE_CHARACTER: _update_character,
    DELETE_CHARACTER: _delete_character,
    ADD_EVENT: _add_event,
    UPDATE_EVENT: _update_event,
    DELETE_EVENT: _delete_event,
    ADD_RELATIONSHIP: _add_relationship,
    UPDATE_RELATIONSHIP: _update_relationship,
    DELETE_RELATIONSHIP: _delete_relationship,
    ADD_CHAPTER: _add_chapter,
    UPDATE_CHAPTER: _update_chapter,
    DELETE_CHAPTER: _delete_chapter,
    REORDER_CHAPTERS: _reorder_chapters,
    ADD_COMMENT: _add_comment,
    UPDATE_COMMENT: _update_comment,
    DELETE_COMMENT: _delete_comment,
    HIDE_COMMENT: _hide_comment,
    TOGGLE_SUGGESTION_PREVIEW: _toggle_suggestion_preview,
    APPLY_SUGGESTION: _apply_suggestion,
    SET_META: _set_meta,
}


def dispatch(snapshot: Snapshot, action: Action) -> ActionResult:
    handler = _HANDLERS.get(action.type)
    if handler is None:
        raise ValidationError(f"Unknown action: {action.type}")
    result = handler(snapshot, action)
    logger.debug("%s: +%d ~%d -%d", action.type, result.created, result.updated, result.deleted)
    return result
