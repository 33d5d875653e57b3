from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

LIFE_EVENT_TYPES = ("marriage", "friendship", "birth-of-child")

RELATIONSHIP_TYPES = (
    "family", "parent-child", "sibling", "spouse", "romantic", "friend",
    "colleague", "mentor-student", "rival", "enemy", "acquaintance", "other",
)

# derived_from kinds
DERIVED_CHARACTER_FIELD = "character-field"
DERIVED_LIFE_EVENT = "life-event"
DERIVED_RELATIONSHIP = "relationship"

_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "storycodex://derived")


def new_id() -> str:
    return str(uuid.uuid4())


def derived_id(*parts: str) -> str:
    """Deterministic id for engine-owned records, so replays produce the same ids."""
    return str(uuid.uuid5(_ID_NAMESPACE, "|".join(str(p) for p in parts)))


@dataclass(frozen=True)
class DerivedFrom:
    """
    Back-reference from a derived Event to whatever spawned it.
      kind='character-field': source_id=character id, field='dob'|'death_date'
      kind='life-event':       source_id=LifeEvent id, field=life event type
      kind='relationship':     source_id=relationship id, field=relationship type
    """
    kind: str
    source_id: str
    field: str = ""


@dataclass
class LifeEvent:
    id: str
    type: str
    date: str
    characters: list[str] = field(default_factory=list)   # parents for birth-of-child
    child_id: Optional[str] = None
    end_date: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class Character:
    id: str
    name: str
    dob: Optional[str] = None
    death_date: Optional[str] = None
    life_events: list[LifeEvent] = field(default_factory=list)
    nicknames: list[str] = field(default_factory=list)
    color: Optional[str] = None
    age: Optional[str] = None
    gender: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)


@dataclass
class Event:
    id: str
    title: str
    date: Optional[str] = None
    description: Optional[str] = None
    characters: list[str] = field(default_factory=list)
    derived_from: Optional[DerivedFrom] = None

    @property
    def is_derived(self) -> bool:
        return self.derived_from is not None


@dataclass
class Relationship:
    id: str
    type: str
    character_ids: list[str] = field(default_factory=list)
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    tags: list[str] = field(default_factory=list)


@dataclass
class Comment:
    id: str
    author: str
    text: str
    timestamp: int
    is_suggestion: bool = False
    replacement_text: Optional[str] = None
    is_previewing: bool = False
    is_hidden: bool = False
    original_text: str = ""


@dataclass
class Chapter:
    id: str
    title: str
    content: str = ""
    order: int = 0
    comment_ids: list[str] = field(default_factory=list)


@dataclass
class BookMetadata:
    title: str = "New Novel"
    author: str = "Anonymous"
    description: str = ""
    tags: list[str] = field(default_factory=list)
    current_date: Optional[str] = None


@dataclass
class Snapshot:
    meta: BookMetadata = field(default_factory=BookMetadata)
    chapters: list[Chapter] = field(default_factory=list)
    characters: list[Character] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    comments: dict[str, Comment] = field(default_factory=dict)

    def character(self, character_id: str) -> Optional[Character]:
        return next((c for c in self.characters if c.id == character_id), None)

    def event(self, event_id: str) -> Optional[Event]:
        return next((e for e in self.events if e.id == event_id), None)

    def relationship(self, relationship_id: str) -> Optional[Relationship]:
        return next((r for r in self.relationships if r.id == relationship_id), None)

    def chapter(self, chapter_id: str) -> Optional[Chapter]:
        return next((c for c in self.chapters if c.id == chapter_id), None)


# ---- Serialization (camelCase on disk, matching the autosave/export format)

def _life_event_to_dict(le: LifeEvent) -> dict:
    d = {"id": le.id, "type": le.type, "date": le.date, "characters": list(le.characters)}
    if le.child_id:
        d["childId"] = le.child_id
    if le.end_date:
        d["endDate"] = le.end_date
    if le.notes:
        d["notes"] = le.notes
    return d


def _life_event_from_dict(r: dict) -> LifeEvent:
    return LifeEvent(
        id=r.get("id") or new_id(),
        type=r.get("type") or "",
        date=r.get("date") or "",
        characters=list(r.get("characters") or []),
        child_id=r.get("childId"),
        end_date=r.get("endDate"),
        notes=r.get("notes"),
    )


def character_to_dict(c: Character) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "dob": c.dob or "",
        "deathDate": c.death_date or "",
        "lifeEvents": [_life_event_to_dict(le) for le in c.life_events],
        "nicknames": list(c.nicknames),
        "color": c.color,
        "age": c.age,
        "gender": c.gender,
        "description": c.description,
        "tags": list(c.tags),
    }


def character_from_dict(r: dict) -> Character:
    return Character(
        id=r["id"],
        name=r.get("name") or "",
        dob=r.get("dob") or None,
        death_date=r.get("deathDate") or None,
        life_events=[_life_event_from_dict(x) for x in (r.get("lifeEvents") or [])],
        nicknames=list(r.get("nicknames") or []),
        color=r.get("color"),
        age=r.get("age"),
        gender=r.get("gender"),
        description=r.get("description"),
        tags=list(r.get("tags") or []),
    )


def event_to_dict(e: Event) -> dict:
    d = {
        "id": e.id,
        "title": e.title,
        "date": e.date,
        "description": e.description,
        "characters": list(e.characters),
    }
    if e.derived_from:
        d["derivedFrom"] = {
            "kind": e.derived_from.kind,
            "sourceId": e.derived_from.source_id,
            "field": e.derived_from.field,
        }
    return d


def event_from_dict(r: dict) -> Event:
    df = r.get("derivedFrom")
    return Event(
        id=r["id"],
        title=r.get("title") or "",
        date=r.get("date"),
        description=r.get("description"),
        characters=list(r.get("characters") or []),
        derived_from=DerivedFrom(df["kind"], df["sourceId"], df.get("field") or "") if df else None,
    )


def relationship_to_dict(rel: Relationship) -> dict:
    return {
        "id": rel.id,
        "type": rel.type,
        "characterIds": list(rel.character_ids),
        "description": rel.description,
        "startDate": rel.start_date,
        "endDate": rel.end_date,
        "tags": list(rel.tags),
    }


def relationship_from_dict(r: dict) -> Relationship:
    return Relationship(
        id=r["id"],
        type=r.get("type") or "other",
        character_ids=list(r.get("characterIds") or []),
        description=r.get("description"),
        start_date=r.get("startDate"),
        end_date=r.get("endDate"),
        tags=list(r.get("tags") or []),
    )


def comment_to_dict(c: Comment) -> dict:
    return {
        "id": c.id,
        "author": c.author,
        "text": c.text,
        "timestamp": c.timestamp,
        "isSuggestion": c.is_suggestion,
        "replacementText": c.replacement_text,
        "isPreviewing": c.is_previewing,
        "isHidden": c.is_hidden,
        "originalText": c.original_text,
    }


def comment_from_dict(r: dict) -> Comment:
    return Comment(
        id=r["id"],
        author=r.get("author") or "",
        text=r.get("text") or "",
        timestamp=int(r.get("timestamp") or 0),
        is_suggestion=bool(r.get("isSuggestion")),
        replacement_text=r.get("replacementText"),
        is_previewing=bool(r.get("isPreviewing")),
        is_hidden=bool(r.get("isHidden")),
        original_text=r.get("originalText") or "",
    )


def snapshot_to_dict(s: Snapshot) -> dict[str, Any]:
    return {
        "meta": {
            "title": s.meta.title,
            "author": s.meta.author,
            "description": s.meta.description,
            "tags": list(s.meta.tags),
            "currentDate": s.meta.current_date,
        },
        "chapters": [
            {
                "id": ch.id,
                "title": ch.title,
                "content": ch.content,
                "order": ch.order,
                "commentIds": list(ch.comment_ids),
            } for ch in s.chapters
        ],
        "characters": [character_to_dict(c) for c in s.characters],
        "events": [event_to_dict(e) for e in s.events],
        "relationships": [relationship_to_dict(r) for r in s.relationships],
        "comments": {cid: comment_to_dict(c) for cid, c in s.comments.items()},
    }


def snapshot_from_dict(raw: dict[str, Any]) -> Snapshot:
    """
    Build a Snapshot from a stored dict. Fields introduced later (relationships,
    lifeEvents, commentIds, comments) default to empty collections.
    """
    meta = raw.get("meta") or {}
    return Snapshot(
        meta=BookMetadata(
            title=meta.get("title") or "New Novel",
            author=meta.get("author") or "Anonymous",
            description=meta.get("description") or "",
            tags=list(meta.get("tags") or []),
            current_date=meta.get("currentDate"),
        ),
        chapters=[
            Chapter(
                id=r["id"],
                title=r.get("title") or "Untitled",
                content=r.get("content") or "",
                order=int(r.get("order") or i),
                comment_ids=list(r.get("commentIds") or []),
            ) for i, r in enumerate(raw.get("chapters") or [])
        ],
        characters=[character_from_dict(r) for r in (raw.get("characters") or [])],
        events=[event_from_dict(r) for r in (raw.get("events") or [])],
        relationships=[relationship_from_dict(r) for r in (raw.get("relationships") or [])],
        comments={cid: comment_from_dict(r) for cid, r in (raw.get("comments") or {}).items()},
    )


def snapshot_to_json(s: Snapshot) -> str:
    return json.dumps(snapshot_to_dict(s), ensure_ascii=False, indent=2)


def snapshot_from_json(s: str) -> Snapshot:
    return snapshot_from_dict(json.loads(s or "{}"))
