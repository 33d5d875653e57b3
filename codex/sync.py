"""
Keeps Character life fields, LifeEvents, Relationships and derived timeline
Events consistent after a single edit.

Every public function takes the new value, the previous value where relevant,
and the current collections, and returns fresh collections plus counts. Inputs
are never mutated. Dates are expected to be validated by the caller; a value
that still fails to normalize is carried through as-is rather than raising.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional, Sequence

from codex.models import (
    DERIVED_CHARACTER_FIELD, DERIVED_LIFE_EVENT, DERIVED_RELATIONSHIP,
    Character, DerivedFrom, Event, LifeEvent, Relationship, derived_id,
)
from codex.relationships import describe_relationship, find_equivalent, names_for
from utils.dates import normalize_datetime, same_date

logger = logging.getLogger(__name__)

# character field -> title label of its derived event
LIFE_FIELDS = (("dob", "Born"), ("death_date", "Died"))

RELATIONSHIP_EVENT_TEMPLATES = {
    "family": "{names} - Family",
    "parent-child": "{child} Born",
    "sibling": "{names} - Siblings",
    "spouse": "{names} - Marriage",
    "romantic": "{names} - Romance Begins",
    "friend": "{names} - Friendship Formed",
    "colleague": "{names} - Started Working Together",
    "mentor-student": "{first} Mentors {rest}",
    "rival": "{names} - Rivalry Begins",
    "enemy": "{names} - Became Enemies",
    "acquaintance": "{names} - First Met",
    "other": "{names} - Relationship Begins",
}


@dataclass
class SyncResult:
    events: list[Event]
    created_count: int = 0
    updated_count: int = 0
    deleted_count: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.created_count or self.updated_count or self.deleted_count)


@dataclass
class LifeEventSyncResult:
    relationships: list[Relationship]
    characters: list[Character]
    created_count: int = 0      # relationships
    updated_count: int = 0      # characters that gained a LifeEvent


@dataclass
class TimelineSyncResult:
    events: list[Event]
    relationships: list[Relationship]
    characters: list[Character]
    created_count: int = 0
    updated_count: int = 0
    created_event_ids: list[str] = field(default_factory=list)


# ---- Helpers

def life_event_title(name: str, label: str) -> str:
    return f"{name} {label}"


def _normalized(value: Optional[str]) -> str:
    raw = (value or "").strip()
    if not raw:
        return ""
    return normalize_datetime(raw) or raw


def _dedupe(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for i in ids:
        if i and i not in seen:
            seen.add(i)
            out.append(i)
    return out


def _field_link(character_id: str, field_name: str) -> DerivedFrom:
    return DerivedFrom(DERIVED_CHARACTER_FIELD, character_id, field_name)


def is_field_event(event: Event, character: Character, field_name: str, label: str) -> bool:
    """
    Does `event` represent `character`'s field (dob / death_date)?
    Linked events answer by their back-reference; unlinked (legacy) ones by the
    "{Name} {Label}" title plus participant membership.
    """
    if event.derived_from is not None:
        return event.derived_from == _field_link(character.id, field_name)
    return (event.title == life_event_title(character.name, label)
            and character.id in event.characters)


def _find_field_event(events: Sequence[Event], character: Character,
                      field_name: str, label: str) -> Optional[int]:
    link = _field_link(character.id, field_name)
    for i, e in enumerate(events):
        if e.derived_from == link:
            return i
    for i, e in enumerate(events):
        if e.derived_from is None and is_field_event(e, character, field_name, label):
            return i
    return None


# ---- Character fields <-> Born/Died events

def sync_character_to_events(character: Character, previous: Optional[Character],
                             events: Sequence[Event]) -> SyncResult:
    events = list(events)
    created = updated = deleted = 0

    # rename first so the pass below matches titles against the new name
    if previous is not None and previous.name != character.name:
        for field_name, label in LIFE_FIELDS:
            old_title = life_event_title(previous.name, label)
            new_title = life_event_title(character.name, label)
            link = _field_link(character.id, field_name)
            for i, e in enumerate(events):
                if e.title != old_title:
                    continue
                owned = e.derived_from == link or (
                    e.derived_from is None and character.id in e.characters)
                # "{Child} Born" from a parent-child relationship keeps its own link
                from_parent = (field_name == "dob" and e.derived_from is not None
                               and e.derived_from.kind == DERIVED_RELATIONSHIP
                               and e.derived_from.field == "parent-child"
                               and character.id in e.characters)
                if not (owned or from_parent):
                    continue
                description = e.description
                if not description or description == old_title:
                    description = new_title
                events[i] = replace(e, title=new_title, description=description,
                                    derived_from=e.derived_from if from_parent else link)
                updated += 1
                logger.debug("renamed derived event %s: %r -> %r", e.id, old_title, new_title)

    for field_name, label in LIFE_FIELDS:
        value = _normalized(getattr(character, field_name))
        idx = _find_field_event(events, character, field_name, label)
        link = _field_link(character.id, field_name)

        if value:
            if idx is None:
                title = life_event_title(character.name, label)
                events.append(Event(
                    id=derived_id(DERIVED_CHARACTER_FIELD, character.id, field_name),
                    title=title,
                    date=value,
                    description=title,
                    characters=[character.id],
                    derived_from=link,
                ))
                created += 1
                continue
            existing = events[idx]
            changes = {}
            if existing.date != value:
                changes["date"] = value
            if existing.derived_from is None:
                changes["derived_from"] = link
            if changes:
                events[idx] = replace(existing, **changes)
                updated += 1
        elif idx is not None:
            existing = events[idx]
            # an unlinked title match is only removed when the field actually had a value
            had_value = previous is not None and bool(_normalized(getattr(previous, field_name)))
            if existing.derived_from is not None or had_value:
                del events[idx]
                deleted += 1

    if created or updated or deleted:
        logger.debug("character %s -> events: +%d ~%d -%d",
                     character.id, created, updated, deleted)
    return SyncResult(events, created, updated, deleted)


def sync_event_to_characters(event: Event, previous: Optional[Event],
                             characters: Sequence[Character]) -> list[Character]:
    """Write a Born/Died event's date back into the character field. One hop only."""
    characters = list(characters)
    for i, c in enumerate(characters):
        for field_name, label in LIFE_FIELDS:
            if not is_field_event(event, c, field_name, label):
                continue
            date = _normalized(event.date)
            if (getattr(c, field_name) or "") != date:
                c = replace(c, **{field_name: date})
                characters[i] = c
                logger.debug("event %s -> character %s.%s = %r", event.id, c.id, field_name, date)
    return characters


def clear_character_fields_on_event_delete(event: Event,
                                           characters: Sequence[Character]) -> list[Character]:
    characters = list(characters)
    for i, c in enumerate(characters):
        for field_name, label in LIFE_FIELDS:
            if is_field_event(event, c, field_name, label):
                c = replace(c, **{field_name: ""})
                characters[i] = c
    return characters


# ---- Life events <-> relationships <-> timeline

def detect_life_event_type(event: Event) -> Optional[str]:
    """
    Guess the life event type from a free-text title. Lossy: a title that
    happens to contain "friend" or "child" is classified regardless of intent.
    """
    title = (event.title or "").lower()
    if "marriage" in title or "married" in title:
        return "marriage"
    if "friendship" in title or "friend" in title:
        return "friendship"
    if "birth" in title or "child" in title:
        return "birth-of-child"
    return None


def _life_event_plan(life_event_type: str, event: Event, known: set[str]):
    """
    -> (relationship specs, LifeEvent holders, LifeEvent participants, child id)
    or None when the event does not carry enough resolvable characters.
    """
    ids = _dedupe(event.characters)
    if life_event_type == "birth-of-child":
        if not ids or ids[0] not in known:
            return None
        child = ids[0]
        parents = [p for p in ids[1:] if p in known]
        if not parents:
            return None
        specs = [("parent-child", [p, child]) for p in parents]
        return specs, parents, parents, child

    participants = [cid for cid in ids if cid in known]
    if len(participants) < 2:
        return None
    if life_event_type == "marriage":
        pair = participants[:2]
        return [("spouse", pair)], pair, pair, None
    if life_event_type == "friendship":
        return [("friend", participants)], participants, participants, None
    return None


def _same_life_event(le: LifeEvent, life_event_type: str, date: Optional[str],
                     participants: Sequence[str], child_id: Optional[str]) -> bool:
    if le.type != life_event_type or not same_date(le.date, date):
        return False
    if set(le.characters) != set(participants):
        return False
    return (le.child_id or None) == (child_id or None)


def sync_life_event_to_relationships(life_event_type: str, event: Event,
                                     relationships: Sequence[Relationship],
                                     characters: Sequence[Character]) -> LifeEventSyncResult:
    relationships = list(relationships)
    characters = list(characters)
    plan = _life_event_plan(life_event_type, event, {c.id for c in characters})
    if plan is None:
        logger.debug("life event %s on %s: not enough known characters", life_event_type, event.id)
        return LifeEventSyncResult(relationships, characters)

    specs, holders, participants, child = plan
    created = updated = 0
    start = _normalized(event.date) or None

    for rel_type, ids in specs:
        if find_equivalent(rel_type, ids, relationships) is not None:
            continue
        key_ids = ids if rel_type == "parent-child" else sorted(ids)
        relationships.append(Relationship(
            id=derived_id(DERIVED_LIFE_EVENT, rel_type, *key_ids),
            type=rel_type,
            character_ids=list(ids),
            description=describe_relationship(rel_type, names_for(ids, characters)),
            start_date=start,
        ))
        created += 1

    for i, c in enumerate(characters):
        if c.id not in holders:
            continue
        if any(_same_life_event(le, life_event_type, event.date, participants, child)
               for le in c.life_events):
            continue
        characters[i] = replace(c, life_events=[*c.life_events, LifeEvent(
            id=derived_id(DERIVED_LIFE_EVENT, event.id, c.id),
            type=life_event_type,
            date=start or "",
            characters=list(participants),
            child_id=child,
        )])
        updated += 1

    logger.debug("life event %s on %s: %d relationships, %d characters",
                 life_event_type, event.id, created, updated)
    return LifeEventSyncResult(relationships, characters, created, updated)


def _timeline_participants(character: Character, le: LifeEvent) -> list[str]:
    if le.type == "birth-of-child":
        parents = _dedupe(le.characters or [character.id])
        return _dedupe([le.child_id, *parents]) if le.child_id else parents
    return _dedupe(le.characters if character.id in le.characters
                   else [character.id, *le.characters])


def life_event_timeline_title(le: LifeEvent, participants: Sequence[str],
                              characters: Sequence[Character]) -> str:
    if le.type == "birth-of-child":
        child_name = names_for([le.child_id], characters) if le.child_id else []
        return f"Birth of {child_name[0]}" if child_name else "Birth of Child"
    names = " & ".join(names_for(participants, characters)) or "Unknown"
    if le.type == "marriage":
        return f"{names} - Marriage"
    return f"{names} - Friendship Formed"


def _find_life_event_event(events: Sequence[Event], character: Character,
                           le: LifeEvent) -> Optional[Event]:
    for e in events:
        if e.derived_from is not None and e.derived_from.kind == DERIVED_LIFE_EVENT \
                and e.derived_from.source_id == le.id:
            return e
        if derived_id(DERIVED_LIFE_EVENT, e.id, character.id) == le.id:
            return e
    for e in events:
        if (same_date(e.date, le.date) and character.id in e.characters
                and detect_life_event_type(e) == le.type):
            return e
    return None


def sync_character_life_events_to_timeline(character: Character, events: Sequence[Event],
                                           relationships: Sequence[Relationship],
                                           all_characters: Sequence[Character]) -> TimelineSyncResult:
    events = list(events)
    relationships = list(relationships)
    characters = list(all_characters)
    if not any(c.id == character.id for c in characters):
        characters.append(character)
    else:
        characters = [character if c.id == character.id else c for c in characters]

    result = TimelineSyncResult(events, relationships, characters)
    for le in character.life_events:
        if not le.date:
            continue
        if _find_life_event_event(result.events, character, le) is not None:
            continue

        participants = _timeline_participants(character, le)
        title = life_event_timeline_title(le, participants, result.characters)
        new_event = Event(
            id=derived_id(DERIVED_LIFE_EVENT, le.id),
            title=title,
            date=_normalized(le.date),
            description=title,
            characters=participants,
            derived_from=DerivedFrom(DERIVED_LIFE_EVENT, le.id, le.type),
        )
        result.events.append(new_event)
        result.created_count += 1
        result.created_event_ids.append(new_event.id)

        cascade = sync_life_event_to_relationships(le.type, new_event,
                                                   result.relationships, result.characters)
        result.relationships = cascade.relationships
        result.characters = cascade.characters
        result.created_count += cascade.created_count
        result.updated_count += cascade.updated_count

    if result.created_count:
        logger.debug("character %s life events -> %d created, %d updated",
                     character.id, result.created_count, result.updated_count)
    return result


# ---- Relationship -> timeline

def relationship_event_title(rel_type: str, names: Sequence[str]) -> str:
    template = RELATIONSHIP_EVENT_TEMPLATES.get(rel_type, RELATIONSHIP_EVENT_TEMPLATES["other"])
    return template.format(
        names=" & ".join(names),
        child=names[1] if len(names) > 1 else names[0],
        first=names[0],
        rest=" & ".join(names[1:]),
    )


def sync_relationship_to_event(relationship: Relationship, events: Sequence[Event],
                               characters: Sequence[Character]) -> SyncResult:
    events = list(events)
    if not (relationship.start_date or "").strip():
        return SyncResult(events)

    by_id = {c.id: c for c in characters}
    participants = [cid for cid in _dedupe(relationship.character_ids)
                    if cid in by_id and by_id[cid].name]
    if len(participants) < 2:
        return SyncResult(events)

    names = [by_id[cid].name for cid in participants]
    title = relationship_event_title(relationship.type, names)
    date = _normalized(relationship.start_date)

    link = DerivedFrom(DERIVED_RELATIONSHIP, relationship.id, relationship.type)
    for i, e in enumerate(events):
        if e.derived_from is not None and e.derived_from.kind == DERIVED_RELATIONSHIP \
                and e.derived_from.source_id == relationship.id:
            if e.date != date:
                events[i] = replace(e, date=date)
                return SyncResult(events, updated_count=1)
            return SyncResult(events)

    if any(e.title == title and same_date(e.date, date) and set(e.characters) == set(participants)
           for e in events):
        return SyncResult(events)

    events.append(Event(
        id=derived_id(DERIVED_RELATIONSHIP, relationship.id),
        title=title,
        date=date,
        description=describe_relationship(relationship.type, names),
        characters=participants,
        derived_from=link,
    ))
    logger.debug("relationship %s -> event %r", relationship.id, title)
    return SyncResult(events, created_count=1)
