from __future__ import annotations

from typing import Iterable, Optional, Sequence

from codex.models import Character, Relationship
from utils.dates import parse_datetime

# ordered: [parent, child] / [mentor, student...]
DIRECTED_TYPES = ("parent-child",)


def is_valid_relationship(character_ids: Optional[Sequence[str]]) -> bool:
    return len(character_ids or ()) >= 2


def relationship_key(rel_type: str, character_ids: Iterable[str]) -> tuple:
    """
    Identity of a relationship for de-duplication: ordered pair for
    parent-child, set of ids for every symmetric type.
    """
    ids = list(character_ids)
    if rel_type in DIRECTED_TYPES:
        return (rel_type, tuple(ids))
    return (rel_type, frozenset(ids))


def find_equivalent(rel_type: str, character_ids: Iterable[str],
                    relationships: Iterable[Relationship],
                    exclude_id: Optional[str] = None) -> Optional[Relationship]:
    key = relationship_key(rel_type, character_ids)
    for r in relationships:
        if r.id != exclude_id and relationship_key(r.type, r.character_ids) == key:
            return r
    return None


def relationships_for_character(character_id: str,
                                relationships: Iterable[Relationship]) -> list[Relationship]:
    return [r for r in relationships if character_id in r.character_ids]


def connected_characters(character_id: str, relationships: Iterable[Relationship],
                         characters: Iterable[Character]) -> list[Character]:
    connected: set[str] = set()
    for r in relationships_for_character(character_id, relationships):
        connected.update(cid for cid in r.character_ids if cid != character_id)
    return [c for c in characters if c.id in connected]


def relationships_between(a: str, b: str,
                          relationships: Iterable[Relationship]) -> list[Relationship]:
    return [r for r in relationships if a in r.character_ids and b in r.character_ids]


def relationships_by_type(rel_type: str,
                          relationships: Iterable[Relationship]) -> list[Relationship]:
    return [r for r in relationships if r.type == rel_type]


def has_relationship_type(a: str, b: str, rel_type: str,
                          relationships: Iterable[Relationship]) -> bool:
    return any(r.type == rel_type for r in relationships_between(a, b, relationships))


_DESCRIPTIONS = {
    "sibling": "{names} are siblings",
    "spouse": "{names} are married",
    "romantic": "{names} are in a romantic relationship",
    "friend": "{names} are friends",
    "colleague": "{names} work together",
    "rival": "{names} are rivals",
    "enemy": "{names} are enemies",
    "acquaintance": "{names} are acquainted",
    "family": "{names} are family",
}


def describe_relationship(rel_type: str, names: Sequence[str]) -> str:
    if not names:
        return ""
    if rel_type == "parent-child":
        return f"{names[0]} is the parent of {', '.join(names[1:])}"
    if rel_type == "mentor-student":
        return f"{names[0]} mentors {', '.join(names[1:])}"
    template = _DESCRIPTIONS.get(rel_type, "{names} have a relationship")
    return template.format(names=" and ".join(names))


def validate_relationship_dates(start_date: Optional[str], end_date: Optional[str]) -> bool:
    """End must not precede start. Missing or unparseable bounds are not compared."""
    if not start_date or not end_date:
        return True
    start, end = parse_datetime(start_date), parse_datetime(end_date)
    if start is None or end is None:
        return True
    return end >= start


def names_for(character_ids: Iterable[str], characters: Iterable[Character]) -> list[str]:
    """Names of the ids that resolve, in id order; unknown ids are skipped."""
    by_id = {c.id: c for c in characters}
    return [by_id[cid].name for cid in character_ids if cid in by_id and by_id[cid].name]
