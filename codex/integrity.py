from __future__ import annotations

import logging
from dataclasses import dataclass

from codex.models import Snapshot
from editor import markup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DanglingReference:
    chapter_id: str
    kind: str       # comment | mention | event | participant | relationship
    ref_id: str


def find_dangling_references(snapshot: Snapshot) -> list[DanglingReference]:
    """
    Committed tags whose record no longer exists, plus participant ids on
    events and relationships that point at deleted characters. Pending
    wrappers are ignored. chapter_id is "" for non-content findings.
    """
    characters = {c.id for c in snapshot.characters}
    events = {e.id for e in snapshot.events}
    known = {markup.COMMENT: set(snapshot.comments), markup.MENTION: characters, markup.EVENT: events}

    found: list[DanglingReference] = []
    for ch in sorted(snapshot.chapters, key=lambda c: c.order):
        for el in markup.iter_elements(markup.parse(ch.content)):
            if el.kind is None or el.pending:
                continue
            if el.ref_id not in known[el.kind]:
                found.append(DanglingReference(ch.id, el.kind, el.ref_id or ""))

    for e in snapshot.events:
        for cid in e.characters:
            if cid not in characters:
                found.append(DanglingReference("", "participant", cid))
    for r in snapshot.relationships:
        for cid in r.character_ids:
            if cid not in characters:
                found.append(DanglingReference("", "relationship", cid))

    if found:
        logger.warning("%d dangling reference(s)", len(found))
    return found
