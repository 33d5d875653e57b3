from dataclasses import replace

from codex.models import Character, DerivedFrom, Event, Relationship, derived_id
from codex.sync import (
    clear_character_fields_on_event_delete, relationship_event_title,
    sync_character_to_events, sync_event_to_characters, sync_relationship_to_event,
)


def john(**kw):
    return Character("c1", kw.pop("name", "John"), **kw)


def test_dob_creates_linked_born_event():
    r = sync_character_to_events(john(dob="01/01/1990 00:00:00"), None, [])
    assert r.created_count == 1
    (ev,) = r.events
    assert ev.title == "John Born"
    assert ev.date == "01/01/1990 00:00:00"
    assert ev.characters == ["c1"]
    assert ev.derived_from == DerivedFrom("character-field", "c1", "dob")
    assert ev.id == derived_id("character-field", "c1", "dob")


def test_sync_is_idempotent():
    ch = john(dob="01/01/1990 00:00:00", death_date="02/02/2050 00:00:00")
    first = sync_character_to_events(ch, None, [])
    second = sync_character_to_events(ch, ch, first.events)
    assert first.created_count == 2
    assert not second.changed
    assert second.events == first.events


def test_rename_cascades_to_same_event():
    old = john(dob="01/01/1990 00:00:00")
    events = sync_character_to_events(old, None, []).events
    new = replace(old, name="Johnny")
    r = sync_character_to_events(new, old, events)
    (ev,) = r.events
    assert ev.id == events[0].id
    assert ev.title == "Johnny Born"
    assert ev.description == "Johnny Born"
    assert r.created_count == 0


def test_rename_keeps_custom_description():
    old = john(dob="01/01/1990 00:00:00")
    (ev,) = sync_character_to_events(old, None, []).events
    ev = replace(ev, description="Born during the storm")
    r = sync_character_to_events(replace(old, name="Johnny"), old, [ev])
    assert r.events[0].description == "Born during the storm"


def test_manual_title_edit_stays_linked():
    ch = john(dob="01/01/1990 00:00:00")
    (ev,) = sync_character_to_events(ch, None, []).events
    ev = replace(ev, title="The arrival")
    moved = replace(ch, dob="05/05/1991 00:00:00")
    r = sync_character_to_events(moved, ch, [ev])
    assert len(r.events) == 1
    assert r.events[0].title == "The arrival"
    assert r.events[0].date == "05/05/1991 00:00:00"


def test_clearing_field_deletes_event():
    ch = john(dob="01/01/1990 00:00:00")
    events = sync_character_to_events(ch, None, []).events
    r = sync_character_to_events(replace(ch, dob=""), ch, events)
    assert r.events == []
    assert r.deleted_count == 1


def test_legacy_event_is_matched_by_title_and_linked():
    legacy = Event("old", "John Born", "01/01/1980", "John Born", ["c1"])
    r = sync_character_to_events(john(dob="01/01/1990 00:00:00"), None, [legacy])
    (ev,) = r.events
    assert ev.id == "old"
    assert ev.date == "01/01/1990 00:00:00"
    assert ev.derived_from == DerivedFrom("character-field", "c1", "dob")


def test_unlinked_title_match_survives_when_field_was_never_set():
    legacy = Event("old", "John Born", "01/01/1980", "", ["c1"])
    r = sync_character_to_events(john(), john(), [legacy])
    assert r.events == [legacy]


def test_other_characters_events_are_untouched():
    other = Event("x", "John Born", "01/01/1980", "", ["c9"])
    r = sync_character_to_events(john(dob="01/01/1990 00:00:00"), None, [other])
    assert other in r.events
    assert len(r.events) == 2


def test_event_date_flows_back_to_character():
    ch = john(dob="01/01/1990 00:00:00")
    (ev,) = sync_character_to_events(ch, None, []).events
    moved = replace(ev, date="03/03/1993 00:00:00")
    (out,) = sync_event_to_characters(moved, ev, [ch])
    assert out.dob == "03/03/1993 00:00:00"


def test_event_delete_clears_field():
    ch = john(dob="01/01/1990 00:00:00", death_date="01/01/2050 00:00:00")
    events = sync_character_to_events(ch, None, []).events
    died = next(e for e in events if e.title == "John Died")
    (out,) = clear_character_fields_on_event_delete(died, [ch])
    assert out.death_date == ""
    assert out.dob == "01/01/1990 00:00:00"


def test_relationship_event_titles():
    assert relationship_event_title("spouse", ["Ann", "Bo"]) == "Ann & Bo - Marriage"
    assert relationship_event_title("parent-child", ["Ann", "Kid"]) == "Kid Born"
    assert relationship_event_title("mentor-student", ["Ann", "Bo", "Cy"]) == "Ann Mentors Bo & Cy"
    assert relationship_event_title("unknown", ["Ann", "Bo"]) == "Ann & Bo - Relationship Begins"


def test_relationship_creates_event_once():
    cast = [Character("a", "Ann"), Character("b", "Bo")]
    rel = Relationship("r1", "friend", ["a", "b"], start_date="01/06/2001")
    first = sync_relationship_to_event(rel, [], cast)
    assert first.created_count == 1
    (ev,) = first.events
    assert ev.title == "Ann & Bo - Friendship Formed"
    assert ev.description == "Ann and Bo are friends"
    assert ev.date == "01/06/2001 00:00:00"
    assert ev.derived_from.source_id == "r1"

    again = sync_relationship_to_event(rel, first.events, cast)
    assert not again.changed

    moved = sync_relationship_to_event(replace(rel, start_date="02/06/2001"), first.events, cast)
    assert moved.updated_count == 1
    assert moved.events[0].date == "02/06/2001 00:00:00"


def test_relationship_without_start_date_is_noop():
    cast = [Character("a", "Ann"), Character("b", "Bo")]
    r = sync_relationship_to_event(Relationship("r1", "friend", ["a", "b"]), [], cast)
    assert r.events == []
    r = sync_relationship_to_event(Relationship("r1", "friend", ["a", "zz"], start_date="01/01/2000"),
                                   [], cast)
    assert r.events == []
