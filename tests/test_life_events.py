from codex.models import Character, Event, LifeEvent, Relationship
from codex.sync import (
    detect_life_event_type, sync_character_life_events_to_timeline,
    sync_life_event_to_relationships,
)


def cast():
    return [Character("a", "Ann"), Character("b", "Bo"), Character("k", "Kid")]


def test_detect_life_event_type():
    assert detect_life_event_type(Event("1", "Ann & Bo - Marriage")) == "marriage"
    assert detect_life_event_type(Event("2", "They got married")) == "marriage"
    assert detect_life_event_type(Event("3", "Friendship Formed")) == "friendship"
    assert detect_life_event_type(Event("4", "Birth of Kid")) == "birth-of-child"
    assert detect_life_event_type(Event("5", "Battle")) is None


def test_marriage_creates_spouse_and_life_events():
    ev = Event("w", "Wedding", "10/10/2010", characters=["a", "b"])
    r = sync_life_event_to_relationships("marriage", ev, [], cast())
    (rel,) = r.relationships
    assert rel.type == "spouse"
    assert set(rel.character_ids) == {"a", "b"}
    assert rel.description == "Ann and Bo are married"
    assert rel.start_date == "10/10/2010 00:00:00"
    assert r.created_count == 1
    assert r.updated_count == 2
    by_id = {c.id: c for c in r.characters}
    assert by_id["a"].life_events[0].type == "marriage"
    assert by_id["k"].life_events == []


def test_marriage_does_not_duplicate_spouse():
    existing = Relationship("r0", "spouse", ["b", "a"])
    ev = Event("w", "Wedding", "10/10/2010", characters=["a", "b"])
    r = sync_life_event_to_relationships("marriage", ev, [existing], cast())
    assert r.relationships == [existing]
    assert r.created_count == 0


def test_life_event_sync_is_idempotent():
    ev = Event("w", "Wedding", "10/10/2010", characters=["a", "b"])
    first = sync_life_event_to_relationships("marriage", ev, [], cast())
    second = sync_life_event_to_relationships("marriage", ev, first.relationships, first.characters)
    assert second.created_count == 0
    assert second.updated_count == 0
    assert second.relationships == first.relationships
    assert second.characters == first.characters


def test_birth_links_each_parent_to_child():
    ev = Event("b1", "Birth of Kid", "01/01/2020", characters=["k", "a", "b"])
    r = sync_life_event_to_relationships("birth-of-child", ev, [], cast())
    assert sorted(tuple(x.character_ids) for x in r.relationships) == [("a", "k"), ("b", "k")]
    assert all(x.type == "parent-child" for x in r.relationships)
    by_id = {c.id: c for c in r.characters}
    assert by_id["a"].life_events[0].child_id == "k"
    assert by_id["k"].life_events == []


def test_unknown_characters_make_it_a_noop():
    ev = Event("w", "Wedding", "10/10/2010", characters=["a", "ghost"])
    r = sync_life_event_to_relationships("marriage", ev, [], cast())
    assert r.relationships == []
    assert r.characters == cast()


def test_character_life_event_reaches_timeline_once():
    ann = Character("a", "Ann", life_events=[
        LifeEvent("le1", "marriage", "10/10/2010 00:00:00", ["a", "b"])])
    characters = [ann, *cast()[1:]]
    first = sync_character_life_events_to_timeline(ann, [], [], characters)
    assert first.created_event_ids
    (ev,) = first.events
    assert ev.title == "Ann & Bo - Marriage"
    assert ev.derived_from.source_id == "le1"
    assert [r.type for r in first.relationships] == ["spouse"]

    ann2 = next(c for c in first.characters if c.id == "a")
    again = sync_character_life_events_to_timeline(ann2, first.events, first.relationships,
                                                    first.characters)
    assert again.created_count == 0
    assert again.events == first.events

    bo = next(c for c in first.characters if c.id == "b")
    from_bo = sync_character_life_events_to_timeline(bo, first.events, first.relationships,
                                                     first.characters)
    assert from_bo.created_count == 0


def test_birth_life_event_title_uses_child():
    ann = Character("a", "Ann", life_events=[
        LifeEvent("le2", "birth-of-child", "01/01/2020 00:00:00", ["a"], child_id="k")])
    characters = [ann, *cast()[1:]]
    r = sync_character_life_events_to_timeline(ann, [], [], characters)
    (ev,) = r.events
    assert ev.title == "Birth of Kid"
    assert ev.characters == ["k", "a"]
    assert [tuple(x.character_ids) for x in r.relationships] == [("a", "k")]
