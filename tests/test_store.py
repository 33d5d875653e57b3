from dataclasses import replace

import pytest

from codex import store
from codex.exceptions import ValidationError
from codex.models import (
    Chapter, Character, Comment, Event, LifeEvent, Relationship, Snapshot,
)
from editor import markup


def run(snap, type_, payload=None, **options):
    return store.dispatch(snap, store.Action(type_, payload, options=options)).snapshot


def base():
    return Snapshot(chapters=[Chapter("ch1", "One", "Alice walked.", 0)])


def with_cast():
    s = run(base(), store.ADD_CHARACTER, Character("a", "Alice", dob="1990-01-01"))
    s = run(s, store.ADD_CHARACTER, Character("b", "Bob"))
    return run(s, store.ADD_CHARACTER, Character("k", "Kid"))


def test_add_character_normalizes_and_creates_born_event():
    s = with_cast()
    assert s.character("a").dob == "01/01/1990 00:00:00"
    (ev,) = s.events
    assert ev.title == "Alice Born"


def test_character_validation():
    s = with_cast()
    with pytest.raises(ValidationError):
        run(s, store.ADD_CHARACTER, Character("x", "  "))
    with pytest.raises(ValidationError):
        run(s, store.ADD_CHARACTER, Character("x", "alice"))
    with pytest.raises(ValidationError):
        run(s, store.ADD_CHARACTER, Character("x", "Xena", dob="yesterday"))
    with pytest.raises(ValidationError):
        run(s, store.ADD_CHARACTER, Character("x", "Xena", dob="02/01/2000", death_date="01/01/2000"))
    with pytest.raises(ValidationError):
        run(s, store.ADD_CHARACTER, Character("x", "Xena", life_events=[
            LifeEvent("l", "marriage", "01/01/2000", ["x"])]))
    with pytest.raises(ValidationError):
        run(s, store.ADD_CHARACTER, Character("x", "Xena", life_events=[
            LifeEvent("l", "birth-of-child", "01/01/2000", ["x"], child_id="x")]))


def test_validation_failure_leaves_snapshot_untouched():
    s = with_cast()
    before = list(s.characters)
    with pytest.raises(ValidationError):
        run(s, store.UPDATE_CHARACTER, replace(s.character("a"), dob="31/02/1990"))
    assert s.characters == before


def test_rename_updates_event_and_mentions():
    s = with_cast()
    s = run(s, store.UPDATE_CHAPTER, Chapter("ch1", "One", markup.mention_markup("a", "Alice") + " walked."))
    event_id = s.events[0].id
    s = run(s, store.UPDATE_CHARACTER, replace(s.character("a"), name="Alicia"))
    assert s.events[0].id == event_id
    assert s.events[0].title == "Alicia Born"
    assert 'data-character-name="Alicia"' in s.chapter("ch1").content


def test_rename_child_renames_parent_child_born_event():
    s = with_cast()
    s = run(s, store.ADD_RELATIONSHIP, Relationship("r1", "parent-child", ["a", "k"], start_date="2000-01-01"))
    (born,) = [e for e in s.events if e.title == "Kid Born"]
    s = run(s, store.UPDATE_CHARACTER, replace(s.character("k"), name="Kiddo"))
    assert sorted(e.title for e in s.events) == ["Alice Born", "Kiddo Born"]
    renamed = s.event(born.id)
    assert renamed.derived_from == born.derived_from


def test_event_edit_and_delete_flow_back_to_character():
    s = with_cast()
    ev = s.events[0]
    s = run(s, store.UPDATE_EVENT, replace(ev, date="1991-02-02"))
    assert s.character("a").dob == "02/02/1991 00:00:00"
    s = run(s, store.DELETE_EVENT, ev.id)
    assert s.character("a").dob == ""
    assert s.events == []


def test_marriage_event_creates_one_spouse_relationship():
    s = with_cast()
    wedding = Event("w", "Wedding", "2015-06-01", characters=["a", "b"])
    s = run(s, store.ADD_EVENT, wedding, life_event_type="marriage")
    spouses = [r for r in s.relationships if r.type == "spouse"]
    assert len(spouses) == 1
    assert len(s.character("a").life_events) == 1
    assert len(s.character("b").life_events) == 1
    assert len(s.events) == 2

    # re-saving Bob must not spawn another timeline event for the same wedding
    s = run(s, store.UPDATE_CHARACTER, s.character("b"))
    assert len(s.events) == 2


def test_life_event_validation_on_events():
    s = with_cast()
    with pytest.raises(ValidationError):
        run(s, store.ADD_EVENT, Event("w", "Wedding", "2015-06-01", characters=["a"]),
            life_event_type="marriage")
    with pytest.raises(ValidationError):
        run(s, store.ADD_EVENT, Event("w", "Wedding", "", characters=["a", "b"]),
            life_event_type="marriage")
    with pytest.raises(ValidationError):
        run(s, store.ADD_EVENT, Event("w", "Party", "2015-06-01", characters=["ghost"]))


def test_birth_event_points_parents_at_child():
    s = with_cast()
    s = run(s, store.ADD_EVENT, Event("bk", "Birth of Kid", "2020-01-01", characters=["k", "a", "b"]),
            life_event_type="birth-of-child")
    pc = sorted(tuple(r.character_ids) for r in s.relationships if r.type == "parent-child")
    assert pc == [("a", "k"), ("b", "k")]


def test_relationship_add_creates_event_and_rejects_duplicates():
    s = with_cast()
    rel = Relationship("r1", "friend", ["a", "b"], start_date="2001-06-01")
    s = run(s, store.ADD_RELATIONSHIP, rel)
    assert s.relationship("r1").description == "Alice and Bob are friends"
    assert any(e.title == "Alice & Bob - Friendship Formed" for e in s.events)
    with pytest.raises(ValidationError):
        run(s, store.ADD_RELATIONSHIP, Relationship("r2", "friend", ["b", "a"]))
    with pytest.raises(ValidationError):
        run(s, store.ADD_RELATIONSHIP, Relationship("r3", "rival", ["a", "b"],
                                                    start_date="02/01/2000", end_date="01/01/2000"))
    with pytest.raises(ValidationError):
        run(s, store.ADD_RELATIONSHIP, Relationship("r4", "rival", ["a", "a"]))


def test_delete_character_cascades():
    s = with_cast()
    s = run(s, store.ADD_RELATIONSHIP, Relationship("r1", "friend", ["a", "b"]))
    s = run(s, store.ADD_EVENT, Event("p", "Party", "2001-01-01", characters=["a", "b"]))
    s = run(s, store.UPDATE_CHAPTER, Chapter("ch1", "One", markup.mention_markup("a", "Alice") + " walked."))
    s = run(s, store.DELETE_CHARACTER, "a")
    assert s.character("a") is None
    assert s.relationships == []
    assert s.event("p").characters == ["b"]
    assert all(e.title != "Alice Born" for e in s.events)
    assert s.chapter("ch1").content == "Alice walked."


def test_chapters_add_reorder_delete():
    s = run(base(), store.ADD_CHAPTER, Chapter("ch2", "Two", "x " + markup.comment_markup("pending-1", "y", True)))
    assert s.chapter("ch2").order == 1
    assert s.chapter("ch2").content == "x y"
    s = run(s, store.REORDER_CHAPTERS, ["ch2", "ch1"])
    assert [c.id for c in sorted(s.chapters, key=lambda c: c.order)] == ["ch2", "ch1"]
    with pytest.raises(ValidationError):
        run(s, store.REORDER_CHAPTERS, ["ch1"])
    s = run(s, store.DELETE_CHAPTER, "ch2")
    with pytest.raises(ValidationError):
        run(s, store.DELETE_CHAPTER, "ch1")


def test_comment_actions():
    content = "a " + markup.comment_markup("k1", "b") + " c"
    s = run(base(), store.UPDATE_CHAPTER, Chapter("ch1", "One", content))
    s = run(s, store.ADD_COMMENT, Comment("k1", "Ed", "", 0, is_suggestion=True,
                                          replacement_text="B", original_text="b"),
            chapter_id="ch1")
    assert s.chapter("ch1").comment_ids == ["k1"]

    s = run(s, store.HIDE_COMMENT, "k1")
    assert s.comments["k1"].is_hidden
    s = run(s, store.HIDE_COMMENT, "k1", hidden=False)
    assert not s.comments["k1"].is_hidden

    previewed = run(s, store.TOGGLE_SUGGESTION_PREVIEW, "k1")
    assert previewed.comments["k1"].is_previewing
    assert markup.unwrap_tags(previewed.chapter("ch1").content) == "a B c"

    applied = run(s, store.APPLY_SUGGESTION, "k1")
    assert applied.chapter("ch1").content == "a B c"
    assert applied.comments == {}
    assert applied.chapter("ch1").comment_ids == []

    deleted = run(s, store.DELETE_COMMENT, "k1")
    assert deleted.chapter("ch1").content == "a b c"
    assert deleted.comments == {}


def test_delete_chapter_drops_its_comments():
    s = run(base(), store.ADD_CHAPTER, Chapter("ch2", "Two", "x"))
    s = run(s, store.ADD_COMMENT, Comment("k1", "Ed", "note", 0), chapter_id="ch2")
    s = run(s, store.DELETE_CHAPTER, "ch2")
    assert s.comments == {}


def test_set_meta():
    s = run(base(), store.SET_META, {"title": "Storm Coast", "author": "R. Vale"})
    assert s.meta.title == "Storm Coast"
    with pytest.raises(ValidationError):
        run(s, store.SET_META, {"isbn": "123"})


def test_unknown_action():
    with pytest.raises(ValidationError):
        store.dispatch(base(), store.Action("NOPE"))
