from codex.models import Character, Comment, Snapshot
from editor import markup
from editor.render import PREVIEW, WRITE, clean_preview, comment_classes, decorate, render_chapter
from utils.md import to_structured

ALICE = Character("c1", "Alice", color="#ff0000")
CONTENT = ("Then " + markup.mention_markup("c1", "Alice") + " "
           + markup.comment_markup("k1", "smiled") + ".")


def comments(**kw):
    return {"k1": Comment("k1", "Ed", "note", 0, **kw)}


def test_comment_classes():
    c = Comment("k1", "Ed", "note", 0, is_suggestion=True, is_previewing=True, is_hidden=True)
    assert comment_classes(c, "k1", WRITE) == ["comment-active", "suggestion-applied", "comment-hidden"]
    assert comment_classes(c, None, PREVIEW) == ["suggestion-applied"]
    assert comment_classes(None, "k1") == []


def test_write_mode_decorates_without_touching_storage():
    out = decorate(CONTENT, comments(), [ALICE], active_comment_id="k1", mode=WRITE)
    assert "comment-active" in out
    assert 'contenteditable="false"' in out
    assert "color: #ff0000" in out
    assert markup.unwrap_tags(CONTENT) == "Then Alice smiled."
    assert CONTENT != out


def test_hidden_comment_is_flagged_in_write_and_gone_in_preview():
    hidden = comments(is_hidden=True)
    assert "comment-hidden" in decorate(CONTENT, hidden, [ALICE], mode=WRITE)
    preview = decorate(CONTENT, hidden, [ALICE], mode=PREVIEW)
    assert markup.ref_ids(preview, markup.COMMENT) == []
    assert "contenteditable" not in preview


def test_dangling_tags_are_left_alone():
    assert decorate(CONTENT, {}, [], mode=WRITE) == CONTENT


def test_render_then_serialize_returns_stored_markdown():
    snap = Snapshot(characters=[ALICE], comments=comments())
    html = render_chapter(CONTENT, snap, active_comment_id="k1")
    assert html.startswith("<p>")
    assert to_structured(html) == CONTENT


def test_clean_preview_has_no_annotations():
    html = clean_preview("**" + CONTENT + "**")
    assert html == "<p><strong>Then Alice smiled.</strong></p>"
