import pytest

from codex.exceptions import AnnotationError
from editor import markup


NESTED = ('<u data-comment-id="k1" class="comment">'
          '<span data-character-id="c1" data-character-name="Alice" class="character-mention">Alice</span>'
          ' met <span data-character-id="c2" data-character-name="Bob" class="character-mention">Bob</span>'
          '</u>')


@pytest.mark.parametrize("content", [
    "plain text",
    NESTED,
    "a <b>bold</b> </span> stray close",
    "<u class='x'>unclosed <span data-event-id=\"e\">",
    "<br/> and <img src=x> and <SPAN Data-Event-Id=e1>x</SPAN>",
    "",
])
def test_serialize_parse_is_identity(content):
    assert markup.serialize(markup.parse(content)) == content


def test_unclosed_tags_become_raw_and_keep_closed_children():
    nodes = markup.parse('<u>a <span data-event-id="e">b</span> c')
    assert isinstance(nodes[0], markup.RawTag)
    assert [el.kind for el in markup.iter_elements(nodes)] == ["event"]
    assert markup.text_content(nodes) == "a b c"


def test_kinds_and_ids():
    nodes = markup.parse(NESTED)
    found = [(el.kind, el.ref_id) for el in markup.iter_elements(nodes)]
    assert found == [("comment", "k1"), ("mention", "c1"), ("mention", "c2")]
    assert markup.text_content(nodes) == "Alice met Bob"
    assert markup.ref_ids(NESTED, markup.MENTION) == ["c1", "c2"]


def test_pending_flags():
    (c,) = markup.parse(markup.comment_markup("t", "x", pending=True))
    (e,) = markup.parse(markup.event_markup("t", "x", pending=True))
    assert c.pending and e.pending
    (e,) = markup.parse(markup.event_markup("t", "x"))
    assert not e.pending


def test_unwrap_nested_keeps_text():
    assert markup.unwrap_tags(NESTED) == "Alice met Bob"
    only_comment = markup.unwrap_tags(NESTED, markup.COMMENT, "k1")
    assert only_comment.startswith('<span data-character-id="c1"')
    assert markup.ref_ids(only_comment, markup.COMMENT) == []


def test_rewrite_tags_only_touches_matching():
    content, count = markup.rewrite_tags(
        NESTED, markup.MENTION, "c1", lambda el: el.set_attr("data-character-name", "Ally"))
    assert count == 1
    assert 'data-character-name="Ally"' in content
    assert 'data-character-name="Bob"' in content


def test_element_spans_offsets():
    content = "Hi " + markup.mention_markup("c1", "Alice") + "!"
    (el, start, end), = markup.element_spans(markup.parse(content))
    assert content[start:end] == markup.mention_markup("c1", "Alice")
    assert start == 3


def test_constructors_escape_attributes():
    html = markup.mention_markup("c1", 'Al "the" <Great>')
    (el,) = markup.parse(html)
    assert el.attrs["data-character-name"] == 'Al "the" <Great>'
    assert markup.text_content([el]) == 'Al "the" &lt;Great&gt;'


def test_has_overlap_and_enclosing():
    assert markup.has_overlap(NESTED, markup.COMMENT)
    assert markup.has_overlap(NESTED, markup.MENTION)
    assert not markup.has_overlap(NESTED, markup.EVENT)
    pos = NESTED.index("met")
    assert markup.enclosing_kinds(NESTED, pos) == ["comment"]


def test_check_selection_rejects_bad_ranges():
    content = "one " + markup.comment_markup("k1", "two") + " three"
    with pytest.raises(AnnotationError):
        markup.check_selection(content, 3, 3)
    with pytest.raises(AnnotationError):
        markup.check_selection(content, 3, 4)
    with pytest.raises(AnnotationError):
        markup.check_selection(content, 6, len(content))
    with pytest.raises(AnnotationError):
        markup.check_selection(content, 0, content.index("two"))
    assert markup.check_selection(content, 0, 3) == "one"
    assert markup.check_selection(content, 0, len(content)) == content
