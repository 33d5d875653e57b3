import pytest

from utils.md import md_to_html, to_structured

MENTION = '<span data-character-id="c1" data-character-name="Alice" class="character-mention">Alice</span>'
COMMENT_OPEN = '<u data-comment-id="k1" class="comment">'


@pytest.mark.parametrize("md", [
    "Hello **world** and " + COMMENT_OPEN + "this</u>.",
    "# Title\n\nPara one.\n\n- a\n- b",
    "Then " + MENTION + " left *quietly*.",
    "1. first\n2. second",
    "> quoted " + MENTION,
    "```python\nx = 1\n```",
    '<span data-event-id="e1" class="event-marker">The storm</span> came.',
])
def test_markdown_survives_html_round_trip(md):
    assert to_structured(md_to_html(md, include_scaffold=False)) == md


@pytest.mark.parametrize("md", [
    "2 * 3 = 6 and a_b_c",
    "Use [brackets] and `code` & a < b",
    "## Heading with *stars*\n\ntext",
])
def test_rerendering_is_stable(md):
    html = md_to_html(md, include_scaffold=False)
    assert md_to_html(to_structured(html), include_scaffold=False) == html


def test_render_decoration_is_dropped():
    html = ('<p>Hi <span data-character-id="c1" data-character-name="Alice" class="character-mention">'
            '<span style="color: red" contenteditable="false">Alice</span></span> '
            '<u data-comment-id="k1" class="comment comment-active comment-hidden">x</u></p>')
    assert to_structured(html) == "Hi " + MENTION + " " + COMMENT_OPEN + "x</u>"


def test_line_starts_are_escaped():
    assert to_structured("<p>1. not a list</p>") == "1\\. not a list"
    assert to_structured("<p>- dash</p>") == "\\- dash"
    assert to_structured("<p># hash</p>") == "\\# hash"


def test_emphasis_hugs_text():
    assert to_structured("<p><strong>bold </strong>text</p>") == "**bold** text"


def test_plain_underline_is_kept():
    assert to_structured("<p><u>under</u> <span>plain</span></p>") == "<u>under</u> plain"


def test_scaffold_and_css():
    page = md_to_html("hi", css="p{color:red}")
    assert page.startswith("<!doctype html>")
    assert "<style>p{color:red}</style>" in page
    assert to_structured("") == ""
