from editor import markup
from editor.clean_text import (
    clean_text, compute_metrics, format_reading_time, reading_time, strip_annotations, word_count,
)

NESTED = markup.comment_markup(
    "k1", markup.mention_markup("c1", "Alice") + " met " + markup.mention_markup("c2", "Bob"))


def test_strip_annotations_handles_nesting():
    assert strip_annotations(NESTED) == "Alice met Bob"
    assert strip_annotations("keep <b>bold</b>") == "keep <b>bold</b>"
    assert strip_annotations("") == ""


def test_clean_text_drops_tags_and_entities():
    assert clean_text("<p>Tom &amp; " + NESTED + "</p>") == "Tom & Alice met Bob"


def test_reading_time_buckets():
    assert reading_time(0) == (0, 0)
    assert reading_time(150) == (1, 1)
    assert reading_time(500) == (2, 4)
    assert format_reading_time(0) == "0 min"
    assert format_reading_time(5) == "< 1 min"
    assert format_reading_time(150) == "1 min"
    assert format_reading_time(500) == "2-4 min"


def test_compute_metrics():
    content = ('"Run," she said. ' + markup.mention_markup("c1", "Alice") + " ran.\n\n"
               "Nobody followed.")
    m = compute_metrics(content)
    assert m["word_count"] == word_count('"Run," she said. Alice ran. Nobody followed.') == 7
    assert m["paragraph_count"] == 2
    assert m["sentence_count"] == 3
    assert m["dialogue_words"] == 1
    assert m["reading_label"] == "< 1 min"
    assert m["reading_min"] == 1 and m["reading_max"] == 1
