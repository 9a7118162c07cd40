import pytest

from linkforge.services.text_processor import chunk, sanitize, split_sentences


# sanitize

def test_sanitize_decodes_entities():
    assert sanitize("Tom &amp; Jerry") == "Tom & Jerry"
    assert sanitize("&quot;quoted&quot; and &#39;single&#39;") == "\"quoted\" and 'single'"


def test_sanitize_is_identity_on_clean_prose():
    prose = "This is a clean sentence. It has two lines.\nAnd a second paragraph here."
    assert sanitize(prose) == prose


def test_sanitize_empty():
    assert sanitize("") == ""


def test_sanitize_removes_fenced_code():
    text = "Before.\n```python\nprint('hi')\n```\nAfter."
    assert sanitize(text) == "Before.\nAfter."


def test_sanitize_keeps_inline_code_text():
    assert sanitize("Call `useState` first.") == "Call useState first."


def test_sanitize_removes_stray_backticks():
    assert "`" not in sanitize("An unmatched ` backtick")


def test_sanitize_removes_images_and_urls():
    text = "See ![diagram](https://img.example.com/a.png) and visit https://example.com/path?q=1 now."
    assert sanitize(text) == "See and visit now."


def test_sanitize_strips_html_tags():
    assert sanitize("<p>Hello <strong>world</strong><br/></p>") == "Hello world"
    assert sanitize('<a href="https://x.y">link</a> text') == "link text"


def test_sanitize_never_leaves_decoded_tags():
    out = sanitize("Escaped &lt;script&gt;alert(1)&lt;/script&gt; tag")
    assert "<script>" not in out
    assert "</script>" not in out


def test_sanitize_keeps_comparison_operators():
    assert sanitize("Use a &lt; b when sorting") == "Use a < b when sorting"


def test_sanitize_removes_tables():
    text = "| Hook | Use |\n|---|:---:|\n| useState | state |"
    out = sanitize(text)
    assert "|" not in out
    assert "---" not in out
    assert out == "Hook Use\nuseState state"


@pytest.mark.parametrize("rule", ["---", "***", "___", "-----"])
def test_sanitize_removes_horizontal_rules(rule):
    assert sanitize(f"Above\n{rule}\nBelow") == "Above\nBelow"


def test_sanitize_collapses_whitespace():
    assert sanitize("  too    many   spaces  ") == "too many spaces"
    assert sanitize("one\r\n\r\n\r\ntwo") == "one\ntwo"


# chunk

def test_chunk_empty_and_whitespace():
    assert chunk("") == []
    assert chunk("   \n  ") == []


def test_chunk_single_sentence_is_trimmed_input():
    assert chunk("  Just one sentence here.  ") == ["Just one sentence here."]


def test_split_sentences_on_each_boundary():
    text = "First. Second! Third? Fourth.\nFifth"
    assert split_sentences(text) == ["First.", "Second!", "Third?", "Fourth.", "Fifth"]


def test_chunk_packs_sentences_greedily():
    text = "Aaaa aaaa. Bbbb bbbb. Cccc cccc."
    assert chunk(text, max_chars=21) == ["Aaaa aaaa. Bbbb bbbb.", "Cccc cccc."]


def test_chunk_exact_boundary_is_one_chunk():
    text = "a" * 19 + "."
    assert chunk(text, max_chars=20) == [text]


def test_chunk_splits_long_sentence_at_words():
    sentence = " ".join(["word"] * 50) + "."
    parts = chunk(sentence, max_chars=40)
    assert len(parts) > 1
    assert all(len(p) <= 40 for p in parts)
    assert " ".join(parts) == sentence


def test_chunk_hard_cuts_a_single_oversized_word():
    parts = chunk("x" * 95, max_chars=40)
    assert parts == ["x" * 40, "x" * 40, "x" * 15]


def test_chunk_respects_cap_on_long_text():
    sentences = [f"Sentence number {i} talks about prompt chaining in some detail." for i in range(200)]
    text = " ".join(sentences)
    parts = chunk(text)
    assert all(len(p) <= 1900 for p in parts)
    assert " ".join(parts) == text


def test_chunk_rejects_non_positive_cap():
    with pytest.raises(ValueError):
        chunk("Hello.", max_chars=0)
