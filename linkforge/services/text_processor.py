"""
Text clean-up and chunking for the narration path.

`sanitize` is the last safety net between an LLM-written audio script and the
speech synthesiser. `chunk` keeps every request under the synthesiser's
per-request character ceiling.
"""

import re

DEFAULT_MAX_CHARS = 1900

_FENCED_CODE = re.compile(r"```[\s\S]*?```")
_MARKDOWN_IMAGE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_HTML_TAG = re.compile(r"<[^>]+>")
_TAG_SHAPED = re.compile(r"</?[A-Za-z][^<>]*>")
_URL = re.compile(r"https?://[^\s)]+")
_INLINE_CODE = re.compile(r"`([^`]*)`")
_HORIZONTAL_RULE = re.compile(r"^(-{3,}|\*{3,}|_{3,})$", re.MULTILINE)
_TABLE_SEPARATOR = re.compile(r"^\|[\s:]*-+[\s:]*(\|[\s:]*-+[\s:]*)*\|?\s*$", re.MULTILINE)
_INLINE_WHITESPACE = re.compile(r"[^\S\n]+")
_BLANK_LINES = re.compile(r"\n{2,}")
_SENTENCE_BOUNDARY = re.compile(r"\. |! |\? |\.\n")

# &amp; last so "&amp;lt;" decodes to "&lt;", not "<".
_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)


def sanitize(text: str) -> str:
    """Strip markup an audio script must not contain and normalise whitespace."""
    if not text:
        return ""

    result = _FENCED_CODE.sub("", text)
    result = _MARKDOWN_IMAGE.sub("", result)
    # Tags go before URLs so attribute URLs never leak into the prose.
    result = _HTML_TAG.sub(" ", result)
    result = _URL.sub("", result)
    result = _INLINE_CODE.sub(r"\1", result)
    result = result.replace("`", "")
    result = _HORIZONTAL_RULE.sub("", result)
    result = _TABLE_SEPARATOR.sub("", result)
    result = result.replace("|", "")

    for entity, char in _ENTITIES:
        result = result.replace(entity, char)
    # Encoded tags become real tags once decoded.
    result = _TAG_SHAPED.sub(" ", result)

    result = result.replace("\r\n", "\n")
    result = _INLINE_WHITESPACE.sub(" ", result)
    result = "\n".join(line.strip() for line in result.split("\n"))
    result = _BLANK_LINES.sub("\n", result)
    return result.strip()


def split_sentences(text: str) -> list[str]:
    """Split on '. ', '! ', '? ' and '.\\n', keeping the punctuation with its sentence."""
    sentences: list[str] = []
    remaining = text.strip()
    while remaining:
        match = _SENTENCE_BOUNDARY.search(remaining)
        if match is None:
            sentences.append(remaining.strip())
            break
        sentence = remaining[: match.start() + 1].strip()
        if sentence:
            sentences.append(sentence)
        remaining = remaining[match.end():]
    return [s for s in sentences if s]


def _split_long_sentence(sentence: str, max_chars: int) -> list[str]:
    parts: list[str] = []
    current = ""
    for word in sentence.split():
        # A single word longer than the cap gets hard-cut.
        while len(word) > max_chars:
            if current:
                parts.append(current)
                current = ""
            parts.append(word[:max_chars])
            word = word[max_chars:]
        if not word:
            continue
        if not current:
            current = word
        elif len(current) + 1 + len(word) <= max_chars:
            current = f"{current} {word}"
        else:
            parts.append(current)
            current = word
    if current:
        parts.append(current)
    return parts


def chunk(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> list[str]:
    """
    Greedily pack sentences into chunks of at most max_chars characters.

    A sentence longer than max_chars is split at word boundaries. Joining the
    chunks with single spaces reproduces the sentence content of the input.
    """
    if max_chars < 1:
        raise ValueError("max_chars must be positive")

    chunks: list[str] = []
    for sentence in split_sentences(text):
        if len(sentence) > max_chars:
            chunks.extend(_split_long_sentence(sentence, max_chars))
            continue
        if chunks and len(chunks[-1]) + 1 + len(sentence) <= max_chars:
            chunks[-1] = f"{chunks[-1]} {sentence}"
        else:
            chunks.append(sentence)
    return chunks
