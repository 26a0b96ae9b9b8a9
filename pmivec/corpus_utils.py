import html
import json
import os
import re
from typing import Iterable, List, Optional, Tuple

# Corpus loading and text cleanup. Documents are (doc_id, text) pairs with ids
# assigned by row order; cleaning strips the HTML left in scraped comment text.

_QUOTE_ENTITIES = re.compile(r"&#x27;|&quot;|&#x2F;")
_ANCHOR_TAG = re.compile(r"<a(.*?)>")
_ESCAPED_ENTITIES = re.compile(r"&gt;|&lt;|&amp;")
_NUMERIC_ENTITY = re.compile(r"&#[0-9]*;")
_ANY_TAG = re.compile(r"<[^>]*>")
_WORD = re.compile(r"[^\W_]+(?:['’][^\W_]+)*")


def normalize_text(text: str) -> str:
    """Strip HTML artifacts and entity-encoded characters from raw text.

    Quote and slash entities become an apostrophe, anchor tags and escaped markup
    become whitespace, other tags are deleted, and remaining named entities
    are decoded.

    Args:
        text: Raw document text.

    Returns:
        Cleaned text.
    """
    text = _QUOTE_ENTITIES.sub("'", text)
    text = _ANCHOR_TAG.sub(" ", text)
    text = _ESCAPED_ENTITIES.sub(" ", text)
    text = _NUMERIC_ENTITY.sub(" ", text)
    text = _ANY_TAG.sub("", text)
    return html.unescape(text)


def tokenize_simple(text: str) -> List[str]:
    """Lowercase and split on anything that is not a letter or digit.

    Apostrophes inside a word are kept ("don't"), underscores split words.

    Args:
        text: Input string.

    Returns:
        List of token strings in order.
    """
    return _WORD.findall(text.lower())


def documents_from_texts(texts: Iterable[str]) -> List[Tuple[int, str]]:
    """Assign document ids by position.

    Args:
        texts: Iterable of raw document strings.

    Returns:
        List of (doc_id, text) pairs, ids starting at 0.
    """
    return [(i, text) for i, text in enumerate(texts)]


def documents_from_records(
    records: Iterable[dict],
    title_field: str = "title",
    text_field: str = "text",
) -> List[Tuple[int, str]]:
    """Build documents from title/text records (story title wins, else comment text).

    Records with neither field set are skipped but still consume a row number,
    so ids always match the record's position.

    Args:
        records: Iterable of dict-like records.
        title_field: Key holding the title. Defaults to "title".
        text_field: Key holding the body text. Defaults to "text".

    Returns:
        List of (doc_id, text) pairs.
    """
    docs = []
    for i, rec in enumerate(records):
        title = rec.get(title_field) or ""
        text = title if title.strip() else (rec.get(text_field) or "")
        if text.strip():
            docs.append((i, text))
    return docs


def load_documents(
    path: str,
    fmt: Optional[str] = None,
    title_field: str = "title",
    text_field: str = "text",
) -> List[Tuple[int, str]]:
    """Read a corpus file into (doc_id, text) pairs.

    JSON Lines files (``.jsonl``/``.json`` or fmt="jsonl") hold one record per
    line and go through documents_from_records; any other file is read as one
    document per non-empty line.

    Args:
        path: Path to the corpus file.
        fmt: "jsonl" or "lines"; inferred from the extension when None.
        title_field: Record key for the title (JSON Lines only).
        text_field: Record key for the body text (JSON Lines only).

    Returns:
        List of (doc_id, text) pairs.

    Raises:
        FileNotFoundError: If path does not exist.
        ValueError: On an unknown fmt or a malformed JSON line.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(path)
    if fmt is None:
        fmt = "jsonl" if os.path.splitext(path)[1].lower() in (".jsonl", ".json") else "lines"
    if fmt not in ("jsonl", "lines"):
        raise ValueError(f"Unknown corpus format: {fmt!r}")

    with open(path, encoding="utf-8") as f:
        lines = f.read().splitlines()
    if fmt == "lines":
        return documents_from_texts(line for line in lines if line.strip())

    records = []
    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            rec = json.loads(line)
        except json.JSONDecodeError as e:
            raise ValueError(f"{path}:{lineno}: invalid JSON record ({e.msg})") from e
        if not isinstance(rec, dict):
            raise ValueError(f"{path}:{lineno}: expected a JSON object")
        records.append(rec)
    return documents_from_records(records, title_field=title_field, text_field=text_field)
