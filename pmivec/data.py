from collections import Counter
from typing import Iterable, Iterator, List, Tuple

import numpy as np

from pmivec.corpus_utils import normalize_text, tokenize_simple
from pmivec.errors import EmptyVocabularyError

# Token table and skip-gram windows. Rare words are removed before windowing,
# so windows only ever see surviving words and adjacency is computed after the filter.


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


class TokenTable:
    """Filtered tokens of the whole corpus, one row per token, in document order.

    Attributes:
        doc_ids (np.ndarray): 1D int64 array; document id of each token.
        word_ids (np.ndarray): 1D int64 array; vocabulary index of each token.
        counts (np.ndarray): 1D int64 array of length V; corpus-wide count of each word.
        id_to_word (List[str]): Word string per vocabulary index.
        word2id (dict): Mapping word -> vocabulary index.
        n_tokens (int): Number of surviving tokens.
    """

    def __init__(
        self,
        doc_ids: np.ndarray,
        word_ids: np.ndarray,
        counts: np.ndarray,
        id_to_word: List[str],
    ):
        self.doc_ids = _frozen(np.asarray(doc_ids, dtype=np.int64))
        self.word_ids = _frozen(np.asarray(word_ids, dtype=np.int64))
        self.counts = _frozen(np.asarray(counts, dtype=np.int64))
        self.id_to_word = list(id_to_word)
        self.word2id = {w: i for i, w in enumerate(self.id_to_word)}
        self.n_tokens = len(self.word_ids)

    @property
    def vocab_size(self) -> int:
        return len(self.id_to_word)

    def iter_documents(self) -> Iterator[Tuple[int, np.ndarray]]:
        """Yield (doc_id, word_ids) for each contiguous run of one document's tokens."""
        if self.n_tokens == 0:
            return
        change = np.flatnonzero(np.diff(self.doc_ids)) + 1
        starts = np.concatenate(([0], change))
        ends = np.concatenate((change, [self.n_tokens]))
        for s, e in zip(starts, ends):
            yield int(self.doc_ids[s]), self.word_ids[s:e]

    def words(self, doc_id: int) -> List[str]:
        """Surviving words of one document, in order."""
        return [self.id_to_word[i] for i in self.word_ids[self.doc_ids == doc_id]]


def build_vocab(tokens: Iterable[str], min_count: int = 20) -> Tuple[List[str], np.ndarray]:
    """Count words and keep those with count >= min_count.

    Ids are assigned by descending count, ties broken alphabetically, so the
    vocabulary is deterministic for a given corpus.

    Args:
        tokens: Iterable of token strings (whole corpus).
        min_count: Frequency floor. Defaults to 20.

    Returns:
        Tuple (id_to_word, counts) with counts[i] the count of id_to_word[i].
    """
    cnt = Counter(tokens)
    kept = sorted((w for w, c in cnt.items() if c >= min_count), key=lambda w: (-cnt[w], w))
    counts = np.array([cnt[w] for w in kept], dtype=np.int64)
    return kept, counts


def tokenize_documents(
    documents: Iterable[Tuple[int, str]],
    min_count: int = 20,
    normalize: bool = True,
) -> TokenTable:
    """Tokenize (doc_id, text) pairs and drop every token of a word below min_count.

    Args:
        documents: Iterable of (doc_id, raw_text).
        min_count: Corpus-wide frequency floor. Defaults to 20.
        normalize: Strip HTML artifacts first (normalize_text). Defaults to True.

    Returns:
        TokenTable over the surviving words.

    Raises:
        EmptyVocabularyError: If no word reaches min_count (including an empty corpus).
    """
    if min_count < 1:
        raise ValueError(f"min_count must be >= 1, got {min_count}")
    per_doc: List[Tuple[int, List[str]]] = []
    for doc_id, text in documents:
        if normalize:
            text = normalize_text(text)
        per_doc.append((int(doc_id), tokenize_simple(text)))

    id_to_word, counts = build_vocab((w for _, words in per_doc for w in words), min_count)
    if not id_to_word:
        raise EmptyVocabularyError(
            f"no words with count >= {min_count} in {len(per_doc)} documents"
        )
    word2id = {w: i for i, w in enumerate(id_to_word)}

    doc_ids: List[int] = []
    word_ids: List[int] = []
    for doc_id, words in per_doc:
        kept = [word2id[w] for w in words if w in word2id]
        doc_ids.extend([doc_id] * len(kept))
        word_ids.extend(kept)
    return TokenTable(np.array(doc_ids), np.array(word_ids), counts, id_to_word)


class Windows:
    """Skip-gram windows in long form: one row per (window, token).

    Attributes:
        window_ids (np.ndarray): 1D int64; window of each row, non-decreasing.
        doc_ids (np.ndarray): 1D int64; document of each row.
        word_ids (np.ndarray): 1D int64; vocabulary index of each row.
        id_to_word (List[str]): Vocabulary carried over from the TokenTable.
        word2id (dict): Mapping word -> vocabulary index.
        window_size (int): Configured window width W.
        n_windows (int): Number of distinct windows kept.
        n_dropped (int): Windows removed by the membership check.
    """

    def __init__(
        self,
        window_ids: np.ndarray,
        doc_ids: np.ndarray,
        word_ids: np.ndarray,
        id_to_word: List[str],
        window_size: int,
        n_dropped: int = 0,
    ):
        self.window_ids = _frozen(np.asarray(window_ids, dtype=np.int64))
        self.doc_ids = _frozen(np.asarray(doc_ids, dtype=np.int64))
        self.word_ids = _frozen(np.asarray(word_ids, dtype=np.int64))
        self.id_to_word = list(id_to_word)
        self.word2id = {w: i for i, w in enumerate(self.id_to_word)}
        self.window_size = window_size
        self.n_windows = len(np.unique(self.window_ids))
        self.n_dropped = n_dropped

    @property
    def vocab_size(self) -> int:
        return len(self.id_to_word)

    def members(self, window_id: int) -> List[str]:
        """Words of one window, in document order."""
        return [self.id_to_word[i] for i in self.word_ids[self.window_ids == window_id]]

    def for_document(self, doc_id: int) -> List[List[str]]:
        """All windows of one document as word lists, in window-id order."""
        mask = self.doc_ids == doc_id
        wids = self.window_ids[mask]
        words = self.word_ids[mask]
        return [
            [self.id_to_word[i] for i in words[wids == wid]] for wid in np.unique(wids)
        ]


def window_bounds(n_tokens: int, window_size: int) -> List[Tuple[int, int]]:
    """Half-open token ranges [start, end) of each window of one document.

    A document with at least window_size tokens gets one window per position,
    clipped at the end; a shorter one gets a single window holding every token.

    Args:
        n_tokens: Number of (filtered) tokens in the document.
        window_size: Window width W.

    Returns:
        List of (start, end) pairs; empty for an empty document.
    """
    if n_tokens == 0:
        return []
    if n_tokens < window_size:
        return [(0, n_tokens)]
    return [(i, min(i + window_size, n_tokens)) for i in range(n_tokens)]


def check_window_membership(window_ids: np.ndarray, doc_ids: np.ndarray) -> Tuple[np.ndarray, int]:
    """Find windows whose rows come from more than one document.

    Args:
        window_ids: Window id per row.
        doc_ids: Document id per row.

    Returns:
        Tuple (keep_mask, n_bad): boolean mask over rows that belong to a
        single-document window, and the number of offending windows.
    """
    window_ids = np.asarray(window_ids, dtype=np.int64)
    doc_ids = np.asarray(doc_ids, dtype=np.int64)
    if len(window_ids) == 0:
        return np.ones(0, dtype=bool), 0
    pairs = np.unique(np.stack([window_ids, doc_ids], axis=1), axis=0)
    wids, n_docs = np.unique(pairs[:, 0], return_counts=True)
    bad = wids[n_docs > 1]
    return ~np.isin(window_ids, bad), len(bad)


def build_windows(tokens: TokenTable, window_size: int = 8) -> Windows:
    """Build skip-gram windows by scanning each document's filtered tokens.

    Window ids are assigned sequentially across documents in corpus order. The
    membership check runs afterwards and drops any window spanning documents.

    Args:
        tokens: Filtered TokenTable.
        window_size: Window width W. Defaults to 8.

    Returns:
        Windows in long form.

    Raises:
        ValueError: If window_size < 1.
    """
    if window_size < 1:
        raise ValueError(f"window_size must be >= 1, got {window_size}")
    win_parts: List[np.ndarray] = []
    doc_parts: List[np.ndarray] = []
    word_parts: List[np.ndarray] = []
    next_id = 0
    for doc_id, ids in tokens.iter_documents():
        bounds = np.array(window_bounds(len(ids), window_size), dtype=np.int64)
        if len(bounds) == 0:
            continue
        starts, ends = bounds[:, 0], bounds[:, 1]
        width = int((ends - starts).max())
        # (n_windows, width) token positions; cells past a window's end are masked out
        pos = starts[:, np.newaxis] + np.arange(width)[np.newaxis, :]
        valid = pos < ends[:, np.newaxis]
        wid = np.broadcast_to(next_id + np.arange(len(bounds))[:, np.newaxis], pos.shape)
        win_parts.append(wid[valid])
        word_parts.append(ids[pos[valid]])
        doc_parts.append(np.full(int(valid.sum()), doc_id, dtype=np.int64))
        next_id += len(bounds)

    if win_parts:
        window_ids = np.concatenate(win_parts)
        doc_ids = np.concatenate(doc_parts)
        word_ids = np.concatenate(word_parts)
    else:
        window_ids = doc_ids = word_ids = np.zeros(0, dtype=np.int64)

    keep, n_bad = check_window_membership(window_ids, doc_ids)
    return Windows(
        window_ids[keep],
        doc_ids[keep],
        word_ids[keep],
        tokens.id_to_word,
        window_size,
        n_dropped=n_bad,
    )
