from typing import List, Optional, Tuple

import numpy as np

from pmivec.errors import UnknownWordError
from pmivec.model import WordVectors

# Queries: nearest synonyms (rank by dot product with a word's row) and analogies
# (a - b + c). Rows are unit-normalized first, so the dot product is a cosine.


def l2_normalize(X: np.ndarray, axis: int = -1) -> np.ndarray:
    """L2-normalize array along the given axis (zero vectors get divisor 1).

    Args:
        X: Input array.
        axis: Axis along which to normalize. Defaults to -1.

    Returns:
        Normalized array, same shape as X.
    """
    norm = np.linalg.norm(X, axis=axis, keepdims=True)
    norm = np.where(norm > 0, norm, 1.0)
    return X / norm


def _rank(
    wv: WordVectors,
    target: np.ndarray,
    k: Optional[int],
    first: Optional[int] = None,
) -> List[Tuple[str, float]]:
    E = l2_normalize(wv.vectors, axis=1)
    scores = E @ target
    order = np.argsort(-scores, kind="stable")
    if first is not None:
        # rounding can leave the self score a hair under an identical row
        scores[first] = scores.max()
        order = np.concatenate(([first], order[order != first]))
    if k is not None:
        order = order[:k]
    return [(wv.id_to_word[i], float(scores[i])) for i in order]


def nearest_synonyms(
    wv: WordVectors,
    word: str,
    k: Optional[int] = None,
) -> List[Tuple[str, float]]:
    """Rank every word by dot product with the (unit) vector of word.

    The query word itself comes first: its self score is the maximum, and
    exact ties with identical vectors are resolved in its favour.

    Args:
        wv: Trained WordVectors.
        word: Query word.
        k: Keep only the top k. Defaults to None (all words).

    Returns:
        List of (word, score), descending.

    Raises:
        UnknownWordError: If word is not in the vocabulary.
    """
    i = wv.index(word)
    target = l2_normalize(wv.vectors[i])
    return _rank(wv, target, k, first=i)


def analogy(
    wv: WordVectors,
    word1: str,
    word2: str,
    word3: str,
    k: Optional[int] = None,
) -> List[Tuple[str, float]]:
    """Rank every word against vector(word1) - vector(word2) + vector(word3).

    Input words are not excluded from the ranking.

    Args:
        wv: Trained WordVectors.
        word1: Word whose vector is added.
        word2: Word whose vector is subtracted.
        word3: Word whose vector is added.
        k: Keep only the top k. Defaults to None (all words).

    Returns:
        List of (word, score), descending.

    Raises:
        UnknownWordError: If any of the three words is not in the vocabulary.
    """
    ids = []
    for w in (word1, word2, word3):
        if w not in wv:
            raise UnknownWordError(w)
        ids.append(wv.word2id[w])
    E = l2_normalize(wv.vectors, axis=1)
    target = E[ids[0]] - E[ids[1]] + E[ids[2]]
    return _rank(wv, target, k)


def print_nearest(
    wv: WordVectors,
    k: int = 5,
    query_words: Optional[List[str]] = None,
) -> None:
    """Print k nearest neighbours (self excluded) for given or default query words.

    Unknown query words are reported and skipped.

    Args:
        wv: Trained WordVectors.
        k: Number of neighbours to show. Defaults to 5.
        query_words: Words to query; if None, use the 3 most frequent words. Defaults to None.
    """
    if query_words is None:
        query_words = wv.id_to_word[: min(3, len(wv))]
    for w in query_words:
        try:
            ranked = nearest_synonyms(wv, w, k=k + 1)[1:]
        except UnknownWordError as e:
            print(f"  {e}")
            continue
        nn_str = ", ".join(f"{other}({score:.3f})" for other, score in ranked)
        print(f"  '{w}' -> {nn_str}")


def run_analogy_eval(
    wv: WordVectors,
    analogies: List[Tuple[str, str, str, str]],
) -> Tuple[int, int]:
    """Run (a, b, c, expected) analogies; print and return accuracy.

    The prediction is the best-ranked word other than a, b and c. Quadruples
    with any word outside the vocabulary are skipped.

    Args:
        wv: Trained WordVectors.
        analogies: List of (a, b, c, expected) tuples.

    Returns:
        Tuple (correct_count, total_count) over the analogies that were scored.
    """
    correct = 0
    total = 0
    for a, b, c, expected in analogies:
        if any(w not in wv for w in (a, b, c, expected)):
            continue
        ranked = [w for w, _ in analogy(wv, a, b, c) if w not in (a, b, c)]
        if not ranked:
            continue
        total += 1
        if ranked[0] == expected:
            correct += 1
        print(f"  {a} - {b} + {c} = {ranked[0]} (expected {expected})")
    if total > 0:
        print(f"Analogy accuracy: {correct}/{total} = {100.0 * correct / total:.1f}%")
    else:
        print("  (no analogies in vocab)")
    return correct, total
