from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import sparse
from scipy.sparse.linalg import ArpackNoConvergence, svds

from pmivec.data import Windows
from pmivec.errors import EmptyVocabularyError, UnknownWordError

# Pairwise PMI over shared windows, then truncated SVD of the sparse PMI matrix.
# Word vector convention: U * s (left singular vectors scaled by singular values),
# dimensions by descending singular value, each column signed so its largest |coord| is > 0.


class PairwisePMI:
    """Symmetric PMI scores in sparse triplet form (both orderings stored).

    Attributes:
        item1 (np.ndarray): 1D int64 word ids, first element of each pair.
        item2 (np.ndarray): 1D int64 word ids, second element of each pair.
        pmi (np.ndarray): 1D float64 PMI per pair; (a, b) and (b, a) hold the same value.
        id_to_word (List[str]): Vocabulary (row/column labels of the matrix).
        word2id (dict): Mapping word -> vocabulary index.
        n_pairs (int): Number of stored rows (twice the number of unordered pairs).
    """

    def __init__(
        self,
        item1: np.ndarray,
        item2: np.ndarray,
        pmi: np.ndarray,
        id_to_word: List[str],
    ):
        self.item1 = np.asarray(item1, dtype=np.int64)
        self.item2 = np.asarray(item2, dtype=np.int64)
        self.pmi = np.asarray(pmi, dtype=np.float64)
        for arr in (self.item1, self.item2, self.pmi):
            arr.setflags(write=False)
        self.id_to_word = list(id_to_word)
        self.word2id = {w: i for i, w in enumerate(self.id_to_word)}
        self.n_pairs = len(self.pmi)

    def to_matrix(self) -> sparse.csr_matrix:
        """V x V CSR matrix over the full vocabulary; omitted pairs are structural zeros."""
        V = len(self.id_to_word)
        return sparse.csr_matrix((self.pmi, (self.item1, self.item2)), shape=(V, V))

    def to_frame(self) -> pd.DataFrame:
        """Long table with columns item1, item2, pmi (words, not ids)."""
        words = np.array(self.id_to_word, dtype=object)
        return pd.DataFrame(
            {"item1": words[self.item1], "item2": words[self.item2], "pmi": self.pmi}
        )

    def get(self, a: str, b: str) -> Optional[float]:
        """PMI of (a, b), or None when the pair never shares a window.

        Raises:
            UnknownWordError: If a or b is not in the vocabulary.
        """
        for w in (a, b):
            if w not in self.word2id:
                raise UnknownWordError(w)
        hit = np.flatnonzero((self.item1 == self.word2id[a]) & (self.item2 == self.word2id[b]))
        return float(self.pmi[hit[0]]) if len(hit) else None


def word_window_matrix(windows: Windows) -> sparse.csr_matrix:
    """Sparse V x n_windows count matrix; a word twice in one window counts 2."""
    _, col = np.unique(windows.window_ids, return_inverse=True)
    data = np.ones(len(windows.word_ids), dtype=np.int64)
    shape = (windows.vocab_size, windows.n_windows)
    # coo -> csr sums duplicate (word, window) entries
    return sparse.coo_matrix((data, (windows.word_ids, col.ravel())), shape=shape).tocsr()


def pairwise_pmi(windows: Windows) -> PairwisePMI:
    """PMI = log(P(a,b) / (P(a) P(b))) for every pair of distinct words sharing a window.

    With M the word x window count matrix and C = M M^T:
    P(a,b) = C[a,b] / sum(C) and P(a) = rowsum(M)[a] / sum(M). Pairs that never
    share a window are omitted rather than stored as -inf.

    Args:
        windows: Windows from build_windows.

    Returns:
        PairwisePMI with both orderings of each pair, sorted by (item1, item2).
    """
    M = word_window_matrix(windows)
    total_tokens = M.sum()
    C = (M @ M.T).tocoo()
    if total_tokens == 0 or C.nnz == 0:
        empty = np.zeros(0, dtype=np.int64)
        return PairwisePMI(empty, empty, np.zeros(0), windows.id_to_word)

    p_word = np.asarray(M.sum(axis=1), dtype=np.float64).ravel() / float(total_tokens)
    total_pairs = float(C.sum())
    keep = (C.row != C.col) & (C.data > 0)
    a = C.row[keep].astype(np.int64)
    b = C.col[keep].astype(np.int64)
    p_ab = C.data[keep].astype(np.float64) / total_pairs
    pmi = np.log(p_ab / (p_word[a] * p_word[b]))
    order = np.lexsort((b, a))
    return PairwisePMI(a[order], b[order], pmi[order], windows.id_to_word)


class WordVectors:
    """Dense word x dimension matrix from the truncated SVD.

    Attributes:
        vectors (np.ndarray): (V, D) float64, row i is the vector of id_to_word[i].
        id_to_word (List[str]): Word per row.
        word2id (dict): Mapping word -> row.
        singular_values (np.ndarray): (D,) descending; zero for dimensions that did not converge.
        converged (bool): False if the solver hit its iteration cap.
        n_converged (int): Number of dimensions actually recovered.
    """

    def __init__(
        self,
        vectors: np.ndarray,
        id_to_word: List[str],
        singular_values: np.ndarray,
        converged: bool = True,
        n_converged: Optional[int] = None,
    ):
        self.vectors = np.asarray(vectors, dtype=np.float64)
        self.vectors.setflags(write=False)
        self.id_to_word = list(id_to_word)
        self.word2id = {w: i for i, w in enumerate(self.id_to_word)}
        self.singular_values = np.asarray(singular_values, dtype=np.float64)
        self.converged = converged
        self.n_converged = self.vectors.shape[1] if n_converged is None else n_converged

    @property
    def dim(self) -> int:
        return self.vectors.shape[1]

    def __len__(self) -> int:
        return len(self.id_to_word)

    def __contains__(self, word: str) -> bool:
        return word in self.word2id

    def index(self, word: str) -> int:
        """Row of word; raises UnknownWordError if it was filtered out or never seen."""
        try:
            return self.word2id[word]
        except KeyError:
            raise UnknownWordError(word) from None

    def vector(self, word: str) -> np.ndarray:
        return self.vectors[self.index(word)]

    def to_frame(self) -> pd.DataFrame:
        """Tidy (word, dimension, value) table, dimension counted from 0."""
        V, D = self.vectors.shape
        return pd.DataFrame(
            {
                "word": np.repeat(np.array(self.id_to_word, dtype=object), D),
                "dimension": np.tile(np.arange(D), V),
                "value": self.vectors.ravel(),
            }
        )


def _fix_signs(U: np.ndarray) -> np.ndarray:
    """Flip each column so its largest-magnitude entry is positive (SVD sign is arbitrary)."""
    if U.size == 0:
        return U
    rows = np.argmax(np.abs(U), axis=0)
    signs = np.sign(U[rows, np.arange(U.shape[1])])
    signs[signs == 0] = 1.0
    return U * signs


def _partial_svd(
    A: sparse.csr_matrix, eigvecs: np.ndarray, k: int
) -> Tuple[np.ndarray, np.ndarray, int]:
    """Recover left singular vectors from the converged right vectors of an aborted run.

    Args:
        A: The matrix being factorized.
        eigvecs: (n, j) converged eigenvectors of A^T A (may have j = 0).
        k: Requested number of dimensions; missing ones are zero-filled.

    Returns:
        Tuple (U, s, j) with U of shape (V, k) and s of length k.
    """
    V = A.shape[0]
    U = np.zeros((V, k))
    s = np.zeros(k)
    eigvecs = np.real(np.asarray(eigvecs)) if eigvecs is not None else np.zeros((V, 0))
    j = min(eigvecs.shape[1] if eigvecs.ndim == 2 else 0, k)
    if j == 0:
        return U, s, 0
    Q, _ = np.linalg.qr(eigvecs[:, :j])
    U_small, s_small, _ = np.linalg.svd(A @ Q, full_matrices=False)
    U[:, :j] = U_small
    s[:j] = s_small
    return U, s, j


def truncated_svd(
    pmi: PairwisePMI,
    num_dimensions: int = 256,
    max_iterations: int = 1000,
    seed: Optional[int] = 0,
    verbose: bool = False,
) -> WordVectors:
    """Factorize the PMI matrix and return word vectors U * s.

    Uses ARPACK (scipy.sparse.linalg.svds) with maxiter=max_iterations. When
    more dimensions are requested than ARPACK can compute (num_dimensions >=
    V - 1) a dense SVD is used and D = min(num_dimensions, V). On
    non-convergence the converged dimensions are kept, the rest zero-filled,
    and converged=False is recorded.

    Args:
        pmi: PairwisePMI from pairwise_pmi.
        num_dimensions: Singular vectors to retain. Defaults to 256.
        max_iterations: ARPACK iteration cap. Defaults to 1000.
        seed: Seed for the ARPACK start vector (reproducible output). Defaults to 0.
        verbose: Print a note when the iteration cap is hit. Defaults to False.

    Returns:
        WordVectors over the words that have at least one PMI pair; words that
        never share a window with another word get no row.

    Raises:
        EmptyVocabularyError: If no pair of words co-occurs.
        ValueError: If num_dimensions or max_iterations < 1.
    """
    if num_dimensions < 1:
        raise ValueError(f"num_dimensions must be >= 1, got {num_dimensions}")
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
    if pmi.n_pairs == 0:
        raise EmptyVocabularyError("no word pairs share a window; nothing to factorize")

    # words without any PMI pair would only get an all-zero row
    active = np.unique(pmi.item1)
    words = [pmi.id_to_word[i] for i in active]
    A = pmi.to_matrix()[active][:, active].astype(np.float64)
    V = A.shape[0]
    k = min(num_dimensions, V)
    converged = True
    n_converged = k
    if k >= V - 1:
        # ARPACK requires k < min(A.shape)
        U, s, _ = np.linalg.svd(A.toarray(), full_matrices=False)
        U, s = U[:, :k], s[:k]
    else:
        v0 = np.random.default_rng(seed).standard_normal(V)
        try:
            U, s, _ = svds(A, k=k, maxiter=max_iterations, v0=v0)
        except ArpackNoConvergence as e:
            U, s, n_converged = _partial_svd(A, e.eigenvectors, k)
            converged = False
            if verbose:
                print(
                    f"SVD: iteration cap {max_iterations} reached, "
                    f"{n_converged}/{k} dimensions converged"
                )
        order = np.argsort(-s, kind="stable")
        U, s = U[:, order], s[order]

    U = _fix_signs(U)
    return WordVectors(U * s, words, s, converged=converged, n_converged=n_converged)
