from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from pmivec.data import TokenTable, Windows, build_windows, tokenize_documents
from pmivec.errors import EmptyVocabularyError
from pmivec.model import PairwisePMI, WordVectors, pairwise_pmi, truncated_svd

# End-to-end batch pipeline: tokenize + filter -> windows -> PMI -> SVD.
# Each stage consumes the previous one in full; nothing is streamed between stages.


@dataclass(frozen=True)
class PipelineConfig:
    """Options for train_word_vectors.

    Attributes:
        window_size: Skip-gram window width. Defaults to 8.
        min_word_count: Frequency floor for the vocabulary. Defaults to 20.
        num_dimensions: Singular vectors to retain. Defaults to 256.
        max_iterations: SVD solver iteration cap. Defaults to 1000.
        normalize: Strip HTML artifacts before tokenizing. Defaults to True.
        seed: Seed for the SVD start vector. Defaults to 0.
    """

    window_size: int = 8
    min_word_count: int = 20
    num_dimensions: int = 256
    max_iterations: int = 1000
    normalize: bool = True
    seed: int = 0

    def validate(self) -> "PipelineConfig":
        """Raise ValueError if any integer option is < 1; return self."""
        for name in ("window_size", "min_word_count", "num_dimensions", "max_iterations"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        return self


@dataclass
class PipelineResult:
    """Output of every stage of one run (for inspection and tests)."""

    tokens: TokenTable
    windows: Windows
    pmi: PairwisePMI
    vectors: WordVectors


def run_pipeline(
    documents: Iterable[Tuple[int, str]],
    config: Optional[PipelineConfig] = None,
    verbose: bool = True,
) -> PipelineResult:
    """Run all stages on (doc_id, text) pairs and keep each stage's output.

    Args:
        documents: Iterable of (doc_id, raw_text).
        config: Pipeline options. Defaults to PipelineConfig().
        verbose: Print one progress line per stage. Defaults to True.

    Returns:
        PipelineResult.

    Raises:
        EmptyVocabularyError: If nothing survives the frequency floor, or no words co-occur.
        ValueError: On an invalid config.
    """
    cfg = (config or PipelineConfig()).validate()

    tokens = tokenize_documents(documents, min_count=cfg.min_word_count, normalize=cfg.normalize)
    if verbose:
        print(
            f"Tokens: {tokens.n_tokens} kept, vocab size {tokens.vocab_size} "
            f"(min count {cfg.min_word_count})"
        )

    windows = build_windows(tokens, window_size=cfg.window_size)
    if verbose:
        print(f"Windows: {windows.n_windows} (size {cfg.window_size}), dropped {windows.n_dropped}")

    pmi = pairwise_pmi(windows)
    if verbose:
        print(f"PMI: {pmi.n_pairs // 2} word pairs")
    if pmi.n_pairs == 0:
        raise EmptyVocabularyError(
            f"none of the {tokens.vocab_size} vocabulary words share a window"
        )

    vectors = truncated_svd(
        pmi,
        num_dimensions=cfg.num_dimensions,
        max_iterations=cfg.max_iterations,
        seed=cfg.seed,
        verbose=verbose,
    )
    if verbose:
        status = "converged" if vectors.converged else "iteration cap reached"
        print(f"SVD: {len(vectors)} words x {vectors.dim} dimensions ({status})")
    return PipelineResult(tokens=tokens, windows=windows, pmi=pmi, vectors=vectors)


def train_word_vectors(
    documents: Iterable[Tuple[int, str]],
    config: Optional[PipelineConfig] = None,
    verbose: bool = True,
) -> WordVectors:
    """Train word vectors from (doc_id, text) pairs; see run_pipeline."""
    return run_pipeline(documents, config=config, verbose=verbose).vectors
