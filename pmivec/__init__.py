from pmivec.corpus_utils import load_documents, normalize_text, tokenize_simple
from pmivec.data import TokenTable, Windows, build_windows, tokenize_documents
from pmivec.errors import EmptyVocabularyError, PmivecError, UnknownWordError
from pmivec.eval import analogy, nearest_synonyms
from pmivec.model import PairwisePMI, WordVectors, pairwise_pmi, truncated_svd
from pmivec.train import PipelineConfig, run_pipeline, train_word_vectors

# Word vectors from skip-gram windows: pairwise PMI factorized by truncated SVD (scipy).
# Pipeline: normalize -> tokenize + frequency filter -> windows -> PMI -> SVD -> queries.

__all__ = [
    "EmptyVocabularyError",
    "PairwisePMI",
    "PipelineConfig",
    "PmivecError",
    "TokenTable",
    "UnknownWordError",
    "Windows",
    "WordVectors",
    "analogy",
    "build_windows",
    "load_documents",
    "nearest_synonyms",
    "normalize_text",
    "pairwise_pmi",
    "run_pipeline",
    "tokenize_documents",
    "tokenize_simple",
    "train_word_vectors",
    "truncated_svd",
]
