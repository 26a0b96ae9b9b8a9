import json
import math

import numpy as np
import pytest
from scipy.sparse.linalg import ArpackNoConvergence

from pmivec.corpus_utils import (
    documents_from_records,
    documents_from_texts,
    load_documents,
    normalize_text,
    tokenize_simple,
)
from pmivec.data import build_windows, check_window_membership, tokenize_documents, window_bounds
from pmivec.errors import EmptyVocabularyError, UnknownWordError
from pmivec.eval import analogy, l2_normalize, nearest_synonyms, run_analogy_eval
from pmivec.model import pairwise_pmi, truncated_svd
from pmivec.run import main
from pmivec.train import PipelineConfig, run_pipeline, train_word_vectors

# Unit tests: cleanup/tokenizing, window shapes, PMI symmetry, SVD fallback, queries, CLI.

CAT_DOG = ["the cat sat on the mat", "the dog sat on the log"]


def _planted_documents(n_isolated: int = 10):
    """Three groups; a_i and b_i never meet but share contexts c_i, d_i. Plus one-word documents."""
    texts = []
    for i in range(1, 4):
        texts.append(f"a{i} c{i} d{i}")
        texts.append(f"b{i} c{i} d{i}")
    texts.extend(f"z{j}" for j in range(n_isolated))
    return documents_from_texts(texts)


def _windows(texts, window_size, min_count=1):
    tokens = tokenize_documents(documents_from_texts(texts), min_count=min_count)
    return tokens, build_windows(tokens, window_size=window_size)


def _cat_dog_vectors():
    config = PipelineConfig(window_size=3, min_word_count=1)
    return train_word_vectors(documents_from_texts(CAT_DOG), config, verbose=False)


def test_normalize_text_strips_html_and_entities():
    raw = 'It&#x27;s <a href="http://x.com">link</a> &amp; <p>more&gt;</p> caf&eacute; &#8212;'
    assert tokenize_simple(normalize_text(raw)) == ["it's", "link", "more", "café"]


def test_normalize_text_deletes_inline_tags():
    assert tokenize_simple(normalize_text("foo<b>bar</b> <i>x</i>")) == ["foobar", "x"]
    assert tokenize_simple(normalize_text("see<a href=\"u\">here</a>")) == ["see", "here"]


def test_tokenize_simple_case_folds_and_splits():
    assert tokenize_simple("Don't STOP_now, 42!") == ["don't", "stop", "now", "42"]
    assert tokenize_simple("   ") == []


def test_documents_from_records_prefers_title_and_keeps_row_ids():
    records = [
        {"title": "Show HN: a thing", "text": "ignored"},
        {"title": "", "text": "a comment"},
        {"title": None, "text": None},
        {"text": "only text"},
    ]
    assert documents_from_records(records) == [
        (0, "Show HN: a thing"),
        (1, "a comment"),
        (3, "only text"),
    ]


def test_load_documents_jsonl_and_lines(tmp_path):
    jsonl = tmp_path / "corpus.jsonl"
    jsonl.write_text(
        "\n".join(json.dumps(r) for r in [{"title": "t0"}, {"title": "", "text": "c1"}]) + "\n"
    )
    assert load_documents(str(jsonl)) == [(0, "t0"), (1, "c1")]

    lines = tmp_path / "corpus.txt"
    lines.write_text("first doc\n\nsecond doc\n")
    assert load_documents(str(lines)) == [(0, "first doc"), (1, "second doc")]


def test_load_documents_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_documents(str(tmp_path / "missing.txt"))
    bad = tmp_path / "bad.jsonl"
    bad.write_text('{"title": "ok"}\n{not json\n')
    with pytest.raises(ValueError, match="bad.jsonl:2"):
        load_documents(str(bad))


def test_frequency_filter_runs_before_windowing():
    tokens, windows = _windows(["a rare b", "a b"], window_size=2, min_count=2)
    assert "rare" not in tokens.word2id
    assert tokens.words(0) == ["a", "b"]
    # "a" and "b" become adjacent once "rare" is gone
    assert windows.for_document(0) == [["a", "b"], ["b"]]


def test_vocab_ids_by_descending_count():
    tokens = tokenize_documents(documents_from_texts(CAT_DOG), min_count=1)
    assert tokens.id_to_word[0] == "the"
    assert tokens.counts[tokens.word2id["the"]] == 4
    assert set(tokens.id_to_word) == {"the", "cat", "sat", "on", "mat", "dog", "log"}


def test_empty_vocabulary_raises():
    with pytest.raises(EmptyVocabularyError):
        tokenize_documents([], min_count=1)
    with pytest.raises(EmptyVocabularyError):
        tokenize_documents(documents_from_texts(CAT_DOG), min_count=20)
    with pytest.raises(EmptyVocabularyError):
        train_word_vectors(
            documents_from_texts(["hello"]), PipelineConfig(min_word_count=1), verbose=False
        )


def test_window_bounds():
    assert window_bounds(0, 3) == []
    assert window_bounds(2, 3) == [(0, 2)]
    assert window_bounds(3, 3) == [(0, 3), (1, 3), (2, 3)]
    assert window_bounds(5, 3) == [(0, 3), (1, 4), (2, 5), (3, 5), (4, 5)]


@pytest.mark.parametrize("n_tokens", [3, 4, 7, 12])
def test_long_document_one_window_per_token(n_tokens):
    words = [f"w{i}" for i in range(n_tokens)]
    _, windows = _windows([" ".join(words)], window_size=3)
    got = windows.for_document(0)
    assert len(got) == n_tokens
    for i, members in enumerate(got):
        assert members == words[i : min(i + 3, n_tokens)]


def test_short_document_single_window():
    _, windows = _windows(["x y"], window_size=5)
    assert windows.for_document(0) == [["x", "y"]]
    assert windows.n_windows == 1


def test_window_ids_sequential_and_single_document():
    _, windows = _windows(["a b c d", "e f", "g h i j k"], window_size=3)
    assert windows.n_windows == 4 + 1 + 5
    assert np.all(np.diff(windows.window_ids) >= 0)
    np.testing.assert_array_equal(np.unique(windows.window_ids), np.arange(windows.n_windows))
    for wid in np.unique(windows.window_ids):
        assert len(np.unique(windows.doc_ids[windows.window_ids == wid])) == 1
    assert windows.n_dropped == 0


def test_check_window_membership_drops_cross_document_windows():
    keep, n_bad = check_window_membership(np.array([0, 0, 1, 1, 2]), np.array([0, 1, 1, 1, 2]))
    np.testing.assert_array_equal(keep, [False, False, True, True, True])
    assert n_bad == 1


def test_build_windows_rejects_bad_size():
    tokens = tokenize_documents(documents_from_texts(CAT_DOG), min_count=1)
    with pytest.raises(ValueError):
        build_windows(tokens, window_size=0)


def test_stage_outputs_are_read_only():
    tokens, windows = _windows(CAT_DOG, window_size=3)
    assert not tokens.word_ids.flags.writeable
    assert not windows.window_ids.flags.writeable


def test_pmi_hand_computed_value():
    # windows [a b], [b]: P(a,b) = 1/5, P(a) = 1/3, P(b) = 2/3
    _, windows = _windows(["a b"], window_size=2)
    pmi = pairwise_pmi(windows)
    assert pmi.n_pairs == 2
    assert math.isclose(pmi.get("a", "b"), math.log(0.9))


def test_pmi_symmetric_and_no_self_pairs():
    _, windows = _windows(CAT_DOG + ["the cat and the dog"], window_size=3)
    pmi = pairwise_pmi(windows)
    A = pmi.to_matrix()
    assert (A != A.T).nnz == 0
    assert not np.any(pmi.item1 == pmi.item2)
    frame = pmi.to_frame()
    assert list(frame.columns) == ["item1", "item2", "pmi"]
    lookup = {(r.item1, r.item2): r.pmi for r in frame.itertuples()}
    for (a, b), value in lookup.items():
        assert lookup[(b, a)] == value


def test_end_to_end_cat_dog():
    result = run_pipeline(
        documents_from_texts(CAT_DOG),
        PipelineConfig(window_size=3, min_word_count=1),
        verbose=False,
    )
    assert result.tokens.vocab_size == 7
    doc0 = result.windows.for_document(0)
    assert len(doc0) == 6
    assert all(len(w) <= 3 for w in doc0)
    assert doc0[-1] == ["mat"]
    # cat and dog never share a window: pair omitted, not scored
    assert result.pmi.get("cat", "dog") is None
    assert result.pmi.get("cat", "sat") is not None
    wv = result.vectors
    assert len(wv) == 7 and wv.dim == 7
    assert wv.converged


def test_nearest_synonyms_ranks_query_word_first():
    wv = _cat_dog_vectors()
    for word in wv.id_to_word:
        ranked = nearest_synonyms(wv, word)
        assert ranked[0][0] == word
        assert len(ranked) == len(wv)
        scores = [s for _, s in ranked]
        assert scores == sorted(scores, reverse=True)
    assert len(nearest_synonyms(wv, "cat", k=3)) == 3


def test_unknown_word_raises():
    wv = _cat_dog_vectors()
    with pytest.raises(UnknownWordError) as exc:
        analogy(wv, "cat", "zebra", "dog")
    assert exc.value.word == "zebra"
    assert "zebra" in str(exc.value)
    with pytest.raises(KeyError):
        nearest_synonyms(wv, "zebra")


def test_word_without_pairs_has_no_vector():
    config = PipelineConfig(window_size=3, min_word_count=1)
    result = run_pipeline(documents_from_texts(["a b c", "z"]), config, verbose=False)
    assert "z" in result.tokens.word2id
    wv = result.vectors
    assert "z" not in wv
    assert sorted(wv.id_to_word) == ["a", "b", "c"]
    with pytest.raises(UnknownWordError):
        nearest_synonyms(wv, "z")
    with pytest.raises(UnknownWordError):
        analogy(wv, "a", "z", "b")


def test_analogy_ranks_all_words():
    config = PipelineConfig(min_word_count=1, num_dimensions=10)
    wv = train_word_vectors(_planted_documents(), config, verbose=False)
    ranked = analogy(wv, "a1", "c1", "c2")
    assert len(ranked) == len(wv)
    scores = [s for _, s in ranked]
    assert scores == sorted(scores, reverse=True)
    correct, total = run_analogy_eval(wv, [("a1", "c1", "c2", "a2"), ("a1", "c1", "nope", "a2")])
    assert total == 1
    assert 0 <= correct <= 1


def test_planted_partner_stable_when_dimensions_double():
    docs = _planted_documents()
    group_words = [f"{p}{i}" for i in range(1, 4) for p in "abcd"]
    partner = {}
    for i in range(1, 4):
        partner.update({f"a{i}": f"b{i}", f"b{i}": f"a{i}", f"c{i}": f"d{i}", f"d{i}": f"c{i}"})

    top1 = {}
    for dim in (10, 20):
        config = PipelineConfig(min_word_count=1, num_dimensions=dim)
        wv = train_word_vectors(docs, config, verbose=False)
        # the z-words never share a window and get no row
        assert len(wv) == 12 and wv.dim == min(dim, 12)
        assert "z0" not in wv
        top1[dim] = {w: nearest_synonyms(wv, w, k=2)[1][0] for w in group_words}
    assert top1[10] == top1[20] == {w: partner[w] for w in group_words}


def test_truncated_svd_dense_path_caps_dimensions():
    _, windows = _windows(CAT_DOG, window_size=3)
    wv = truncated_svd(pairwise_pmi(windows), num_dimensions=256)
    assert wv.dim == 7
    assert np.all(np.diff(wv.singular_values) <= 1e-12)
    frame = wv.to_frame()
    assert len(frame) == 7 * 7
    assert list(frame.columns) == ["word", "dimension", "value"]


def test_truncated_svd_non_convergence_keeps_best_approximation(monkeypatch, capsys):
    tokens = tokenize_documents(_planted_documents(), min_count=1)
    pmi = pairwise_pmi(build_windows(tokens, window_size=8))
    active = np.unique(pmi.item1)
    dense = pmi.to_matrix().toarray()[np.ix_(active, active)]
    _, true_s, Vt = np.linalg.svd(dense)

    def fake_svds(A, k, maxiter, v0):
        raise ArpackNoConvergence("no convergence", true_s[:2] ** 2, Vt[:2].T)

    monkeypatch.setattr("pmivec.model.svds", fake_svds)
    wv = truncated_svd(pmi, num_dimensions=4, max_iterations=5, verbose=True)
    assert not wv.converged
    assert wv.n_converged == 2
    assert wv.dim == 4
    np.testing.assert_allclose(wv.singular_values[:2], true_s[:2])
    assert np.all(wv.vectors[:, 2:] == 0)
    assert "iteration cap 5" in capsys.readouterr().out


def test_truncated_svd_validates_arguments():
    _, windows = _windows(CAT_DOG, window_size=3)
    pmi = pairwise_pmi(windows)
    with pytest.raises(ValueError):
        truncated_svd(pmi, num_dimensions=0)
    with pytest.raises(ValueError):
        truncated_svd(pmi, max_iterations=0)


def test_pipeline_config_validate():
    assert PipelineConfig().validate().window_size == 8
    with pytest.raises(ValueError, match="window_size"):
        PipelineConfig(window_size=0).validate()
    with pytest.raises(ValueError, match="num_dimensions"):
        run_pipeline(
            documents_from_texts(CAT_DOG), PipelineConfig(num_dimensions=-1), verbose=False
        )


def test_l2_normalize():
    X = np.array([[3.0, 4.0], [0.0, 0.0]])
    np.testing.assert_allclose(l2_normalize(X, axis=1), [[0.6, 0.8], [0.0, 0.0]])


def test_cli_trains_queries_and_writes_csv(tmp_path, capsys):
    out = tmp_path / "vectors.csv"
    code = main(
        [
            "--text", "the cat sat on the mat the dog sat on the log",
            "--window", "3",
            "--dim", "4",
            "--query", "cat",
            "--analogy", "cat", "mat", "log",
            "--output", str(out),
        ]
    )
    assert code == 0
    assert out.read_text().splitlines()[0] == "word,dimension,value"
    printed = capsys.readouterr().out
    assert "'cat' ->" in printed
    assert "Analogy cat - mat + log" in printed


def test_cli_unknown_query_word_fails(capsys):
    assert main(["--window", "3", "--dim", "4", "--query", "zebra"]) == 1
    assert "zebra" in capsys.readouterr().err


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
