import argparse
import sys

from pmivec.corpus_utils import documents_from_texts, load_documents
from pmivec.errors import UnknownWordError
from pmivec.eval import analogy, print_nearest
from pmivec.train import PipelineConfig, train_word_vectors

# Entry point: train PMI/SVD word vectors on a demo corpus or file.
# Usage: python -m pmivec.run [--file path] [--query word ...] [--analogy a b c]

DEMO_TEXTS = [
    "the quick brown fox jumps over the lazy dog",
    "the dog and the fox are animals",
    "quick animals jump over lazy dogs",
    "brown foxes and lazy dogs",
    "the quick brown fox runs",
    "the lazy dog sleeps",
]


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Word vectors from PMI + truncated SVD")
    ap.add_argument("--text", type=str, default=None, help="Train on this string (one document)")
    ap.add_argument(
        "--file",
        type=str,
        default=None,
        help="Corpus file: .jsonl records (title/text) or one document per line",
    )
    ap.add_argument("--window", type=int, default=8)
    ap.add_argument(
        "--min-count", type=int, default=None, help="Defaults to 20 for --file, 1 otherwise"
    )
    ap.add_argument("--dim", type=int, default=256)
    ap.add_argument("--max-iter", type=int, default=1000)
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--no-normalize", action="store_true", help="Skip HTML cleanup")
    ap.add_argument("--query", nargs="+", default=None, help="Print nearest synonyms")
    ap.add_argument("--analogy", nargs=3, default=None, metavar=("W1", "W2", "W3"))
    ap.add_argument("--top", type=int, default=5)
    ap.add_argument("--output", type=str, default=None, help="Write word,dimension,value CSV")
    return ap


def main(argv=None) -> int:
    """Train, print nearest synonyms and an optional analogy, optionally write the vectors."""
    args = build_parser().parse_args(argv)

    if args.file:
        documents = load_documents(args.file)
    else:
        documents = documents_from_texts([args.text] if args.text else DEMO_TEXTS)

    min_count = args.min_count
    if min_count is None:
        min_count = 20 if args.file else 1
    config = PipelineConfig(
        window_size=args.window,
        min_word_count=min_count,
        num_dimensions=args.dim,
        max_iterations=args.max_iter,
        normalize=not args.no_normalize,
        seed=args.seed,
    )
    try:
        wv = train_word_vectors(documents, config=config)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    for w in args.query or []:
        if w not in wv:
            print(f"error: {UnknownWordError(w)}", file=sys.stderr)
            return 1
    print("Nearest synonyms:")
    print_nearest(wv, k=args.top, query_words=args.query)

    if args.analogy:
        w1, w2, w3 = args.analogy
        try:
            ranked = analogy(wv, w1, w2, w3, k=args.top)
        except UnknownWordError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        print(f"Analogy {w1} - {w2} + {w3}:")
        print("  " + ", ".join(f"{w}({score:.3f})" for w, score in ranked))

    if args.output:
        wv.to_frame().to_csv(args.output, index=False)
        print(f"Wrote {len(wv)} x {wv.dim} vectors to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
