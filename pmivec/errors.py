# Error types raised by the pipeline and the query layer.


class PmivecError(Exception):
    """Base error for all pmivec failures."""


class EmptyVocabularyError(PmivecError, ValueError):
    """No words survive tokenizing and the frequency floor (or none co-occur)."""


class UnknownWordError(PmivecError, KeyError):
    """A query word is not in the (filtered) vocabulary.

    Attributes:
        word (str): The word that was looked up.
    """

    def __init__(self, word: str):
        super().__init__(word)
        self.word = word

    def __str__(self) -> str:
        return f"word not found in vocabulary: {self.word!r}"
