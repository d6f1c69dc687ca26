# cobot/semantic/vocabulary.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from ..core.binary_stream import BinaryStream
from .tokenizer import tokenize


@dataclass(frozen=True)
class Term:
    """A vocabulary token and its inverse document frequency."""
    token: str
    idf: float


# ----------------------------
# TF-IDF vocabulary
# ----------------------------

@dataclass(frozen=True)
class Vocabulary:
    """Sorted term list with IDF weights, built once per corpus snapshot.

    Term order is lexicographic and fixes the component order of every vector
    produced by :meth:`encode`, both at build time and after a reload.

    Counting rules
    --------------
    Document frequency counts the raw lowercased descriptions that *contain*
    a term as a substring, and term frequency counts substring occurrences in
    the space-joined token string.  A stem such as ``"the"`` therefore also
    matches inside ``"other"``.  Cached artifacts depend on these numbers, so
    changing the rule means moving the cache root.

    Every token is stemmed, stop words included: ``"having"`` is counted as
    ``"have"``.  Stemmers that leave stop words untouched produce different
    terms for the same corpus.

    ``idf(t) = N / df(t)`` (no logarithm, no smoothing), ``0`` when ``df == 0``.
    """

    language: str
    terms: Tuple[Term, ...] = ()

    # -------- construction --------

    @classmethod
    def build(cls, corpus: Sequence[str], language: str) -> "Vocabulary":
        documents = [doc.lower() for doc in corpus]

        vocabulary = set()
        for doc in documents:
            vocabulary.update(tokenize(doc, language))

        n_docs = len(documents)
        terms: List[Term] = []
        for token in sorted(vocabulary):
            df = sum(1 for doc in documents if token in doc)
            idf = n_docs / df if df else 0.0
            terms.append(Term(token=token, idf=float(idf)))

        return cls(language=language, terms=tuple(terms))

    # -------- public API --------

    def tokenize(self, text: str) -> List[str]:
        return tokenize(text, self.language)

    def encode(self, tokens: Sequence[str]) -> NDArray[np.float64]:
        """Return the dense TF-IDF vector of ``tokens`` in term order."""
        joined = " ".join(tokens).lower()
        vector = np.zeros(len(self.terms), dtype=np.float64)
        for i, term in enumerate(self.terms):
            tf = joined.count(term.token)
            if tf:
                vector[i] = tf * term.idf
        return vector

    def encode_text(self, text: str) -> NDArray[np.float64]:
        return self.encode(self.tokenize(text))

    def get_feature_names_out(self) -> List[str]:
        return [term.token for term in self.terms]

    @property
    def idf(self) -> NDArray[np.float64]:
        return np.array([term.idf for term in self.terms], dtype=np.float64)

    def __len__(self) -> int:
        return len(self.terms)

    def __iter__(self) -> Iterator[Term]:
        return iter(self.terms)

    # -------- binary codec --------

    def save(self, stream: BinaryStream) -> None:
        """Write ``termCount`` then ``[tokenLen][token][idf]`` per term."""
        stream.write_int32(len(self.terms))
        for term in self.terms:
            stream.write_string(term.token)
            stream.write_float64(term.idf)

    @classmethod
    def load(cls, stream: BinaryStream, language: str) -> "Vocabulary":
        count = stream.read_length()
        terms = []
        for _ in range(count):
            token = stream.read_string()
            idf = stream.read_float64()
            terms.append(Term(token=token, idf=idf))
        return cls(language=language, terms=tuple(terms))


def build_vocabulary(corpus: Sequence[str], language: str) -> Vocabulary:
    """Convenience wrapper around :meth:`Vocabulary.build`."""
    return Vocabulary.build(corpus, language)
