"""
Tokenizer for action descriptions and user input.

Text is lowercased, split on whitespace and every token is reduced with the
Snowball stemmer for the requested language, stop words included.  Languages
without a stemmer keep their tokens unchanged.
"""

import threading
from typing import Callable, List, Optional

import snowballstemmer

_local = threading.local()


def supported_languages() -> List[str]:
    """Return the language tags that have a Snowball stemmer."""
    return sorted(snowballstemmer.algorithms())


def _identity(token: str) -> str:
    return token


def get_stemmer(language: str) -> Callable[[str], str]:
    """
    Return a stemming function for ``language``.

    Snowball stemmers keep internal state between calls, so one instance is
    cached per thread and language.
    """
    cache = getattr(_local, "stemmers", None)
    if cache is None:
        cache = _local.stemmers = {}

    stem: Optional[Callable[[str], str]] = cache.get(language)
    if stem is None:
        if language in snowballstemmer.algorithms():
            stem = snowballstemmer.stemmer(language).stemWord
        else:
            stem = _identity
        cache[language] = stem
    return stem


def tokenize(text: str, language: str) -> List[str]:
    """
    Lowercase ``text``, split it on whitespace and stem every token.

    Args:
        text: Free text
        language: Snowball language tag, e.g. ``"english"``

    Returns:
        Stems in input order; empty for empty or blank input
    """
    stem = get_stemmer(language)
    return [stem(token) for token in text.lower().split()]
