"""
Text similarity for action matching.

Descriptions and user input are tokenized and stemmed, encoded as TF-IDF
vectors over a sorted vocabulary, and ranked by cosine similarity.
"""

from .tokenizer import tokenize, supported_languages
from .vocabulary import Term, Vocabulary, build_vocabulary
from .index import SimilarityIndex, EntryVector, cosine_similarity

__all__ = [
    'tokenize',
    'supported_languages',
    'Term',
    'Vocabulary',
    'build_vocabulary',
    'SimilarityIndex',
    'EntryVector',
    'cosine_similarity',
]
