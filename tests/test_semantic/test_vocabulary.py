"""Tests for the TF-IDF vocabulary builder and encoder."""

import numpy as np
import pytest

from cobot.core.binary_stream import BinaryStream
from cobot.core.errors import CorruptError
from cobot.semantic.vocabulary import Term, Vocabulary, build_vocabulary

CORPUS = ["restart the server", "shut down the machine", "list running processes"]


class TestBuild:
    """Vocabulary construction."""

    def test_terms_sorted(self):
        vocab = Vocabulary.build(CORPUS, "english")
        assert vocab.get_feature_names_out() == [
            "down", "list", "machin", "process", "restart", "run", "server", "shut", "the"
        ]

    def test_idf_values(self):
        vocab = Vocabulary.build(CORPUS, "english")
        idf = dict(zip(vocab.get_feature_names_out(), vocab.idf))
        assert idf["the"] == pytest.approx(1.5)
        assert idf["server"] == pytest.approx(3.0)

    def test_document_frequency_counts_substrings(self):
        # "the" also occurs inside "other" and "bother"
        vocab = Vocabulary.build(["the other", "bother"], "english")
        idf = {term.token: term.idf for term in vocab}
        assert idf == {"bother": 2.0, "other": 1.0, "the": 1.0}

    def test_empty_corpus(self):
        vocab = build_vocabulary([], "english")
        assert len(vocab) == 0
        assert vocab.encode(["anything"]).shape == (0,)

    def test_build_is_deterministic(self):
        assert Vocabulary.build(CORPUS, "english") == Vocabulary.build(CORPUS, "english")


class TestEncode:
    """Dense TF-IDF vectors."""

    def test_vector_length_matches_terms(self):
        vocab = Vocabulary.build(CORPUS, "english")
        for description in CORPUS:
            assert len(vocab.encode(vocab.tokenize(description))) == len(vocab)

    def test_components_in_term_order(self):
        vocab = Vocabulary.build(CORPUS, "english")
        vector = vocab.encode_text("restart the server")
        expected = np.zeros(len(vocab))
        names = vocab.get_feature_names_out()
        expected[names.index("restart")] = 3.0
        expected[names.index("server")] = 3.0
        expected[names.index("the")] = 1.5
        np.testing.assert_array_equal(vector, expected)

    def test_term_frequency_is_non_overlapping(self):
        vocab = Vocabulary("english", (Term("aa", 1.0),))
        assert vocab.encode(["aaaa"])[0] == 2.0
        assert vocab.encode(["aaa"])[0] == 1.0

    def test_unknown_words_give_zero_vector(self):
        vocab = Vocabulary.build(CORPUS, "english")
        assert not vocab.encode_text("xyzzy plugh").any()


class TestCodec:
    """Binary serialization of the vocabulary."""

    def test_round_trip(self):
        vocab = Vocabulary.build(CORPUS, "english")
        stream = BinaryStream.in_memory()
        vocab.save(stream)

        loaded = Vocabulary.load(BinaryStream.in_memory(stream.getvalue()), "english")
        assert loaded == vocab

    def test_layout(self):
        vocab = Vocabulary("english", (Term("ab", 0.5),))
        stream = BinaryStream.in_memory()
        vocab.save(stream)
        assert stream.getvalue() == (
            b"\x01\x00\x00\x00"            # termCount
            b"\x02\x00\x00\x00ab"          # token
            b"\x00\x00\x00\x00\x00\x00\xe0\x3f"  # idf 0.5
        )

    def test_truncated(self):
        vocab = Vocabulary.build(CORPUS, "english")
        stream = BinaryStream.in_memory()
        vocab.save(stream)
        with pytest.raises(CorruptError):
            Vocabulary.load(BinaryStream.in_memory(stream.getvalue()[:-3]), "english")
