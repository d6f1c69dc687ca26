"""
Similarity index over catalog entry vectors.

Holds one TF-IDF vector per catalog entry and answers threshold queries with
cosine similarity.  An index is filled once at build time and then sealed;
it is never updated in place.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from ..core.binary_stream import BinaryStream
from ..core.errors import CorruptError

logger = logging.getLogger(__name__)

VectorLike = Union[Sequence[float], NDArray[np.float64]]


@dataclass(frozen=True)
class EntryVector:
    """Vector of one catalog entry; ``id`` indexes the catalog's entry list."""
    id: int
    data: NDArray[np.float64]


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero magnitude.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(va, vb)) / (norm_a * norm_b)


class SimilarityIndex:
    """
    Fixed-width vector store with cosine threshold queries.

    Every appended vector must have exactly ``width`` components.  Queries
    return ids ranked by descending score; equal scores keep insertion order.
    """

    def __init__(self, width: int) -> None:
        if width < 0:
            raise ValueError(f"width must be >= 0, got {width}")
        self.width = width
        self.entries: List[EntryVector] = []
        self._matrix: Optional[NDArray[np.float64]] = None
        self._norms: Optional[NDArray[np.float64]] = None
        self._sealed = False

    def append(self, entry_id: int, vector: VectorLike) -> None:
        """Add one entry vector (build time only)."""
        if self._sealed:
            raise RuntimeError("similarity index is sealed")
        data = np.array(vector, dtype=np.float64)
        if data.ndim != 1 or data.shape[0] != self.width:
            raise ValueError(
                f"vector for entry {entry_id} has {data.shape[0] if data.ndim == 1 else data.shape} "
                f"components, index width is {self.width}"
            )
        data.setflags(write=False)
        self.entries.append(EntryVector(id=int(entry_id), data=data))

    def seal(self) -> "SimilarityIndex":
        """Freeze the index and precompute the row matrix and norms."""
        if not self._sealed:
            self._matrix, self._norms = self._stack()
            self._matrix.setflags(write=False)
            self._norms.setflags(write=False)
            self._sealed = True
        return self

    @property
    def sealed(self) -> bool:
        return self._sealed

    def __len__(self) -> int:
        return len(self.entries)

    def ids(self) -> List[int]:
        return [entry.id for entry in self.entries]

    # -------- queries --------

    def scores(self, query: VectorLike) -> NDArray[np.float64]:
        """Cosine similarity of ``query`` against every entry, in insertion order."""
        q = np.asarray(query, dtype=np.float64)
        if q.ndim != 1 or q.shape[0] != self.width:
            raise ValueError(f"query vector has {q.shape} components, index width is {self.width}")

        if self._sealed:
            matrix, norms = self._matrix, self._norms
        else:
            matrix, norms = self._stack()

        scores = np.zeros(len(self.entries), dtype=np.float64)
        q_norm = float(np.linalg.norm(q))
        if q_norm == 0.0 or not self.entries:
            return scores

        dots = matrix @ q
        nonzero = norms > 0.0
        scores[nonzero] = dots[nonzero] / (norms[nonzero] * q_norm)
        return scores

    def query_with_scores(self, query: VectorLike,
                          minimum_score: float) -> List[Tuple[int, float]]:
        """Return ``(id, score)`` pairs with ``score >= minimum_score``, best first."""
        scores = self.scores(query)
        matched = np.nonzero(scores >= minimum_score)[0]
        if matched.size == 0:
            return []

        # Stable sort keeps insertion order between equal scores
        order = matched[np.argsort(-scores[matched], kind="stable")]
        return [(self.entries[i].id, float(scores[i])) for i in order]

    def query(self, query: VectorLike, minimum_score: float) -> List[int]:
        """Return entry ids with ``score >= minimum_score``, best first."""
        return [entry_id for entry_id, _ in self.query_with_scores(query, minimum_score)]

    # -------- binary codec --------

    def save(self, stream: BinaryStream) -> None:
        """Write ``entryCount`` then ``[id][vectorLen][floats]`` per entry."""
        stream.write_int32(len(self.entries))
        for entry in self.entries:
            stream.write_int32(entry.id)
            stream.write_int32(entry.data.shape[0])
            stream.write_raw(entry.data.astype("<f8").tobytes())

    @classmethod
    def load(cls, stream: BinaryStream, width: int) -> "SimilarityIndex":
        """
        Read an index written by :meth:`save`.

        Raises:
            CorruptError: if the stream is truncated or an entry's vector
                length differs from ``width``
        """
        index = cls(width)
        count = stream.read_length()
        for _ in range(count):
            entry_id = stream.read_int32()
            offset = stream.tell()
            length = stream.read_length()
            if length != width:
                raise CorruptError(
                    f"entry {entry_id} has vector length {length}, vocabulary has {width} terms",
                    path=stream.name,
                    offset=offset,
                )
            raw = stream.read_raw(8 * length)
            index.append(entry_id, np.frombuffer(raw, dtype="<f8"))
        logger.debug(f"Loaded similarity index with {count} entries of width {width}")
        return index.seal()

    # -------- internals --------

    def _stack(self) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        if not self.entries:
            return (np.zeros((0, self.width), dtype=np.float64),
                    np.zeros(0, dtype=np.float64))
        matrix = np.stack([entry.data for entry in self.entries]).astype(np.float64)
        norms = np.linalg.norm(matrix, axis=1)
        return matrix, norms
