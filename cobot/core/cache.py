"""
Cache management for the vocabulary and similarity index.

Building the matcher means reading every action definition, so the result is
persisted as one binary artifact per catalog version and language::

    <cache_root>/<version>/<language>.vocabulary    vocabulary + index
    <cache_root>/<version>/actions.checksum         int64 CRC32 record
    <cache_root>/<version>/<language>.names         int64 CRC32 of entry order

A new catalog version gets a new directory.  Uncommitted edits to action
files inside the same version are caught by the checksum record.  Index
entry ids are positions in the catalog, so an artifact is only reused when
the ordered action names it was built for are unchanged.
"""

import logging
import os
import shutil
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..catalog.actions import action_name_from_path, action_path
from ..catalog.storage import ACTIONS_GLOB, Storage
from ..semantic.index import SimilarityIndex
from ..semantic.vocabulary import Vocabulary
from ..utils.logging_setup import log_operation
from .binary_stream import BinaryStream
from .errors import CorruptError, NotFoundError, StorageUnavailableError

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".vocabulary"
CHECKSUM_FILE = "actions.checksum"
NAMES_SUFFIX = ".names"


@dataclass(frozen=True)
class MatcherSnapshot:
    """
    Loaded vocabulary and index for one catalog generation.

    Immutable; a rebuild produces a new snapshot instead of changing this one.
    """
    version: str
    language: str
    vocabulary: Vocabulary
    index: SimilarityIndex
    action_names: Tuple[str, ...]
    from_cache: bool = False

    def rank(self, text: str, minimum_score: float) -> List[Tuple[str, float]]:
        """Return ``(action name, score)`` pairs at or above ``minimum_score``."""
        query = self.vocabulary.encode(self.vocabulary.tokenize(text))
        return [(self.action_names[entry_id], score)
                for entry_id, score in self.index.query_with_scores(query, minimum_score)]


# ----------------------------
# Build and (de)serialize
# ----------------------------

def build_matcher(descriptions: Sequence[str], language: str) -> Tuple[Vocabulary, SimilarityIndex]:
    """Build a vocabulary over all descriptions and one vector per description."""
    vocabulary = Vocabulary.build(descriptions, language)
    index = SimilarityIndex(len(vocabulary))
    for entry_id, description in enumerate(descriptions):
        index.append(entry_id, vocabulary.encode(vocabulary.tokenize(description)))
    return vocabulary, index.seal()


def save_artifact(path: Path, vocabulary: Vocabulary, index: SimilarityIndex) -> None:
    """
    Write vocabulary then index to ``path``.

    The file is written next to its final name and moved into place, so a
    reader never sees a half-written artifact.
    """
    if index.width != len(vocabulary):
        raise ValueError(
            f"index width {index.width} does not match vocabulary size {len(vocabulary)}"
        )
    tmp = path.with_name(path.name + ".tmp")
    try:
        with BinaryStream.open(tmp, "wb") as stream:
            vocabulary.save(stream)
            index.save(stream)
        os.replace(tmp, path)
    except OSError as e:
        raise StorageUnavailableError(
            f"cannot write cache artifact: {e}", operation='write', path=str(path)
        ) from e


def load_artifact(path: Path, language: str) -> Tuple[Vocabulary, SimilarityIndex]:
    """
    Read an artifact written by :func:`save_artifact`.

    Raises:
        NotFoundError: the artifact does not exist
        CorruptError: truncated data, bad lengths or trailing bytes
        StorageUnavailableError: the file exists but cannot be opened
    """
    try:
        stream = BinaryStream.open(path, "rb")
    except FileNotFoundError as e:
        raise NotFoundError(f"cache artifact not found: {path}", path=str(path)) from e
    except OSError as e:
        raise StorageUnavailableError(
            f"cannot open cache artifact: {e}", operation='read', path=str(path)
        ) from e

    with stream:
        vocabulary = Vocabulary.load(stream, language)
        index = SimilarityIndex.load(stream, len(vocabulary))
        if stream.fp.read(1):
            raise CorruptError("trailing data after similarity index", path=str(path), offset=stream.tell())
    return vocabulary, index


def compute_checksum(chunks: Sequence[bytes]) -> int:
    """CRC32 over the concatenation of ``chunks``."""
    crc = 0
    for chunk in chunks:
        crc = zlib.crc32(chunk, crc)
    return crc & 0xFFFFFFFF


def names_digest(names: Sequence[str]) -> int:
    """CRC32 of the ordered entry names an index was built for."""
    return compute_checksum(["\n".join(names).encode("utf-8")])


class CacheManager:
    """
    Keeps a valid (vocabulary, index) pair for the active catalog version.

    Per generation the artifact goes ABSENT -> BUILDING -> PERSISTED, and back
    through STALE -> BUILDING when the checksum of locally changed actions
    moves.  Artifacts are replaced wholesale, never patched.
    """

    def __init__(self, storage: Storage, cache_root: Path, language: str, enabled: bool = True):
        """
        Initialize cache manager.

        Args:
            storage: Catalog storage (version oracle and action files)
            cache_root: Directory holding one sub-directory per catalog version
            language: Language tag of the vocabulary
            enabled: When False, every call builds in memory and nothing is written
        """
        self.storage = storage
        self.cache_root = Path(cache_root)
        self.language = language
        self.enabled = enabled

        self.stats = {
            'hits': 0,
            'misses': 0,
            'rebuilds': 0,
            'invalidations': 0,
            'corrupt': 0,
        }

    # -------- paths --------

    def generation_dir(self, version: str) -> Path:
        return self.cache_root / version

    def artifact_path(self, version: str) -> Path:
        return self.generation_dir(version) / f"{self.language}{ARTIFACT_SUFFIX}"

    def checksum_path(self, version: str) -> Path:
        return self.generation_dir(version) / CHECKSUM_FILE

    def names_path(self, version: str) -> Path:
        return self.generation_dir(version) / f"{self.language}{NAMES_SUFFIX}"

    # -------- int64 records --------

    def _read_record(self, path: Path) -> Optional[int]:
        if not path.exists():
            return None
        try:
            with BinaryStream.open(path, "rb") as stream:
                return stream.read_int64()
        except CorruptError:
            logger.warning(f"Cache record {path} is unreadable, replacing it")
            return None
        except OSError as e:
            raise StorageUnavailableError(
                f"cannot read cache record: {e}", operation='read', path=str(path)
            ) from e

    def _write_record(self, path: Path, value: int) -> None:
        tmp = path.with_name(path.name + ".tmp")
        try:
            with BinaryStream.open(tmp, "wb") as stream:
                stream.write_int64(value)
            os.replace(tmp, path)
        except OSError as e:
            raise StorageUnavailableError(
                f"cannot write cache record: {e}", operation='write', path=str(path)
            ) from e

    def read_names_digest(self, version: str) -> Optional[int]:
        return self._read_record(self.names_path(version))

    # -------- checksum record --------

    def changed_entries(self, names: Sequence[str]) -> List[str]:
        """Return known entry names whose action file has local changes, in catalog order."""
        changed = {action_name_from_path(path) for path in self.storage.list_changed(ACTIONS_GLOB)}
        return [name for name in names if name in changed]

    def entries_checksum(self, names: Sequence[str]) -> int:
        chunks = []
        for name in names:
            try:
                chunks.append(self.storage.read_bytes(action_path(name)))
            except NotFoundError:
                logger.debug(f"Changed action '{name}' no longer exists, left out of checksum")
        return compute_checksum(chunks)

    def read_checksum(self, version: str) -> Optional[int]:
        return self._read_record(self.checksum_path(version))

    def write_checksum(self, version: str, value: int) -> None:
        self._write_record(self.checksum_path(version), value)

    def check_local_changes(self, version: str, names: Sequence[str]) -> bool:
        """
        Compare the checksum of locally changed entries with the stored record.

        The record is rewritten in the same pass that deletes a stale artifact,
        so an unchanged working tree does not invalidate again on the next run.

        Returns:
            True if the generation's artifact was invalidated
        """
        if not self.storage.has_uncommitted_changes():
            # A record without local changes means the artifact was built from
            # edits that have since been committed away or reverted
            if self.checksum_path(version).exists():
                logger.info("Local changes are gone, invalidating cache built from them")
                self._remove(self.checksum_path(version))
                self.invalidate(version)
                return True
            return False

        current = self.entries_checksum(self.changed_entries(names))
        previous = self.read_checksum(version)

        if previous is None:
            logger.info("Creating checksum file")
            stale = True
        else:
            logger.debug("Loaded cached checksum")
            stale = previous != current

        if stale:
            logger.info("Local changes detected, invalidating cache")
            self.write_checksum(version, current)
            self.invalidate(version)
        return stale

    # -------- main entry point --------

    def load_or_build(self, entries: Sequence[Tuple[str, str]]) -> MatcherSnapshot:
        """
        Return a snapshot for the current catalog version, building it if needed.

        Args:
            entries: ``(name, description)`` pairs in catalog order

        Raises:
            StorageUnavailableError: cache directory or artifact stream unusable
        """
        names = tuple(name for name, _ in entries)
        descriptions = [description for _, description in entries]
        version = self.storage.current_version_id()

        if not self.enabled:
            vocabulary, index = build_matcher(descriptions, self.language)
            self.stats['rebuilds'] += 1
            return MatcherSnapshot(version, self.language, vocabulary, index, names)

        generation = self.generation_dir(version)
        try:
            generation.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(
                f"cannot create cache folder: {e}", operation='mkdir', path=str(generation)
            ) from e

        self.check_local_changes(version, names)

        digest = names_digest(names)
        artifact = self.artifact_path(version)
        if artifact.exists():
            logger.info("Loading cached vocabulary from cache folder")
            try:
                vocabulary, index = load_artifact(artifact, self.language)
            except CorruptError as e:
                logger.warning(f"Cache artifact is corrupt ({e.message}), rebuilding")
                self.stats['corrupt'] += 1
                self._remove(artifact)
            else:
                if len(index) != len(names):
                    logger.warning(
                        f"Cache artifact has {len(index)} entries, catalog has {len(names)}, rebuilding"
                    )
                    self._remove(artifact)
                elif self.read_names_digest(version) != digest:
                    logger.warning("Catalog entries changed order since the cache was built, rebuilding")
                    self._remove(artifact)
                else:
                    self.stats['hits'] += 1
                    return MatcherSnapshot(version, self.language, vocabulary, index, names,
                                           from_cache=True)

        self.stats['misses'] += 1
        log_operation(logger, "rebuild", version=version, language=self.language, actions=len(names))
        logger.info(f"Creating vocabulary from {len(descriptions)} action descriptions")
        vocabulary, index = build_matcher(descriptions, self.language)
        save_artifact(artifact, vocabulary, index)
        self._write_record(self.names_path(version), digest)
        self.stats['rebuilds'] += 1
        logger.debug(f"Saved cache artifact {artifact} ({len(vocabulary)} terms)")
        return MatcherSnapshot(version, self.language, vocabulary, index, names)

    # -------- maintenance --------

    def invalidate(self, version: Optional[str] = None) -> bool:
        """Delete the artifact of ``version`` (default: current version)."""
        version = version or self.storage.current_version_id()
        removed = self._remove(self.artifact_path(version))
        if removed:
            self.stats['invalidations'] += 1
            log_operation(logger, "invalidate", version=version, language=self.language)
        return removed

    def clear(self) -> None:
        """Delete every cached generation."""
        if self.cache_root.exists():
            try:
                shutil.rmtree(self.cache_root)
                logger.info(f"Cleared cache directory: {self.cache_root}")
            except OSError as e:
                raise StorageUnavailableError(
                    f"cannot clear cache: {e}", operation='clear', path=str(self.cache_root)
                ) from e

    def get_statistics(self) -> Dict[str, Any]:
        """Get cache statistics."""
        stats: Dict[str, Any] = dict(self.stats)

        lookups = self.stats['hits'] + self.stats['misses']
        stats['hit_rate'] = self.stats['hits'] / lookups if lookups else 0.0

        if self.cache_root.exists():
            size = sum(f.stat().st_size for f in self.cache_root.rglob('*') if f.is_file())
            stats['cache_size_kb'] = size / 1024
            stats['generations'] = sorted(p.name for p in self.cache_root.iterdir() if p.is_dir())
        else:
            stats['cache_size_kb'] = 0.0
            stats['generations'] = []

        return stats

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Error removing cache file {path}: {e}")
            return False
