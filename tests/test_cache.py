"""
Tests for the vocabulary cache manager.
"""

import logging
import zlib

import pytest

from cobot.core.binary_stream import BinaryStream
from cobot.core.cache import (
    CacheManager,
    build_matcher,
    compute_checksum,
    load_artifact,
    names_digest,
    save_artifact,
)
from cobot.core.errors import CorruptError, NotFoundError, StorageUnavailableError
from cobot.semantic.index import SimilarityIndex
from cobot.semantic.vocabulary import Vocabulary

from conftest import SCENARIO_CORPUS, action_yaml


@pytest.fixture
def cache_root(tmp_path):
    return tmp_path / "cache"


@pytest.fixture
def manager(fake_storage, cache_root):
    return CacheManager(fake_storage, cache_root, "english")


class TestArtifact:
    """save_artifact / load_artifact."""

    def test_round_trip(self, tmp_path):
        vocab, index = build_matcher(SCENARIO_CORPUS, "english")
        path = tmp_path / "english.vocabulary"
        save_artifact(path, vocab, index)

        loaded_vocab, loaded_index = load_artifact(path, "english")
        assert loaded_vocab == vocab
        assert loaded_index.ids() == [0, 1, 2]
        assert not path.with_name(path.name + ".tmp").exists()

    def test_rebuild_is_byte_identical(self, tmp_path):
        first = tmp_path / "first.vocabulary"
        second = tmp_path / "second.vocabulary"
        save_artifact(first, *build_matcher(SCENARIO_CORPUS, "english"))
        save_artifact(second, *build_matcher(SCENARIO_CORPUS, "english"))
        assert first.read_bytes() == second.read_bytes()

    def test_missing(self, tmp_path):
        with pytest.raises(NotFoundError):
            load_artifact(tmp_path / "nope.vocabulary", "english")

    def test_index_width_disagrees_with_vocabulary(self, tmp_path):
        vocab = Vocabulary.build(["alpha beta"], "english")
        index = SimilarityIndex(len(vocab) + 1)
        index.append(0, [1.0] * (len(vocab) + 1))

        path = tmp_path / "bad.vocabulary"
        with BinaryStream.open(path, "wb") as stream:
            vocab.save(stream)
            index.save(stream)

        with pytest.raises(CorruptError):
            load_artifact(path, "english")

    def test_save_rejects_width_mismatch(self, tmp_path):
        vocab = Vocabulary.build(["alpha beta"], "english")
        with pytest.raises(ValueError):
            save_artifact(tmp_path / "x.vocabulary", vocab, SimilarityIndex(1).seal())

    def test_truncated(self, tmp_path):
        path = tmp_path / "english.vocabulary"
        save_artifact(path, *build_matcher(SCENARIO_CORPUS, "english"))
        path.write_bytes(path.read_bytes()[:-5])
        with pytest.raises(CorruptError):
            load_artifact(path, "english")

    def test_trailing_bytes(self, tmp_path):
        path = tmp_path / "english.vocabulary"
        save_artifact(path, *build_matcher(SCENARIO_CORPUS, "english"))
        path.write_bytes(path.read_bytes() + b"\x00")
        with pytest.raises(CorruptError, match="trailing"):
            load_artifact(path, "english")


class TestLoadOrBuild:
    """Build-or-load against a clean catalog."""

    def test_first_call_builds_and_persists(self, manager, sample_entries):
        snapshot = manager.load_or_build(sample_entries)

        assert snapshot.from_cache is False
        assert snapshot.version == "v0.0.0"
        assert snapshot.action_names == ("restart-server", "shutdown", "list-processes")
        assert manager.artifact_path("v0.0.0").exists()
        assert manager.stats['misses'] == 1
        assert manager.stats['rebuilds'] == 1

    def test_second_call_hits(self, manager, sample_entries):
        first = manager.load_or_build(sample_entries)
        second = manager.load_or_build(sample_entries)

        assert second.from_cache is True
        assert second.vocabulary == first.vocabulary
        assert manager.stats['hits'] == 1

    def test_layout(self, manager, sample_entries, cache_root):
        manager.load_or_build(sample_entries)
        assert (cache_root / "v0.0.0" / "english.vocabulary").is_file()
        assert (cache_root / "v0.0.0" / "english.names").is_file()
        assert not (cache_root / "v0.0.0" / "actions.checksum").exists()

    def test_new_version_gets_new_generation(self, manager, fake_storage, sample_entries, cache_root):
        manager.load_or_build(sample_entries)
        fake_storage.version = "abc123"
        snapshot = manager.load_or_build(sample_entries)

        assert snapshot.from_cache is False
        assert (cache_root / "abc123" / "english.vocabulary").is_file()
        assert manager.get_statistics()['generations'] == ["abc123", "v0.0.0"]

    def test_ranking_from_snapshot(self, manager, sample_entries):
        snapshot = manager.load_or_build(sample_entries)
        ranked = snapshot.rank("reboot the box", 0.0)
        assert [name for name, _ in ranked] == ["restart-server", "shutdown", "list-processes"]

    def test_corrupt_artifact_is_rebuilt(self, manager, sample_entries):
        manager.load_or_build(sample_entries)
        artifact = manager.artifact_path("v0.0.0")
        artifact.write_bytes(artifact.read_bytes()[:10])

        snapshot = manager.load_or_build(sample_entries)
        assert snapshot.from_cache is False
        assert len(snapshot.index) == 3
        assert manager.stats['corrupt'] == 1
        load_artifact(artifact, "english")

    def test_entry_count_mismatch_is_rebuilt(self, manager, sample_entries):
        manager.load_or_build(sample_entries)
        snapshot = manager.load_or_build(sample_entries[:2])

        assert snapshot.from_cache is False
        assert len(snapshot.index) == 2
        assert snapshot.action_names == ("restart-server", "shutdown")

    def test_reordered_entries_are_rebuilt(self, manager, sample_entries):
        manager.load_or_build(sample_entries)
        snapshot = manager.load_or_build(list(reversed(sample_entries)))

        assert snapshot.from_cache is False
        assert snapshot.action_names == ("list-processes", "shutdown", "restart-server")
        assert snapshot.rank("restart the server", 0.5)[0][0] == "restart-server"
        assert manager.load_or_build(list(reversed(sample_entries))).from_cache is True

    def test_reordered_config_with_local_changes(self, manager, fake_storage, sample_entries):
        fake_storage.changed = ["agent-config.yaml"]
        manager.load_or_build(sample_entries)
        snapshot = manager.load_or_build(list(reversed(sample_entries)))

        assert snapshot.rank("restart the server", 0.5)[0][0] == "restart-server"

    def test_missing_names_record_is_rebuilt(self, manager, sample_entries):
        manager.load_or_build(sample_entries)
        manager.names_path("v0.0.0").unlink()

        assert manager.load_or_build(sample_entries).from_cache is False
        assert manager.read_names_digest("v0.0.0") == names_digest([n for n, _ in sample_entries])

    def test_empty_catalog(self, manager):
        snapshot = manager.load_or_build([])
        assert len(snapshot.vocabulary) == 0
        assert snapshot.rank("anything", 0.0) == []

    def test_disabled_cache_writes_nothing(self, fake_storage, cache_root, sample_entries):
        manager = CacheManager(fake_storage, cache_root, "english", enabled=False)
        snapshot = manager.load_or_build(sample_entries)
        assert len(snapshot.index) == 3
        assert not cache_root.exists()

    def test_unusable_cache_root(self, fake_storage, tmp_path, sample_entries):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        manager = CacheManager(fake_storage, blocker / "cache", "english")
        with pytest.raises(StorageUnavailableError):
            manager.load_or_build(sample_entries)


class TestLocalChanges:
    """Checksum record for uncommitted edits."""

    def test_missing_record_invalidates_once(self, manager, fake_storage, sample_entries):
        manager.load_or_build(sample_entries)
        fake_storage.changed = ["actions/shutdown.yaml"]

        assert manager.check_local_changes("v0.0.0", [n for n, _ in sample_entries]) is True
        assert manager.checksum_path("v0.0.0").exists()
        assert not manager.artifact_path("v0.0.0").exists()

        manager.load_or_build(sample_entries)
        assert manager.check_local_changes("v0.0.0", [n for n, _ in sample_entries]) is False
        assert manager.artifact_path("v0.0.0").exists()

    def test_record_holds_crc32_of_changed_files(self, manager, fake_storage, sample_entries):
        fake_storage.changed = ["actions/shutdown.yaml", "actions/restart-server.yaml"]
        manager.load_or_build(sample_entries)

        expected = zlib.crc32(
            fake_storage.files["actions/restart-server.yaml"]
            + fake_storage.files["actions/shutdown.yaml"]
        )
        with BinaryStream.open(manager.checksum_path("v0.0.0")) as stream:
            assert stream.read_int64() == expected

    def test_edit_invalidates(self, manager, fake_storage, sample_entries):
        fake_storage.changed = ["actions/shutdown.yaml"]
        manager.load_or_build(sample_entries)
        assert manager.load_or_build(sample_entries).from_cache is True

        fake_storage.files["actions/shutdown.yaml"] = action_yaml("shutdown", "power off the box")
        snapshot = manager.load_or_build(sample_entries)
        assert snapshot.from_cache is False
        assert manager.stats['invalidations'] == 1

    def test_unknown_changed_files_ignored(self, manager, fake_storage, sample_entries):
        fake_storage.changed = ["actions/shutdown.yaml"]
        manager.load_or_build(sample_entries)

        fake_storage.changed = ["actions/shutdown.yaml", "actions/disabled.yaml", "README.md"]
        fake_storage.files["actions/disabled.yaml"] = action_yaml("disabled", "not enabled")
        assert manager.load_or_build(sample_entries).from_cache is True

    def test_unreadable_record_is_rewritten(self, manager, fake_storage, sample_entries):
        fake_storage.changed = ["actions/shutdown.yaml"]
        manager.load_or_build(sample_entries)
        manager.checksum_path("v0.0.0").write_bytes(b"\x01\x02")

        assert manager.load_or_build(sample_entries).from_cache is False
        assert manager.load_or_build(sample_entries).from_cache is True
        assert manager.read_checksum("v0.0.0") is not None

    def test_reverted_changes_invalidate(self, manager, fake_storage, sample_entries):
        fake_storage.changed = ["actions/shutdown.yaml"]
        manager.load_or_build(sample_entries)

        fake_storage.changed = []
        snapshot = manager.load_or_build(sample_entries)
        assert snapshot.from_cache is False
        assert not manager.checksum_path("v0.0.0").exists()
        assert manager.load_or_build(sample_entries).from_cache is True

    def test_deleted_changed_file(self, manager, fake_storage, sample_entries):
        del fake_storage.files["actions/shutdown.yaml"]
        fake_storage.changed = ["actions/shutdown.yaml"]
        manager.load_or_build(sample_entries)
        assert manager.read_checksum("v0.0.0") == compute_checksum([])


class TestMaintenance:

    def test_invalidate(self, manager, sample_entries):
        manager.load_or_build(sample_entries)
        assert manager.invalidate() is True
        assert manager.invalidate() is False
        assert not manager.artifact_path("v0.0.0").exists()

    def test_clear(self, manager, sample_entries, cache_root):
        manager.load_or_build(sample_entries)
        manager.clear()
        assert not cache_root.exists()
        manager.clear()

    def test_statistics(self, manager, sample_entries):
        manager.load_or_build(sample_entries)
        manager.load_or_build(sample_entries)

        stats = manager.get_statistics()
        assert stats['hits'] == 1
        assert stats['misses'] == 1
        assert stats['hit_rate'] == 0.5
        assert stats['cache_size_kb'] > 0
        assert stats['generations'] == ["v0.0.0"]

    def test_statistics_without_cache(self, manager):
        stats = manager.get_statistics()
        assert stats['cache_size_kb'] == 0.0
        assert stats['hit_rate'] == 0.0

    def test_rebuild_and_invalidate_are_logged(self, manager, sample_entries, caplog):
        caplog.set_level(logging.INFO, logger="cobot")
        manager.load_or_build(sample_entries)
        manager.invalidate()

        operations = [r for r in caplog.records if hasattr(r, "operation")]
        assert [r.operation for r in operations] == ["rebuild", "invalidate"]
        assert operations[0].extra_fields == {"version": "v0.0.0", "language": "english", "actions": 3}
        assert operations[1].extra_fields == {"version": "v0.0.0", "language": "english"}
