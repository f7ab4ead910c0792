"""
Tests for the JSON repository (master / mirror / legacy load, anti-wipe protection, backups)
"""

import json
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hemo_scheduler.errors import InvalidBackupError
from hemo_scheduler.models import DayGroup, Patient, create_empty_schedule
from hemo_scheduler.persistence import (
    SOURCE_EMPTY,
    SOURCE_LEGACY,
    SOURCE_MASTER,
    SOURCE_MIRROR,
    JsonScheduleRepository,
    ProtectionPolicy,
    SnapshotSummary,
    backup_filename,
    parse_backup,
    read_backup,
    write_backup,
)


@pytest.fixture
def populated():
    return create_empty_schedule().with_slot(DayGroup.MWF, "01", 1, Patient(
        id="p1", name="MARIA", specific_days=("SEG", "QUA", "SEX")))


@pytest.fixture
def repo(tmp_path):
    return JsonScheduleRepository(tmp_path / "data")


class TestProtectionPolicy:

    def test_blocks_wipe_of_non_empty(self):
        decision = ProtectionPolicy().evaluate(SnapshotSummary(5), SnapshotSummary(0))
        assert not decision.allowed
        assert "5 registros" in decision.reason

    def test_blocks_even_single_record(self):
        assert not ProtectionPolicy().evaluate(SnapshotSummary(1), SnapshotSummary(0)).allowed

    def test_explicit_reset_allowed(self):
        assert ProtectionPolicy().evaluate(SnapshotSummary(5), SnapshotSummary(0), allow_empty=True).allowed

    @pytest.mark.parametrize("previous,nxt", [(None, 0), (0, 0), (5, 3), (0, 4)])
    def test_other_transitions_allowed(self, previous, nxt):
        prev = SnapshotSummary(previous) if previous is not None else None
        assert ProtectionPolicy().evaluate(prev, SnapshotSummary(nxt)).allowed


class TestRepository:

    def test_new_store_is_empty(self, repo):
        data, source = repo.load()
        assert source == SOURCE_EMPTY
        assert data.is_empty()

    def test_save_and_load(self, repo, populated):
        assert repo.save(populated).success
        data, source = repo.load()
        assert source == SOURCE_MASTER
        assert data == populated

    def test_meta_written(self, repo, populated):
        repo.save(populated)
        meta = repo.meta()
        assert meta["record_count"] == 1
        assert meta["version"] == "10.0"
        assert "last_saved" in meta

    def test_empty_save_is_protected(self, repo, populated):
        repo.save(populated)
        result = repo.save(create_empty_schedule())
        assert not result.success
        assert result.protected
        assert "Proteção" in result.error
        data, _ = repo.load()
        assert data.record_count() == 1

    def test_allow_empty_overwrite(self, repo, populated):
        repo.save(populated)
        assert repo.save(create_empty_schedule(), allow_empty_overwrite=True).success
        data, _ = repo.load()
        assert data.is_empty()

    def test_shadow_keeps_last_non_empty(self, repo, populated):
        repo.save(populated)
        repo.save(create_empty_schedule(), allow_empty_overwrite=True)
        shadow = json.loads(repo.shadow_path.read_text(encoding="utf-8"))
        assert shadow["SEG/QUA/SEX"][0]["turn1"]["name"] == "MARIA"

    def test_mirror_repairs_corrupt_master(self, repo, populated):
        repo.save(populated)
        repo.master_path.write_text("{not json", encoding="utf-8")
        data, source = repo.load()
        assert source == SOURCE_MIRROR
        assert data == populated
        # master rewritten from the mirror
        _, source = repo.load()
        assert source == SOURCE_MASTER

    def test_corrupt_master_does_not_block_save(self, repo):
        repo.store_dir.mkdir(parents=True)
        repo.master_path.write_text("garbage", encoding="utf-8")
        assert repo.save(create_empty_schedule()).success

    def test_legacy_migration(self, tmp_path, populated):
        legacy = tmp_path / "old_master.json"
        legacy.write_text(json.dumps(populated.to_dict()), encoding="utf-8")
        repo = JsonScheduleRepository(tmp_path / "data", legacy_paths=[tmp_path / "missing.json", legacy])
        data, source = repo.load()
        assert source == SOURCE_LEGACY
        assert data == populated
        assert repo.master_path.exists()
        assert repo.mirror_path.exists()

    def test_empty_legacy_ignored(self, tmp_path):
        legacy = tmp_path / "old.json"
        legacy.write_text(json.dumps(create_empty_schedule().to_dict()), encoding="utf-8")
        repo = JsonScheduleRepository(tmp_path / "data", legacy_paths=[legacy])
        assert repo.load()[1] == SOURCE_EMPTY

    def test_wipe(self, repo, populated):
        repo.save(populated)
        assert repo.wipe().is_empty()
        data, source = repo.load()
        assert source == SOURCE_MASTER
        assert data.is_empty()


class TestBackups:

    def test_filename(self):
        assert backup_filename(datetime(2026, 3, 2, 14, 5, 9)) == "HEMO_BACKUP_2026-03-02_14-05-09.json"

    def test_write_and_read(self, tmp_path, populated):
        path = write_backup(populated, tmp_path, now=datetime(2026, 3, 2, 14, 5, 9))
        assert path.name == "HEMO_BACKUP_2026-03-02_14-05-09.json"
        assert read_backup(path) == populated

    def test_corrupt_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{oops", encoding="utf-8")
        with pytest.raises(InvalidBackupError):
            read_backup(path)

    def test_json_without_groups(self):
        with pytest.raises(InvalidBackupError):
            parse_backup({"patients": []})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_backup(tmp_path / "nope.json")
