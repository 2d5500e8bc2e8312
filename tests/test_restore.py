from __future__ import annotations

import json
import os

import pytest

from steadyhost.core.errors import JournalNotFound, JournalParseError
from steadyhost.core.manifest.models import AppendRestore, CopyRestore, MergeIniRestore, MergeJsonRestore
from steadyhost.core.restore.engine import RestoreEngine
from steadyhost.core.restore.fsops import relative_backup_path
from steadyhost.core.restore.journal import find_journal, list_journals, read_journal
from steadyhost.core.restore.merge import deep_merge
from steadyhost.core.restore.models import EntryAction
from steadyhost.core.restore.revert import DELETED, NOOP, NOT_REVERTIBLE, RESTORED_BACKUP, revert_journal
from steadyhost.core.restore.sensitivity import SensitivePathPolicy

from .helpers.fakes import FakeInUseProbe
from .helpers.manifests import read_text, write_json, write_text


def _engine(state_paths, *, sensitive=(), busy=()):
    return RestoreEngine(paths=state_paths, sensitive=SensitivePathPolicy(sensitive), in_use=FakeInUseProbe(busy))


def _copy(src, dst, **kw):
    return CopyRestore(source=str(src), target=str(dst), **kw)


# ---- copy ----
def test_existing_target_is_skipped_by_default(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "a.cfg"), "new")
    dst = write_text(str(tmp_path / "dst" / "a.cfg"), "old")
    j = _engine(state_paths).run([_copy(src, dst)], run_id="r1")
    e = j.entries[0]
    assert e.action == EntryAction.skipped_exists
    assert e.backup_created is False
    assert read_text(dst) == "old"


def test_backup_and_overwrite(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "a.cfg"), "new")
    dst = write_text(str(tmp_path / "dst" / "a.cfg"), "old")
    j = _engine(state_paths).run([_copy(src, dst, onConflict="backup-and-overwrite")], run_id="r1")
    e = j.entries[0]
    assert e.action == EntryAction.restored
    assert e.target_existed_before is True
    assert e.backup_created is True
    expected = os.path.abspath(os.path.join(state_paths.run_backup_dir("r1"), relative_backup_path(os.path.abspath(dst))))
    assert e.backup_path == expected
    assert read_text(e.backup_path) == "old"
    assert read_text(dst) == "new"


def test_overwrite_without_backup(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "a.cfg"), "new")
    dst = write_text(str(tmp_path / "dst" / "a.cfg"), "old")
    e = _engine(state_paths).run([_copy(src, dst, onConflict="overwrite")], run_id="r1").entries[0]
    assert e.action == EntryAction.restored
    assert e.backup_created is False
    assert read_text(dst) == "new"


def test_directory_copy_does_not_nest(tmp_path, state_paths):
    write_text(str(tmp_path / "src" / "dir" / "one.txt"), "1")
    write_text(str(tmp_path / "dst" / "dir" / "stale.txt"), "x")
    src, dst = tmp_path / "src" / "dir", tmp_path / "dst" / "dir"
    _engine(state_paths).run([_copy(src, dst, onConflict="overwrite")], run_id="r1")
    assert sorted(os.listdir(dst)) == ["one.txt"]
    assert not (dst / "dir").exists()


def test_relative_source_resolves_against_manifest_dir_or_export_root(tmp_path, state_paths):
    write_text(str(tmp_path / "m" / "files" / "a.txt"), "from-manifest")
    write_text(str(tmp_path / "export" / "files" / "a.txt"), "from-export")
    dst1, dst2 = tmp_path / "o1.txt", tmp_path / "o2.txt"
    _engine(state_paths).run([_copy("files/a.txt", dst1)], run_id="r1", manifest_dir=str(tmp_path / "m"))
    _engine(state_paths).run(
        [_copy("files/a.txt", dst2)], run_id="r2", manifest_dir=str(tmp_path / "m"), export_root=str(tmp_path / "export")
    )
    assert read_text(str(dst1)) == "from-manifest"
    assert read_text(str(dst2)) == "from-export"


def test_missing_source_optional_vs_required(tmp_path, state_paths):
    j = _engine(state_paths).run(
        [_copy(tmp_path / "nope", tmp_path / "a", optional=True), _copy(tmp_path / "nope", tmp_path / "b")],
        run_id="r1",
    )
    assert j.entries[0].action == EntryAction.skipped_missing_source
    assert j.entries[1].action == EntryAction.failed
    assert j.entries[1].error.startswith("REQUIRED_SOURCE_NOT_FOUND")
    assert j.failed == 1


def test_one_failure_does_not_stop_the_rest(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "ok.txt"), "ok")
    j = _engine(state_paths).run([_copy(tmp_path / "nope", tmp_path / "a"), _copy(src, tmp_path / "b.txt")], run_id="r1")
    assert [e.action for e in j.entries] == [EntryAction.failed, EntryAction.restored]


# ---- safety ----
def test_sensitive_target_blocked_unless_warn_only(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "k"), "key")
    secrets = tmp_path / "secrets"
    j = _engine(state_paths, sensitive=[str(secrets)]).run(
        [_copy(src, secrets / "id_rsa"), _copy(src, secrets / "other", restorer="warn-only")],
        run_id="r1",
    )
    assert j.entries[0].action == EntryAction.skipped_sensitive
    assert not (secrets / "id_rsa").exists()
    assert j.entries[1].action == EntryAction.restored
    assert j.entries[1].warnings


def test_high_sensitivity_module_with_block_restorer(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "k"), "key")
    j = _engine(state_paths).run(
        [
            _copy(src, tmp_path / "a", sensitivity="high", restorer="block"),
            _copy(src, tmp_path / "b", sensitivity="high"),
        ],
        run_id="r1",
    )
    assert j.entries[0].action == EntryAction.skipped_sensitive
    assert j.entries[1].action == EntryAction.restored
    assert j.entries[1].warnings


def test_unexpanded_variables_in_deny_list_are_ignored():
    policy = SensitivePathPolicy(["%NO_SUCH_VAR_FOR_TESTS%\\secrets", "$NO_SUCH_VAR_FOR_TESTS/keys"])
    assert policy.patterns == []


def test_target_in_use_is_skipped(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "a"), "new")
    dst = write_text(str(tmp_path / "dst" / "a"), "old")
    j = _engine(state_paths, busy=[dst]).run([_copy(src, dst, onConflict="overwrite")], run_id="r1")
    assert j.entries[0].action == EntryAction.skipped_in_use
    assert read_text(dst) == "old"


def test_dry_run_changes_nothing(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "a"), "new")
    dst = write_text(str(tmp_path / "dst" / "a"), "old")
    created = tmp_path / "dst" / "b"
    j = _engine(state_paths).run(
        [_copy(src, dst, onConflict="backup-and-overwrite"), _copy(src, created)], run_id="r1", dry_run=True
    )
    assert [e.action for e in j.entries] == [EntryAction.restored, EntryAction.restored]
    assert j.entries[0].backup_path is not None
    assert j.entries[0].backup_created is False
    assert read_text(dst) == "old"
    assert not created.exists()
    assert list_journals(state_paths) == []


# ---- merge / append ----
def test_deep_merge_source_wins_and_arrays_replace():
    out = deep_merge({"a": {"x": 1, "y": 2}, "l": [1, 2]}, {"a": {"y": 3}, "l": [9]})
    assert out == {"a": {"x": 1, "y": 3}, "l": [9]}


def test_merge_json_is_idempotent(tmp_path, state_paths):
    src = write_json(str(tmp_path / "src" / "s.json"), {"editor": {"fontSize": 14}})
    dst = write_text(str(tmp_path / "dst" / "s.json"), '{\n  // user\n  "editor": {"tabSize": 2},\n}\n')
    entry = MergeJsonRestore(source=src, target=dst)
    j1 = _engine(state_paths).run([entry], run_id="r1")
    first = read_text(dst)
    _engine(state_paths).run([entry], run_id="r2")
    assert json.loads(first) == {"editor": {"tabSize": 2, "fontSize": 14}}
    assert read_text(dst) == first
    assert j1.entries[0].backup_created is True


def test_merge_ini(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "s.ini"), "[core]\neditor = vim\n")
    dst = write_text(str(tmp_path / "dst" / "s.ini"), "[core]\nautocrlf = false\n[user]\nName = me\n")
    _engine(state_paths).run([MergeIniRestore(source=src, target=dst)], run_id="r1")
    text = read_text(dst)
    assert "editor = vim" in text
    assert "autocrlf = false" in text
    assert "Name = me" in text


def test_append_is_idempotent(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "rc"), "alias ll='ls -l'\n")
    dst = write_text(str(tmp_path / "dst" / "rc"), "export A=1\n")
    entry = AppendRestore(source=src, target=dst, backup=False)
    j1 = _engine(state_paths).run([entry], run_id="r1")
    j2 = _engine(state_paths).run([entry], run_id="r2")
    assert j1.entries[0].action == EntryAction.restored
    assert j2.entries[0].action == EntryAction.skipped_exists
    assert read_text(dst).count("alias ll") == 1


# ---- journals ----
def test_journal_is_persisted(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "a"), "x")
    _engine(state_paths).run([_copy(src, tmp_path / "out")], run_id="r1", manifest_path="m.json")
    j = read_journal(state_paths.journal_path("r1"))
    assert j.run_id == "r1"
    assert j.counts()["restored"] == 1
    raw = json.loads(read_text(state_paths.journal_path("r1")))
    assert raw["entries"][0]["targetExistedBefore"] is False


def test_find_journal_by_id_path_and_latest(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "a"), "x")
    _engine(state_paths).run([_copy(src, tmp_path / "o1")], run_id="r1")
    _engine(state_paths).run([_copy(src, tmp_path / "o2")], run_id="r2")
    os.utime(state_paths.journal_path("r1"), (1_000_000_000, 1_000_000_000))
    assert find_journal(state_paths, "r1") == state_paths.journal_path("r1")
    assert find_journal(state_paths, None) == state_paths.journal_path("r2")
    assert find_journal(state_paths, state_paths.journal_path("r1")) == os.path.abspath(state_paths.journal_path("r1"))
    with pytest.raises(JournalNotFound):
        find_journal(state_paths, "r9")


def test_bad_journal_is_parse_error(tmp_path):
    bad = write_text(str(tmp_path / "j.json"), "{oops")
    with pytest.raises(JournalParseError):
        read_journal(bad)


def test_no_journals_is_not_found(state_paths):
    with pytest.raises(JournalNotFound):
        find_journal(state_paths, None)


# ---- revert ----
def test_revert_restores_backup_and_deletes_created(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "a"), "new")
    existing = write_text(str(tmp_path / "dst" / "a"), "old")
    created = tmp_path / "dst" / "fresh"
    j = _engine(state_paths).run(
        [_copy(src, existing, onConflict="backup-and-overwrite"), _copy(src, created)], run_id="r1"
    )
    result = revert_journal(j)
    assert [e.action for e in result.entries] == [DELETED, RESTORED_BACKUP]
    assert read_text(existing) == "old"
    assert not created.exists()
    assert result.ok

    again = revert_journal(j)
    assert [e.action for e in again.entries] == [NOOP, RESTORED_BACKUP]
    assert read_text(existing) == "old"


def test_revert_skipped_entries_are_noops(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "a"), "new")
    dst = write_text(str(tmp_path / "dst" / "a"), "old")
    j = _engine(state_paths).run([_copy(src, dst)], run_id="r1")
    result = revert_journal(j)
    assert result.entries[0].action == NOOP
    assert read_text(dst) == "old"


def test_overwrite_without_backup_is_not_revertible(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "a"), "new")
    dst = write_text(str(tmp_path / "dst" / "a"), "old")
    j = _engine(state_paths).run([_copy(src, dst, onConflict="overwrite")], run_id="r1")
    result = revert_journal(j)
    assert result.entries[0].action == NOT_REVERTIBLE
    assert result.ok is False
    assert read_text(dst) == "new"


def test_revert_dry_run_changes_nothing(tmp_path, state_paths):
    src = write_text(str(tmp_path / "src" / "a"), "new")
    created = tmp_path / "dst" / "fresh"
    j = _engine(state_paths).run([_copy(src, created)], run_id="r1")
    result = revert_journal(j, dry_run=True)
    assert result.entries[0].action == DELETED
    assert created.exists()


def test_second_write_to_same_target_keeps_the_original_backup(tmp_path, state_paths):
    a = write_json(str(tmp_path / "src" / "a.json"), {"a": 1})
    b = write_json(str(tmp_path / "src" / "b.json"), {"b": 2})
    dst = write_json(str(tmp_path / "cfg" / "settings.json"), {"original": True})
    j = _engine(state_paths).run(
        [_copy(a, dst, onConflict="backup-and-overwrite"), MergeJsonRestore(source=b, target=dst)], run_id="r1"
    )
    assert [e.action for e in j.entries] == [EntryAction.restored, EntryAction.restored]
    assert j.entries[0].backup_path == j.entries[1].backup_path
    assert json.loads(read_text(j.entries[0].backup_path)) == {"original": True}
    assert json.loads(read_text(dst)) == {"a": 1, "b": 2}

    result = revert_journal(j)
    assert [e.action for e in result.entries] == [RESTORED_BACKUP, RESTORED_BACKUP]
    assert json.loads(read_text(dst)) == {"original": True}


def test_failed_directory_copy_leaves_target_in_place(tmp_path, state_paths, monkeypatch):
    write_text(str(tmp_path / "src" / "cfgdir" / "new.txt"), "new")
    write_text(str(tmp_path / "dst" / "cfgdir" / "user.txt"), "mine")
    src, dst = tmp_path / "src" / "cfgdir", tmp_path / "dst" / "cfgdir"

    def out_of_space(*a, **kw):
        raise OSError("disk full")

    monkeypatch.setattr("shutil.copytree", out_of_space)
    e = _engine(state_paths).run([_copy(src, dst, onConflict="overwrite")], run_id="r1").entries[0]
    assert e.action == EntryAction.failed
    assert "disk full" in e.error
    assert read_text(str(dst / "user.txt")) == "mine"
    assert os.listdir(tmp_path / "dst") == ["cfgdir"]


def test_revert_puts_back_backup_of_failed_entry(tmp_path, state_paths, monkeypatch):
    src = write_json(str(tmp_path / "src" / "b.json"), {"b": 2})
    dst = write_json(str(tmp_path / "cfg" / "settings.json"), {"original": True})

    def half_written(source, target):
        write_text(target, "{ trunc")
        raise OSError("device went away")

    monkeypatch.setattr("steadyhost.core.restore.engine.merge_json", half_written)
    j = _engine(state_paths).run([MergeJsonRestore(source=src, target=dst)], run_id="r1")
    e = j.entries[0]
    assert e.action == EntryAction.failed
    assert e.backup_created is True

    result = revert_journal(j)
    assert result.entries[0].action == RESTORED_BACKUP
    assert json.loads(read_text(dst)) == {"original": True}
