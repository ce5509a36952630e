import os
import time

import pytest

from storage.temp_arena import TempArena
from utils.exceptions import ArenaClosedError, ArenaCreateError


def test_issue_returns_unique_uncreated_paths(tmp_path):
    arena = TempArena(str(tmp_path))
    handle = arena.open()

    paths = [arena.issue('chart_', '.png') for _ in range(50)]

    assert len(set(paths)) == 50
    assert all(p.parent == handle.directory for p in paths)
    assert all(p.name.startswith('chart_') and p.suffix == '.png' for p in paths)
    assert not any(p.exists() for p in paths)
    assert handle.issued == paths


def test_close_all_removes_files_and_directory(tmp_path):
    arena = TempArena(str(tmp_path))
    handle = arena.open()
    created = arena.issue('a_', '.png')
    created.write_bytes(b'x')
    arena.issue('never_written_', '.png')
    (handle.directory / 'stray.txt').write_text('left behind')

    arena.close_all()

    assert not created.exists()
    assert not handle.directory.exists()
    assert handle.closed


def test_close_all_is_idempotent(tmp_path):
    arena = TempArena(str(tmp_path))
    handle = arena.open()
    arena.issue('a_').write_bytes(b'1')

    arena.close_all()
    arena.close_all()

    assert not handle.directory.exists()
    assert list(tmp_path.iterdir()) == []


def test_close_without_open_is_noop(tmp_path):
    TempArena(str(tmp_path)).close_all()


def test_issue_after_close_fails(tmp_path):
    arena = TempArena(str(tmp_path))
    with pytest.raises(ArenaClosedError):
        arena.issue()
    arena.open()
    arena.close_all()
    with pytest.raises(ArenaClosedError):
        arena.issue()


def test_context_manager_cleans_up_on_error(tmp_path):
    with pytest.raises(RuntimeError):
        with TempArena(str(tmp_path)) as arena:
            arena.issue('x_').write_bytes(b'1')
            raise RuntimeError('boom')
    assert list(tmp_path.iterdir()) == []


def test_open_fails_when_root_is_a_file(tmp_path):
    root = tmp_path / 'not_a_dir'
    root.write_text('')
    with pytest.raises(ArenaCreateError):
        TempArena(str(root)).open()


def test_sweep_removes_only_expired_arenas(tmp_path):
    now = time.time()
    old = tmp_path / f'report_arena_{int(now - 90000)}_abc'
    fresh = tmp_path / f'report_arena_{int(now - 60)}_def'
    unrelated = tmp_path / 'other_dir'
    for d in (old, fresh, unrelated):
        d.mkdir()
    (old / 'chart.png').write_bytes(b'x')

    removed = TempArena(str(tmp_path), ttl_seconds=86400).sweep_stale(now=now)

    assert removed == [old]
    assert not old.exists()
    assert fresh.exists()
    assert unrelated.exists()


def test_sweep_falls_back_to_mtime(tmp_path):
    legacy = tmp_path / 'report_arena_legacy'
    legacy.mkdir()
    stale = time.time() - 200
    os.utime(legacy, (stale, stale))

    TempArena(str(tmp_path), ttl_seconds=100).sweep_stale()

    assert not legacy.exists()


def test_open_sweeps_before_creating(tmp_path):
    old = tmp_path / f'report_arena_{int(time.time() - 500)}_zzz'
    old.mkdir()

    arena = TempArena(str(tmp_path), ttl_seconds=100)
    handle = arena.open()

    assert not old.exists()
    assert handle.directory.exists()
    arena.close_all()
