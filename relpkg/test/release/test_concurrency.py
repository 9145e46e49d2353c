from __future__ import annotations

import json
from pathlib import Path

from relpkg.core.result import Err, Ok
from relpkg.output.console import MockConsole
from relpkg.release.concurrency import acquire_group, group_lock_path


def test_acquire_writes_owner(tmp_path: Path) -> None:
    result = acquire_group(
        state_dir=tmp_path, group="release-workflow", run_id="r1", console=MockConsole()
    )
    assert isinstance(result, Ok)
    lease = result.value
    data = json.loads(group_lock_path(state_dir=tmp_path, group="release-workflow").read_text())
    assert data["run_id"] == "r1"
    assert data["group"] == "release-workflow"
    assert lease.still_owner()


def test_newer_run_takes_over(tmp_path: Path) -> None:
    console = MockConsole()
    old = acquire_group(state_dir=tmp_path, group="g", run_id="old", console=console)
    new = acquire_group(state_dir=tmp_path, group="g", run_id="new", console=console)
    assert isinstance(old, Ok) and isinstance(new, Ok)

    assert not old.value.still_owner()
    assert new.value.still_owner()
    assert console.find("cancelling in-flight run old")

    # The cancelled run must not drop the newer run's lock.
    old.value.release()
    assert new.value.path.exists()
    new.value.release()
    assert not new.value.path.exists()


def test_without_cancel_in_progress_the_newcomer_yields(tmp_path: Path) -> None:
    console = MockConsole()
    first = acquire_group(state_dir=tmp_path, group="g", run_id="first", console=console)
    second = acquire_group(
        state_dir=tmp_path, group="g", run_id="second", console=console, cancel_in_progress=False
    )
    assert isinstance(first, Ok)
    assert isinstance(second, Err)
    assert second.error.kind == "cancelled"
    assert first.value.still_owner()


def test_groups_are_independent(tmp_path: Path) -> None:
    console = MockConsole()
    a = acquire_group(state_dir=tmp_path, group="a", run_id="r1", console=console)
    b = acquire_group(state_dir=tmp_path, group="b", run_id="r2", console=console)
    assert isinstance(a, Ok) and isinstance(b, Ok)
    assert a.value.still_owner() and b.value.still_owner()
    assert not console.has_warning()


def test_lock_path_is_filesystem_safe(tmp_path: Path) -> None:
    assert group_lock_path(state_dir=tmp_path, group="ci/release") == (
        tmp_path / "concurrency-ci_release.json"
    )
