from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from relpkg.core.result import Err, Ok, Result
from relpkg.output.console import MockConsole
from relpkg.release import sync as sync_mod
from relpkg.release.errors import ReleaseError
from relpkg.release.intent import PlannedUpload, SyncIntent, intent_path, write_intent
from relpkg.release.model import Asset, RemoteRelease, SyncMode
from relpkg.release.sync import SyncReport, SyncTarget, sync_assets


@dataclass
class FakeRelease:
    """In-memory stand-in for a GitHub release's asset list."""

    assets: dict[str, Asset] = field(default_factory=dict)
    next_id: int = 100
    fail_upload: set[str] = field(default_factory=set)
    fail_delete: set[str] = field(default_factory=set)
    uploads: list[str] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)

    def add(self, name: str, size: int) -> None:
        self.assets[name] = Asset(id=self.next_id, name=name, size=size)
        self.next_id += 1

    def install(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def list_assets(
            *, cwd: Path, repo: str, release_id: int
        ) -> Result[list[Asset], ReleaseError]:
            del cwd, repo, release_id
            return Ok(list(self.assets.values()))

        def delete(*, cwd: Path, repo: str, asset: Asset) -> Result[None, ReleaseError]:
            del cwd, repo
            if asset.name in self.fail_delete:
                return Err(ReleaseError(kind="sync_failed", message=f"failed: {asset.name}"))
            self.deletes.append(asset.name)
            self.assets.pop(asset.name, None)
            return Ok(None)

        def upload(
            *, cwd: Path, repo: str, tag: str, path: Path, clobber: bool = False
        ) -> Result[None, ReleaseError]:
            del cwd, repo, tag
            if path.name in self.fail_upload:
                return Err(ReleaseError(kind="sync_failed", message=f"failed: {path.name}"))
            if path.name in self.assets and not clobber:
                return Err(ReleaseError(kind="sync_failed", message="already exists"))
            self.uploads.append(path.name)
            self.assets.pop(path.name, None)
            self.add(path.name, path.stat().st_size)
            return Ok(None)

        monkeypatch.setattr(sync_mod, "list_release_assets", list_assets)
        monkeypatch.setattr(sync_mod, "delete_release_asset", delete)
        monkeypatch.setattr(sync_mod, "upload_release_asset", upload)


def _file(directory: Path, name: str, content: str = "pkg") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(content, encoding="utf-8")
    return path


def _target(tmp_path: Path, *, tag: str = "v1.4.0") -> SyncTarget:
    return SyncTarget(
        cwd=tmp_path,
        repo="example/agent",
        release=RemoteRelease(id=7, tag=tag),
        state_dir=tmp_path / "state",
    )


def _sync(
    target: SyncTarget, files: list[Path], mode: SyncMode, *, run_id: str
) -> Result[SyncReport, ReleaseError]:
    return sync_assets(target=target, files=files, mode=mode, run_id=run_id, console=MockConsole())


RPM_1 = "alumet-agent-1.4.0-1.el8.3.x86_64.rpm"
RPM_2 = "alumet-agent-1.4.0-2.el8.3.x86_64.rpm"
DEB_1 = "alumet-agent_1.4.0-1_amd64.deb"
DEB_2 = "alumet-agent_1.4.0-2_amd64.deb"


def test_append_uploads_without_deleting(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    remote = FakeRelease()
    remote.add("README.txt", 5)
    remote.install(monkeypatch)
    files = [_file(tmp_path / "dist", RPM_1), _file(tmp_path / "dist", DEB_1)]

    result = sync_assets(
        target=_target(tmp_path), files=files, mode="append", run_id="r1", console=MockConsole()
    )
    assert isinstance(result, Ok)
    report = result.value
    assert report.ok
    assert report.uploaded == (RPM_1, DEB_1)
    assert report.deleted == ()
    assert remote.deletes == []
    assert set(remote.assets) == {"README.txt", RPM_1, DEB_1}


def test_append_rerun_is_idempotent(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    remote = FakeRelease()
    remote.install(monkeypatch)
    files = [_file(tmp_path / "dist", RPM_1)]
    target = _target(tmp_path)

    first = _sync(target, files, "append", run_id="r1")
    second = _sync(target, files, "append", run_id="r2")

    assert isinstance(first, Ok) and isinstance(second, Ok)
    assert second.value.uploaded == ()
    assert second.value.kept == (RPM_1,)
    assert remote.uploads == [RPM_1]


def test_append_upload_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    remote = FakeRelease(fail_upload={DEB_1})
    remote.install(monkeypatch)
    files = [_file(tmp_path / "dist", RPM_1), _file(tmp_path / "dist", DEB_1)]
    console = MockConsole()

    result = sync_assets(
        target=_target(tmp_path), files=files, mode="append", run_id="r1", console=console
    )
    assert isinstance(result, Ok)
    assert not result.value.ok
    assert [f.name for f in result.value.upload_failures] == [DEB_1]
    assert result.value.uploaded == (RPM_1,)
    assert console.has_error()


def test_replace_swaps_old_assets(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    remote = FakeRelease()
    remote.add(RPM_1, 3)
    remote.add(DEB_1, 3)
    remote.install(monkeypatch)
    files = [_file(tmp_path / "dist", RPM_2), _file(tmp_path / "dist", DEB_2)]
    target = _target(tmp_path)

    result = _sync(target, files, "replace", run_id="r1")
    assert isinstance(result, Ok)
    report = result.value
    assert report.ok
    assert set(report.deleted) == {RPM_1, DEB_1}
    assert report.uploaded == (RPM_2, DEB_2)
    assert set(remote.assets) == {RPM_2, DEB_2}
    assert not intent_path(state_dir=target.state_dir, tag="v1.4.0").exists()


def test_replace_twice_converges(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    remote = FakeRelease()
    remote.add(RPM_1, 3)
    remote.install(monkeypatch)
    files = [_file(tmp_path / "dist", RPM_2)]
    target = _target(tmp_path)

    _sync(target, files, "replace", run_id="r1")
    _sync(target, files, "replace", run_id="r2")

    assert set(remote.assets) == {RPM_2}


def test_replace_stale_asset_fails_the_sync(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    remote = FakeRelease(fail_delete={DEB_1})
    remote.add(RPM_1, 3)
    remote.add(DEB_1, 3)
    remote.install(monkeypatch)
    files = [_file(tmp_path / "dist", RPM_2)]
    target = _target(tmp_path)
    console = MockConsole()

    result = sync_assets(target=target, files=files, mode="replace", run_id="r1", console=console)
    assert isinstance(result, Ok)
    report = result.value
    # Deletion went on past the failure and the upload still happened.
    assert report.deleted == (RPM_1,)
    assert report.uploaded == (RPM_2,)
    assert [f.name for f in report.delete_failures] == [DEB_1]
    assert report.stale == (DEB_1,)
    assert not report.ok
    assert set(remote.assets) == {DEB_1, RPM_2}
    assert console.has_warning()
    assert intent_path(state_dir=target.state_dir, tag="v1.4.0").exists()

    # Once the delete goes through, the retry removes the leftover and keeps the upload.
    remote.fail_delete.clear()
    retry = _sync(target, files, "replace", run_id="r2")
    assert isinstance(retry, Ok)
    assert retry.value.ok
    assert retry.value.resumed
    assert retry.value.deleted == (DEB_1,)
    assert retry.value.kept == (RPM_2,)
    assert set(remote.assets) == {RPM_2}
    assert not intent_path(state_dir=target.state_dir, tag="v1.4.0").exists()


def test_replace_delete_failure_covered_by_clobber(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    remote = FakeRelease(fail_delete={RPM_2})
    remote.add(RPM_2, 3)
    remote.install(monkeypatch)
    files = [_file(tmp_path / "dist", RPM_2, content="rebuilt")]
    target = _target(tmp_path)

    result = _sync(target, files, "replace", run_id="r1")
    assert isinstance(result, Ok)
    report = result.value
    assert [f.name for f in report.delete_failures] == [RPM_2]
    assert report.stale == ()
    assert report.ok
    assert remote.assets[RPM_2].size == len("rebuilt")
    assert not intent_path(state_dir=target.state_dir, tag="v1.4.0").exists()


def test_replace_upload_failure_keeps_intent(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    remote = FakeRelease(fail_upload={DEB_2})
    remote.add(RPM_1, 3)
    remote.install(monkeypatch)
    files = [_file(tmp_path / "dist", RPM_2), _file(tmp_path / "dist", DEB_2)]
    target = _target(tmp_path)

    result = _sync(target, files, "replace", run_id="r1")
    assert isinstance(result, Ok)
    assert not result.value.ok
    assert intent_path(state_dir=target.state_dir, tag="v1.4.0").exists()

    # The retry keeps what the failed run already uploaded.
    remote.fail_upload.clear()
    retry = _sync(target, files, "replace", run_id="r2")
    assert isinstance(retry, Ok)
    assert retry.value.resumed
    assert retry.value.kept == (RPM_2,)
    assert retry.value.uploaded == (DEB_2,)
    assert remote.uploads == [RPM_2, DEB_2]
    assert set(remote.assets) == {RPM_2, DEB_2}
    assert not intent_path(state_dir=target.state_dir, tag="v1.4.0").exists()


def test_replace_resumes_from_interrupted_run(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    files = [_file(tmp_path / "dist", RPM_2), _file(tmp_path / "dist", DEB_2)]
    remote = FakeRelease()
    remote.add(DEB_1, 3)
    remote.add(RPM_2, files[0].stat().st_size)
    remote.install(monkeypatch)
    target = _target(tmp_path)

    # A previous run deleted RPM_1, uploaded RPM_2 and then died.
    interrupted = SyncIntent(
        repo="example/agent",
        tag="v1.4.0",
        release_id=7,
        run_id="r0",
        phase="upload",
        to_delete=(Asset(id=1, name=RPM_1), Asset(id=2, name=DEB_1)),
        to_upload=(PlannedUpload(RPM_2, 3), PlannedUpload(DEB_2, 3)),
        deleted=(1,),
        uploaded=(RPM_2,),
    )
    path = intent_path(state_dir=target.state_dir, tag="v1.4.0")
    assert isinstance(write_intent(path=path, intent=interrupted), Ok)

    result = _sync(target, files, "replace", run_id="r1")
    assert isinstance(result, Ok)
    report = result.value
    assert report.resumed
    assert report.kept == (RPM_2,)
    assert report.deleted == (DEB_1,)
    assert report.uploaded == (DEB_2,)
    assert RPM_2 not in remote.uploads
    assert set(remote.assets) == {RPM_2, DEB_2}
    assert not path.exists()


def test_intent_for_another_release_is_discarded(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    files = [_file(tmp_path / "dist", RPM_2)]
    remote = FakeRelease()
    remote.add(RPM_2, files[0].stat().st_size)
    remote.install(monkeypatch)
    target = _target(tmp_path)

    stale = SyncIntent(
        repo="example/agent",
        tag="v1.4.0",
        release_id=6,
        run_id="r0",
        phase="upload",
        to_delete=(),
        to_upload=(),
        uploaded=(RPM_2,),
    )
    assert isinstance(
        write_intent(path=intent_path(state_dir=target.state_dir, tag="v1.4.0"), intent=stale), Ok
    )
    console = MockConsole()

    result = sync_assets(target=target, files=files, mode="replace", run_id="r1", console=console)
    assert isinstance(result, Ok)
    assert not result.value.resumed
    assert result.value.deleted == (RPM_2,)
    assert result.value.uploaded == (RPM_2,)
    assert console.find("discarding sync intent")


def test_replace_dry_run_touches_nothing(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    remote = FakeRelease()
    remote.add(RPM_1, 3)
    remote.install(monkeypatch)
    files = [_file(tmp_path / "dist", RPM_2)]
    target = _target(tmp_path)

    result = sync_assets(
        target=target,
        files=files,
        mode="replace",
        run_id="r1",
        console=MockConsole(),
        dry_run=True,
    )
    assert isinstance(result, Ok)
    assert result.value.deleted == (RPM_1,)
    assert result.value.uploaded == (RPM_2,)
    assert remote.deletes == [] and remote.uploads == []
    assert not intent_path(state_dir=target.state_dir, tag="v1.4.0").exists()


def test_rejects_duplicate_asset_names(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    FakeRelease().install(monkeypatch)
    files = [_file(tmp_path / "a", RPM_1), _file(tmp_path / "b", RPM_1)]

    result = sync_assets(
        target=_target(tmp_path), files=files, mode="append", run_id="r1", console=MockConsole()
    )
    assert isinstance(result, Err)
    assert result.error.kind == "invalid_input"


def test_rejects_missing_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    FakeRelease().install(monkeypatch)
    result = sync_assets(
        target=_target(tmp_path),
        files=[tmp_path / "nope.rpm"],
        mode="append",
        run_id="r1",
        console=MockConsole(),
    )
    assert isinstance(result, Err)
