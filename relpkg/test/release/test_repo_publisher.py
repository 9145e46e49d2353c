from __future__ import annotations

from pathlib import Path

import pytest

from relpkg.core.result import Err, Ok
from relpkg.output.console import MockConsole
from relpkg.platform.process import ProcessError
from relpkg.release import repo_publisher as publisher_mod
from relpkg.release.config import RepositoryConfig
from relpkg.release.model import PackageFile
from relpkg.release.repo_publisher import (
    commit_repository,
    find_index_dirs,
    leaf_dir,
    publish_packages,
)

INDEXERS = RepositoryConfig().indexers


def _package(
    directory: Path,
    name: str,
    *,
    version: str = "1.4.0",
    release: int = 2,
    distro: str | None = "el",
    distro_version: str | None = "8.3",
) -> PackageFile:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(name, encoding="utf-8")
    return PackageFile(
        path=path,
        package="alumet-agent",
        version=version,
        release=release,
        arch="x86_64",
        ext=path.suffix.lstrip("."),
        distro=distro,
        distro_version=distro_version,
    )


class FakeIndexers:
    def __init__(self, *, fail: tuple[str, ...] = ()) -> None:
        self.calls: list[tuple[list[str], Path]] = []
        self.fail = fail

    def __call__(self, cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del timeout
        self.calls.append((cmd, cwd))
        if cmd[0] in self.fail:
            return Err(ProcessError(command=tuple(cmd), returncode=1, stdout="", stderr="boom"))
        if cmd[0] == "createrepo_c":
            (Path(cmd[1]) / "repodata").mkdir(exist_ok=True)
            (Path(cmd[1]) / "repodata" / "repomd.xml").write_text("<repomd/>")
            return Ok("")
        return Ok("Package: alumet-agent\n")


def test_leaf_dir(tmp_path: Path) -> None:
    pkg = _package(tmp_path / "dist", "a.rpm")
    assert leaf_dir(root=tmp_path / "repo", package=pkg) == tmp_path / "repo/el/8.3/1.4.0"
    bare = _package(tmp_path / "dist", "b.deb", distro=None)
    assert leaf_dir(root=tmp_path / "repo", package=bare) is None


def test_publish_places_and_indexes(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    fake = FakeIndexers()
    monkeypatch.setattr(publisher_mod, "run_process", fake)
    root = tmp_path / "repo"
    rpm = _package(tmp_path / "dist", "alumet-agent-1.4.0-2.el8.3.x86_64.rpm")
    deb = _package(
        tmp_path / "dist",
        "alumet-agent_1.4.0-2_amd64.deb",
        distro="debian",
        distro_version="12",
    )

    result = publish_packages(
        root=root,
        packages=[rpm, deb],
        min_depth=2,
        indexers=INDEXERS,
        console=MockConsole(),
    )

    assert isinstance(result, Ok)
    report = result.value
    assert report.ok
    rpm_leaf = root / "el/8.3/1.4.0"
    deb_leaf = root / "debian/12/1.4.0"
    assert (rpm_leaf / rpm.name).is_file()
    assert (deb_leaf / deb.name).is_file()
    assert set(report.indexed) == {rpm_leaf, deb_leaf}
    assert (rpm_leaf / "repodata" / "repomd.xml").is_file()
    assert (deb_leaf / "Packages").read_text() == "Package: alumet-agent\n"

    commands = {tuple(cmd): cwd for cmd, cwd in fake.calls}
    assert commands[("createrepo_c", str(rpm_leaf))] == root
    assert commands[("dpkg-scanpackages", "--multiversion", ".")] == deb_leaf


def test_republish_replaces_leaf_contents(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(publisher_mod, "run_process", FakeIndexers())
    root = tmp_path / "repo"
    leaf = root / "el/8.3/1.4.0"
    leaf.mkdir(parents=True)
    (leaf / "alumet-agent-1.4.0-1.el8.3.x86_64.rpm").write_text("old")
    (leaf / "repodata").mkdir()
    other_version = root / "el/8.3/1.3.0"
    other_version.mkdir(parents=True)
    (other_version / "alumet-agent-1.3.0-1.el8.3.x86_64.rpm").write_text("keep")

    first = _package(tmp_path / "dist", "alumet-agent-1.4.0-2.el8.3.x86_64.rpm")
    second = _package(tmp_path / "dist", "alumet-agent-debuginfo-1.4.0-2.el8.3.x86_64.rpm")

    for _ in range(2):
        result = publish_packages(
            root=root,
            packages=[first, second],
            min_depth=2,
            indexers=INDEXERS,
            console=MockConsole(),
        )
        assert isinstance(result, Ok)
        assert result.value.emptied == (leaf,)

    files = sorted(p.name for p in leaf.iterdir() if p.is_file())
    assert files == [first.name, second.name]
    assert (other_version / "alumet-agent-1.3.0-1.el8.3.x86_64.rpm").is_file()


def test_packages_without_distro_are_skipped(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(publisher_mod, "run_process", FakeIndexers())
    console = MockConsole()
    deb = _package(tmp_path / "dist", "alumet-agent_1.4.0-2_amd64.deb", distro=None)

    result = publish_packages(
        root=tmp_path / "repo", packages=[deb], min_depth=2, indexers=INDEXERS, console=console
    )

    assert isinstance(result, Ok)
    assert result.value.skipped == (deb.name,)
    assert console.has_warning()


def test_index_failure_is_reported(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(publisher_mod, "run_process", FakeIndexers(fail=("createrepo_c",)))
    rpm = _package(tmp_path / "dist", "alumet-agent-1.4.0-2.el8.3.x86_64.rpm")

    result = publish_packages(
        root=tmp_path / "repo",
        packages=[rpm],
        min_depth=2,
        indexers=INDEXERS,
        console=MockConsole(),
    )

    assert isinstance(result, Ok)
    assert not result.value.ok
    assert result.value.index_failures[0].directory == tmp_path / "repo/el/8.3/1.4.0"


def test_find_index_dirs_respects_min_depth(tmp_path: Path) -> None:
    root = tmp_path / "repo"
    (root / "el/8.3/1.4.0").mkdir(parents=True)
    (root / "el/8.3/1.4.0/a.rpm").write_text("")
    (root / "el/8.3/1.4.0/repodata").mkdir()
    (root / "el/8.3/1.4.0/repodata/primary.xml").write_text("")
    (root / "el/top.rpm").write_text("")
    (root / "el/8.3/notes.txt").write_text("")

    assert find_index_dirs(root=root, min_depth=2, extensions=["rpm"]) == [root / "el/8.3/1.4.0"]
    assert find_index_dirs(root=root, min_depth=1, extensions=["rpm"]) == [
        root / "el",
        root / "el/8.3/1.4.0",
    ]
    assert find_index_dirs(root=tmp_path / "missing", min_depth=2, extensions=["rpm"]) == []


def test_dry_run_leaves_tree_untouched(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    fake = FakeIndexers()
    monkeypatch.setattr(publisher_mod, "run_process", fake)
    root = tmp_path / "repo"
    leaf = root / "el/8.3/1.4.0"
    leaf.mkdir(parents=True)
    (leaf / "old.rpm").write_text("old")
    rpm = _package(tmp_path / "dist", "alumet-agent-1.4.0-2.el8.3.x86_64.rpm")

    result = publish_packages(
        root=root,
        packages=[rpm],
        min_depth=2,
        indexers=INDEXERS,
        console=MockConsole(),
        dry_run=True,
    )

    assert isinstance(result, Ok)
    assert [p.name for p in leaf.iterdir()] == ["old.rpm"]
    assert fake.calls == []


class FakeGit:
    def __init__(self, *, staged_changes: bool = True, fail: str | None = None) -> None:
        self.calls: list[list[str]] = []
        self.staged_changes = staged_changes
        self.fail = fail

    def __call__(self, cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd
        del timeout
        self.calls.append(cmd)
        if cmd[1] == self.fail:
            return Err(ProcessError(command=tuple(cmd), returncode=1, stdout="", stderr="denied"))
        if cmd[1:3] == ["diff", "--cached"] and self.staged_changes:
            return Err(ProcessError(command=tuple(cmd), returncode=1, stdout="", stderr=""))
        return Ok("")


def test_commit_and_push(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    git = FakeGit()
    monkeypatch.setattr(publisher_mod, "run_process", git)

    result = commit_repository(
        repo_root=tmp_path,
        tree=tmp_path / "docs/rpm",
        message="Update package repository",
        push=True,
        console=MockConsole(),
    )

    assert result == Ok(True)
    assert git.calls == [
        ["git", "add", "-A", "--", "docs/rpm"],
        ["git", "diff", "--cached", "--quiet"],
        ["git", "commit", "-m", "Update package repository"],
        ["git", "push", "origin", "HEAD"],
    ]


def test_commit_with_nothing_staged(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    git = FakeGit(staged_changes=False)
    monkeypatch.setattr(publisher_mod, "run_process", git)

    result = commit_repository(
        repo_root=tmp_path,
        tree=tmp_path / "docs/rpm",
        message="m",
        push=True,
        console=MockConsole(),
    )

    assert result == Ok(False)
    assert [c[1] for c in git.calls] == ["add", "diff"]


def test_push_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(publisher_mod, "run_process", FakeGit(fail="push"))

    result = commit_repository(
        repo_root=tmp_path,
        tree=tmp_path / "docs/rpm",
        message="m",
        push=True,
        console=MockConsole(),
    )

    assert isinstance(result, Err)
    assert result.error.kind == "repo_failed"
    assert result.error.hint == "denied"
