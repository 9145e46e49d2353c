"""Static package repository tree.

Packages land in ``{root}/{distro}/{distro_version}/{version}/``. Each leaf a
run touches is emptied first, so re-publishing a version replaces it instead of
accumulating builds. Index metadata is then regenerated for every directory at
least ``min_depth`` levels below the root that directly holds package files.
The resulting tree can be served as-is over HTTP (GitHub Pages).
"""

from __future__ import annotations

import shutil
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from relpkg.core.result import Err, Ok, Result
from relpkg.output.console import ConsoleProtocol, Style
from relpkg.platform.files import empty_directory
from relpkg.platform.process import run as run_process
from relpkg.release.config import IndexerConfig
from relpkg.release.errors import ReleaseError
from relpkg.release.model import PackageFile
from relpkg.release.timeouts import (
    GIT_NETWORK_TIMEOUT_SECONDS,
    GIT_TIMEOUT_SECONDS,
    INDEX_TIMEOUT_SECONDS,
)

DEFAULT_COMMIT_MESSAGE = "Update package repository"


@dataclass(frozen=True, slots=True)
class IndexFailure:
    directory: Path
    reason: str


@dataclass(frozen=True, slots=True)
class PublishReport:
    placed: tuple[Path, ...] = ()
    emptied: tuple[Path, ...] = ()
    indexed: tuple[Path, ...] = ()
    skipped: tuple[str, ...] = ()
    index_failures: tuple[IndexFailure, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.index_failures


def leaf_dir(*, root: Path, package: PackageFile) -> Path | None:
    if not package.distro or not package.distro_version:
        return None
    return root / package.distro / package.distro_version / package.version


def find_index_dirs(*, root: Path, min_depth: int, extensions: Sequence[str]) -> list[Path]:
    """Directories ``min_depth`` or more levels below ``root`` holding package files."""
    if not root.is_dir():
        return []
    suffixes = {f".{ext}" for ext in extensions}
    out: list[Path] = []
    for directory in sorted(p for p in root.rglob("*") if p.is_dir()):
        if len(directory.relative_to(root).parts) < min_depth:
            continue
        if any(f.is_file() and f.suffix in suffixes for f in directory.iterdir()):
            out.append(directory)
    return out


def place_packages(
    *,
    root: Path,
    packages: Sequence[PackageFile],
    console: ConsoleProtocol,
    dry_run: bool = False,
) -> Result[PublishReport, ReleaseError]:
    """Copy packages into their leaves, emptying each touched leaf once."""
    emptied: list[Path] = []
    placed: list[Path] = []
    skipped: list[str] = []

    for pkg in packages:
        leaf = leaf_dir(root=root, package=pkg)
        if leaf is None:
            console.warning(f"no distro/distro_version for {pkg.name}; not published")
            skipped.append(pkg.name)
            continue

        try:
            if leaf not in emptied:
                console.print(f"empty {leaf}", Style.DIM)
                if not dry_run:
                    empty_directory(leaf)
                emptied.append(leaf)

            dest = leaf / pkg.name
            console.print(f"copy {pkg.name} -> {leaf}", Style.DIM)
            if not dry_run:
                shutil.copy2(pkg.path, dest)
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="repo_failed",
                    message=f"failed to place {pkg.name}: {e}",
                    hint=str(leaf),
                )
            )
        placed.append(dest)

    return Ok(PublishReport(placed=tuple(placed), emptied=tuple(emptied), skipped=tuple(skipped)))


def _index_one(*, directory: Path, indexer: IndexerConfig, cwd: Path) -> Result[None, str]:
    cmd = [arg.replace("{dir}", str(directory)) for arg in indexer.command]
    run_dir = directory if indexer.stdout_file is not None else cwd
    result = run_process(cmd, cwd=run_dir, timeout=INDEX_TIMEOUT_SECONDS)
    if isinstance(result, Err):
        e = result.error
        return Err(f"{e} {e.stderr.strip()}".strip())

    if indexer.stdout_file is not None:
        try:
            (directory / indexer.stdout_file).write_text(result.value, encoding="utf-8")
        except OSError as e:
            return Err(f"failed to write {indexer.stdout_file}: {e}")
    return Ok(None)


def regenerate_indexes(
    *,
    root: Path,
    min_depth: int,
    indexers: Mapping[str, IndexerConfig],
    console: ConsoleProtocol,
    dry_run: bool = False,
) -> tuple[list[Path], list[IndexFailure]]:
    indexed: list[Path] = []
    failures: list[IndexFailure] = []
    for directory in find_index_dirs(root=root, min_depth=min_depth, extensions=list(indexers)):
        present = {f.suffix.lstrip(".") for f in directory.iterdir() if f.is_file()}
        for ext, indexer in indexers.items():
            if ext not in present:
                continue
            console.print(f"{indexer.command[0]} {directory}", Style.DIM)
            if dry_run:
                continue
            result = _index_one(directory=directory, indexer=indexer, cwd=root)
            if isinstance(result, Err):
                console.error(f"index failed for {directory}: {result.error}")
                failures.append(IndexFailure(directory, result.error))
        indexed.append(directory)
    return indexed, failures


def publish_packages(
    *,
    root: Path,
    packages: Sequence[PackageFile],
    min_depth: int,
    indexers: Mapping[str, IndexerConfig],
    console: ConsoleProtocol,
    dry_run: bool = False,
) -> Result[PublishReport, ReleaseError]:
    placed = place_packages(root=root, packages=packages, console=console, dry_run=dry_run)
    if isinstance(placed, Err):
        return placed

    indexed, failures = regenerate_indexes(
        root=root, min_depth=min_depth, indexers=indexers, console=console, dry_run=dry_run
    )
    report = placed.value
    return Ok(
        PublishReport(
            placed=report.placed,
            emptied=report.emptied,
            indexed=tuple(indexed),
            skipped=report.skipped,
            index_failures=tuple(failures),
        )
    )


def _run_git_command(*, cmd: list[str], repo_root: Path, network: bool = False):
    timeout = GIT_NETWORK_TIMEOUT_SECONDS if network else GIT_TIMEOUT_SECONDS
    return run_process(cmd, cwd=repo_root, timeout=timeout)


def commit_repository(
    *,
    repo_root: Path,
    tree: Path,
    message: str,
    push: bool,
    console: ConsoleProtocol,
    dry_run: bool = False,
) -> Result[bool, ReleaseError]:
    """Commit the published tree; Ok(False) when there was nothing to commit."""
    rel = str(tree.relative_to(repo_root))
    console.print(f"git add -A -- {rel}", Style.DIM)
    console.print(f"git commit -m {message}", Style.DIM)
    if push:
        console.print("git push origin HEAD", Style.DIM)
    if dry_run:
        return Ok(True)

    add = _run_git_command(cmd=["git", "add", "-A", "--", rel], repo_root=repo_root)
    if isinstance(add, Err):
        return Err(
            ReleaseError(
                kind="repo_failed", message="git add failed", hint=add.error.stderr.strip() or None
            )
        )

    staged = _run_git_command(cmd=["git", "diff", "--cached", "--quiet"], repo_root=repo_root)
    if isinstance(staged, Ok):
        console.info("package repository unchanged; nothing to commit")
        return Ok(False)

    commit = _run_git_command(cmd=["git", "commit", "-m", message], repo_root=repo_root)
    if isinstance(commit, Err):
        hint = commit.error.stderr.strip() or "Configure git user.name/user.email, then retry."
        return Err(ReleaseError(kind="repo_failed", message="git commit failed", hint=hint))

    if push:
        pushed = _run_git_command(
            cmd=["git", "push", "origin", "HEAD"], repo_root=repo_root, network=True
        )
        if isinstance(pushed, Err):
            return Err(
                ReleaseError(
                    kind="repo_failed",
                    message="git push failed",
                    hint=pushed.error.stderr.strip() or None,
                )
            )

    return Ok(True)
