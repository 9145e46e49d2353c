"""Reconcile a release's attached assets with a freshly built file set.

``append`` (first publish from a release event) only uploads. Files already
attached with the same name and size are left alone, so a failed append can
simply be re-run.

``replace`` (manual rebuild) deletes every attached asset, then uploads the new
set. Deletion failures are reported and skipped; the sync fails when an upload
fails or when an asset that could not be deleted is still attached afterwards
(a same-name upload with ``--clobber`` overwrites it).
The sequence is guarded by an intent log so that an interrupted replace resumes
on the next run: assets uploaded by the interrupted run are kept, everything
else is deleted, and only the missing files are uploaded.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from relpkg.core.result import Err, Ok, Result
from relpkg.output.console import ConsoleProtocol, Style
from relpkg.release.errors import ReleaseError
from relpkg.release.gh import delete_release_asset, list_release_assets, upload_release_asset
from relpkg.release.intent import (
    PlannedUpload,
    SyncIntent,
    clear_intent,
    intent_path,
    read_intent,
    write_intent,
)
from relpkg.release.model import Asset, RemoteRelease, SyncMode


@dataclass(frozen=True, slots=True)
class SyncFailure:
    name: str
    reason: str


@dataclass(frozen=True, slots=True)
class SyncReport:
    mode: SyncMode
    tag: str
    deleted: tuple[str, ...] = ()
    uploaded: tuple[str, ...] = ()
    kept: tuple[str, ...] = ()
    delete_failures: tuple[SyncFailure, ...] = ()
    upload_failures: tuple[SyncFailure, ...] = ()
    resumed: bool = False

    @property
    def stale(self) -> tuple[str, ...]:
        """Assets whose deletion failed and that no upload replaced."""
        replaced = set(self.uploaded)
        return tuple(f.name for f in self.delete_failures if f.name not in replaced)

    @property
    def ok(self) -> bool:
        return not self.upload_failures and not self.stale


@dataclass(frozen=True, slots=True)
class SyncTarget:
    """Where the synchronizer acts."""

    cwd: Path
    repo: str
    release: RemoteRelease
    state_dir: Path


def _check_files(files: Sequence[Path]) -> Result[None, ReleaseError]:
    seen: set[str] = set()
    for path in files:
        if not path.is_file():
            return Err(ReleaseError(kind="invalid_input", message=f"file not found: {path}"))
        if path.name in seen:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"two files would upload as the same asset: {path.name}",
                    hint="Asset names must be unique within a release.",
                )
            )
        seen.add(path.name)
    return Ok(None)


def _describe(error: ReleaseError) -> str:
    return error.hint or error.message


def sync_assets(
    *,
    target: SyncTarget,
    files: Sequence[Path],
    mode: SyncMode,
    run_id: str,
    console: ConsoleProtocol,
    dry_run: bool = False,
) -> Result[SyncReport, ReleaseError]:
    """Synchronize ``files`` onto ``target.release``.

    Returns Err only when nothing could be attempted (bad input, assets could
    not be listed, intent log unwritable). Per-asset failures are carried in
    the returned report.
    """
    checked = _check_files(files)
    if isinstance(checked, Err):
        return checked

    listed = list_release_assets(cwd=target.cwd, repo=target.repo, release_id=target.release.id)
    if isinstance(listed, Err):
        return listed
    current = listed.value

    if mode == "append":
        return Ok(
            _append(target=target, files=files, current=current, console=console, dry_run=dry_run)
        )
    return _replace(
        target=target,
        files=files,
        current=current,
        run_id=run_id,
        console=console,
        dry_run=dry_run,
    )


def _append(
    *,
    target: SyncTarget,
    files: Sequence[Path],
    current: list[Asset],
    console: ConsoleProtocol,
    dry_run: bool,
) -> SyncReport:
    tag = target.release.tag
    attached = {(a.name, a.size) for a in current}
    uploaded: list[str] = []
    kept: list[str] = []
    failures: list[SyncFailure] = []

    for path in files:
        if (path.name, path.stat().st_size) in attached:
            console.print(f"already attached: {path.name}", Style.DIM)
            kept.append(path.name)
            continue

        console.print(f"gh release upload {tag} {path.name}", Style.DIM)
        if dry_run:
            uploaded.append(path.name)
            continue

        result = upload_release_asset(cwd=target.cwd, repo=target.repo, tag=tag, path=path)
        if isinstance(result, Err):
            console.error(f"{result.error.message} ({_describe(result.error)})")
            failures.append(SyncFailure(path.name, _describe(result.error)))
            continue
        uploaded.append(path.name)

    return SyncReport(
        mode="append",
        tag=tag,
        uploaded=tuple(uploaded),
        kept=tuple(kept),
        upload_failures=tuple(failures),
    )


def _replace(
    *,
    target: SyncTarget,
    files: Sequence[Path],
    current: list[Asset],
    run_id: str,
    console: ConsoleProtocol,
    dry_run: bool,
) -> Result[SyncReport, ReleaseError]:
    release = target.release
    path = intent_path(state_dir=target.state_dir, tag=release.tag)
    sizes = {p.name: p.stat().st_size for p in files}

    pending = read_intent(path=path)
    if isinstance(pending, Err):
        return pending

    previous = pending.value
    resumed = previous is not None and previous.targets(
        repo=target.repo, tag=release.tag, release_id=release.id
    )
    if previous is not None and not resumed:
        console.warning(f"discarding sync intent for another release: {previous.tag}")

    # On resume, assets the interrupted run already uploaded (same name and size)
    # stay attached; everything else goes.
    keep: set[str] = set()
    if resumed and previous is not None:
        console.info(f"resuming interrupted sync of {release.tag} (run {previous.run_id})")
        done = set(previous.uploaded)
        keep = {a.name for a in current if a.name in done and sizes.get(a.name) == a.size}

    doomed = [a for a in current if a.name not in keep]
    intent = SyncIntent(
        repo=target.repo,
        tag=release.tag,
        release_id=release.id,
        run_id=run_id,
        phase="delete",
        to_delete=tuple(doomed),
        to_upload=tuple(PlannedUpload(p.name, sizes[p.name]) for p in files),
        uploaded=tuple(sorted(keep)),
    )

    if dry_run:
        for asset in doomed:
            console.print(f"delete asset {asset.name} (id {asset.id})", Style.DIM)
        for p in files:
            if p.name not in keep:
                console.print(f"gh release upload {release.tag} {p.name} --clobber", Style.DIM)
        return Ok(
            SyncReport(
                mode="replace",
                tag=release.tag,
                deleted=tuple(a.name for a in doomed),
                uploaded=tuple(p.name for p in files if p.name not in keep),
                kept=tuple(sorted(keep)),
                resumed=resumed,
            )
        )

    written = write_intent(path=path, intent=intent)
    if isinstance(written, Err):
        return written

    deleted: list[str] = []
    delete_failures: list[SyncFailure] = []
    for asset in doomed:
        console.print(f"delete asset {asset.name} (id {asset.id})", Style.DIM)
        result = delete_release_asset(cwd=target.cwd, repo=target.repo, asset=asset)
        if isinstance(result, Err):
            console.warning(f"{result.error.message} ({_describe(result.error)})")
            delete_failures.append(SyncFailure(asset.name, _describe(result.error)))
            continue
        deleted.append(asset.name)
        intent = intent.with_deleted(asset.id)
        _record(path=path, intent=intent, console=console)

    intent = intent.with_phase("upload")
    _record(path=path, intent=intent, console=console)

    uploaded: list[str] = []
    upload_failures: list[SyncFailure] = []
    for p in files:
        if p.name in keep:
            console.print(f"already attached: {p.name}", Style.DIM)
            continue

        console.print(f"gh release upload {release.tag} {p.name} --clobber", Style.DIM)
        # Clobber covers a same-name asset whose deletion failed above.
        result = upload_release_asset(
            cwd=target.cwd, repo=target.repo, tag=release.tag, path=p, clobber=True
        )
        if isinstance(result, Err):
            console.error(f"{result.error.message} ({_describe(result.error)})")
            upload_failures.append(SyncFailure(p.name, _describe(result.error)))
            continue
        uploaded.append(p.name)
        intent = intent.with_uploaded(p.name)
        _record(path=path, intent=intent, console=console)

    report = SyncReport(
        mode="replace",
        tag=release.tag,
        deleted=tuple(deleted),
        uploaded=tuple(uploaded),
        kept=tuple(sorted(keep)),
        delete_failures=tuple(delete_failures),
        upload_failures=tuple(upload_failures),
        resumed=resumed,
    )
    if report.ok:
        clear_intent(path=path)
    else:
        console.print(f"sync intent kept for retry: {path}", Style.DIM)
    return Ok(report)


def _record(*, path: Path, intent: SyncIntent, console: ConsoleProtocol) -> None:
    result = write_intent(path=path, intent=intent)
    if isinstance(result, Err):
        console.warning(result.error.pretty())
