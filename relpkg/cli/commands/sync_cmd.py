from __future__ import annotations

from pathlib import Path

import typer

from relpkg.cli.commands._helpers import exit_on_release_error, exit_release, require_gh
from relpkg.cli.context import build_context
from relpkg.core.errors import ErrorCode
from relpkg.core.result import Err
from relpkg.release.gh import get_release_by_tag
from relpkg.release.model import SyncMode
from relpkg.release.pipeline import new_run_id, sync_error
from relpkg.release.sync import SyncTarget, sync_assets

_MODES: tuple[SyncMode, ...] = ("append", "replace")


def sync_cmd(
    files: list[Path] = typer.Argument(..., help="Package files to attach"),
    tag: str = typer.Option(..., "--tag", help="Release tag to attach to"),
    mode: str = typer.Option(..., "--mode", help="append|replace"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the plan only"),
) -> None:
    """Attach package files to a GitHub release."""
    if mode not in _MODES:
        exit_release(f"invalid --mode: {mode} (expected append|replace)", code=ErrorCode.USER_ERROR)
    sync_mode: SyncMode = "append" if mode == "append" else "replace"

    ctx = build_context()
    require_gh(ctx)

    release = get_release_by_tag(cwd=ctx.root, repo=ctx.config.project.repo, tag=tag)
    if isinstance(release, Err):
        exit_on_release_error(release.error)

    synced = sync_assets(
        target=SyncTarget(
            cwd=ctx.root,
            repo=ctx.config.project.repo,
            release=release.value,
            state_dir=ctx.state_dir,
        ),
        files=[ctx.root / f for f in files],
        mode=sync_mode,
        run_id=new_run_id(),
        console=ctx.console,
        dry_run=dry_run,
    )
    if isinstance(synced, Err):
        exit_on_release_error(synced.error)

    report = synced.value
    rows = [(name, "uploaded") for name in report.uploaded]
    rows += [(name, "deleted") for name in report.deleted]
    rows += [(name, "kept") for name in report.kept]
    rows += [(f.name, f"delete failed: {f.reason}") for f in report.delete_failures]
    rows += [(f.name, f"upload failed: {f.reason}") for f in report.upload_failures]
    if rows:
        ctx.console.table(f"{tag} ({sync_mode})", ("asset", "result"), rows)

    if not report.ok:
        exit_release(sync_error(report).pretty(), code=ErrorCode.SYNC_ERROR)
    ctx.console.success(f"{tag}: assets in sync")
