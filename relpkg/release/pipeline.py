"""End-to-end release run.

resolve -> builds -> validations -> {attach assets, publish repository}

Attaching and publishing both require every build and validation to pass; they
do not depend on each other, so a failed upload does not stop the repository
from being published and vice versa. The run holds its concurrency group for
its whole duration and checks ownership at every job boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from relpkg.core.result import Err
from relpkg.output.console import ConsoleProtocol, Style
from relpkg.release.concurrency import GroupLease, acquire_group
from relpkg.release.config import Config
from relpkg.release.dispatcher import DispatchResult, OwnershipCheck, dispatch
from relpkg.release.errors import ReleaseError
from relpkg.release.gh import get_latest_release, get_release_by_tag
from relpkg.release.intent import pending_upload_names
from relpkg.release.model import PipelineContext, RunContext
from relpkg.release.repo_publisher import (
    DEFAULT_COMMIT_MESSAGE,
    PublishReport,
    commit_repository,
    publish_packages,
)
from relpkg.release.resolver import resolve
from relpkg.release.sync import SyncReport, SyncTarget, sync_assets


@dataclass(frozen=True, slots=True)
class RunOptions:
    dry_run: bool = False
    attach: bool = True
    publish_repo: bool = True
    commit_repo: bool = False
    push_repo: bool = False


@dataclass(frozen=True, slots=True)
class PipelineResult:
    context: PipelineContext | None = None
    dispatch: DispatchResult | None = None
    sync: SyncReport | None = None
    publish: PublishReport | None = None
    errors: tuple[ReleaseError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


def new_run_id() -> str:
    return f"relpkg-{uuid4().hex[:12]}"


def _dispatch_error(result: DispatchResult) -> ReleaseError | None:
    if result.cancelled:
        return ReleaseError(
            kind="cancelled",
            message="run cancelled: a newer run took over the concurrency group",
        )
    if not result.builds_ok:
        failed = [o.job for o in result.outcomes if o.stage == "build" and o.status != "succeeded"]
        return ReleaseError(
            kind="build_failed",
            message=f"build failed: {', '.join(failed)}",
            hint="Nothing was attached or published.",
        )
    if not result.validations_ok:
        failed = [o.job for o in result.outcomes if o.stage == "validate" and o.status == "failed"]
        return ReleaseError(
            kind="validation_failed",
            message=f"smoke tests failed: {', '.join(failed)}",
            hint="Nothing was attached or published.",
        )
    return None


def sync_error(report: SyncReport) -> ReleaseError:
    problems: list[str] = []
    if report.upload_failures:
        problems.append(f"failed to upload: {', '.join(f.name for f in report.upload_failures)}")
    if report.stale:
        problems.append(f"still attached: {', '.join(report.stale)}")
    return ReleaseError(
        kind="sync_failed",
        message="; ".join(problems),
        hint="Re-run to resume the sync.",
    )


def _lost_group() -> ReleaseError:
    return ReleaseError(
        kind="cancelled",
        message="run cancelled: a newer run took over the concurrency group",
    )


def _plan_attach(
    *, ctx: PipelineContext, files: list[Path], console: ConsoleProtocol
) -> SyncReport:
    """Print what attaching would do, from the local files only."""
    resolved = ctx.resolved
    clobber = ""
    if resolved.sync_mode == "replace":
        console.print(f"delete every asset attached to {resolved.tag}", Style.DIM)
        clobber = " --clobber"
    for path in files:
        console.print(f"gh release upload {resolved.tag} {path.name}{clobber}", Style.DIM)
    return SyncReport(
        mode=resolved.sync_mode, tag=resolved.tag, uploaded=tuple(p.name for p in files)
    )


def attach_assets(
    *,
    ctx: PipelineContext,
    files: list[Path],
    state_dir: Path,
    console: ConsoleProtocol,
) -> tuple[SyncReport | None, ReleaseError | None]:
    resolved = ctx.resolved
    console.header(f"Attach assets to {resolved.tag} ({resolved.sync_mode})")
    if ctx.dry_run:
        return _plan_attach(ctx=ctx, files=files, console=console), None

    release = get_release_by_tag(cwd=ctx.workspace_root, repo=ctx.repo, tag=resolved.tag)
    if isinstance(release, Err):
        return None, release.error

    synced = sync_assets(
        target=SyncTarget(
            cwd=ctx.workspace_root, repo=ctx.repo, release=release.value, state_dir=state_dir
        ),
        files=files,
        mode=resolved.sync_mode,
        run_id=ctx.run_id,
        console=console,
    )
    if isinstance(synced, Err):
        return None, synced.error

    report = synced.value
    if not report.ok:
        return report, sync_error(report)
    return report, None


def run_pipeline(
    *,
    run_context: RunContext,
    config: Config,
    workspace_root: Path,
    console: ConsoleProtocol,
    options: RunOptions = RunOptions(),
    run_id: str | None = None,
) -> PipelineResult:
    repo = config.project.repo
    state_dir = workspace_root / config.project.state_dir

    console.header("Resolve release")
    resolved = resolve(
        run_context,
        fetch_latest=lambda: get_latest_release(cwd=workspace_root, repo=repo),
        pending_uploads=lambda release: pending_upload_names(
            state_dir=state_dir, repo=repo, release=release
        ),
    )
    if isinstance(resolved, Err):
        return PipelineResult(errors=(resolved.error,))

    ctx = PipelineContext(
        resolved=resolved.value,
        repo=repo,
        package=config.project.package,
        concurrency_group=config.project.concurrency_group,
        run_id=run_id or new_run_id(),
        workspace_root=workspace_root,
        dry_run=options.dry_run,
    )
    console.print(
        f"version={ctx.resolved.version} release={ctx.resolved.release} tag={ctx.resolved.tag}",
        Style.BOLD,
    )

    lease: GroupLease | None = None
    still_owner: OwnershipCheck = lambda: True  # noqa: E731
    if not options.dry_run:
        acquired = acquire_group(
            state_dir=state_dir,
            group=ctx.concurrency_group,
            run_id=ctx.run_id,
            console=console,
        )
        if isinstance(acquired, Err):
            return PipelineResult(context=ctx, errors=(acquired.error,))
        lease = acquired.value
        still_owner = lease.still_owner

    try:
        return _run_jobs(
            ctx=ctx,
            config=config,
            state_dir=state_dir,
            console=console,
            options=options,
            still_owner=still_owner,
        )
    finally:
        if lease is not None:
            lease.release()


def _run_jobs(
    *,
    ctx: PipelineContext,
    config: Config,
    state_dir: Path,
    console: ConsoleProtocol,
    options: RunOptions,
    still_owner: OwnershipCheck,
) -> PipelineResult:
    dispatched = dispatch(
        ctx=ctx,
        jobs=config.builds,
        console=console,
        max_parallel=config.project.max_parallel,
        still_owner=still_owner,
    )
    blocked = _dispatch_error(dispatched)
    if blocked is not None:
        return PipelineResult(context=ctx, dispatch=dispatched, errors=(blocked,))

    errors: list[ReleaseError] = []
    packages = list(dispatched.packages)

    sync_report: SyncReport | None = None
    if options.attach:
        if not still_owner():
            return PipelineResult(context=ctx, dispatch=dispatched, errors=(_lost_group(),))
        sync_report, sync_error = attach_assets(
            ctx=ctx,
            files=[p.path for p in packages],
            state_dir=state_dir,
            console=console,
        )
        if sync_error is not None:
            console.error(sync_error.pretty())
            errors.append(sync_error)

    publish_report: PublishReport | None = None
    if options.publish_repo:
        if not still_owner():
            return PipelineResult(
                context=ctx, dispatch=dispatched, sync=sync_report, errors=(*errors, _lost_group())
            )
        console.header("Publish package repository")
        root = ctx.workspace_root / config.repository.root
        published = publish_packages(
            root=root,
            packages=packages,
            min_depth=config.repository.min_depth,
            indexers=config.repository.indexers,
            console=console,
            dry_run=ctx.dry_run,
        )
        if isinstance(published, Err):
            console.error(published.error.pretty())
            errors.append(published.error)
        else:
            publish_report = published.value
            if not publish_report.ok:
                errors.append(
                    ReleaseError(
                        kind="repo_failed",
                        message="index metadata generation failed",
                        hint=", ".join(str(f.directory) for f in publish_report.index_failures),
                    )
                )
            elif options.commit_repo:
                committed = commit_repository(
                    repo_root=ctx.workspace_root,
                    tree=root,
                    message=DEFAULT_COMMIT_MESSAGE,
                    push=options.push_repo,
                    console=console,
                    dry_run=ctx.dry_run,
                )
                if isinstance(committed, Err):
                    console.error(committed.error.pretty())
                    errors.append(committed.error)

    return PipelineResult(
        context=ctx,
        dispatch=dispatched,
        sync=sync_report,
        publish=publish_report,
        errors=tuple(errors),
    )
