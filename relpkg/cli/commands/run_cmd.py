from __future__ import annotations

import typer

from relpkg.cli.commands._helpers import (
    exit_release,
    release_error_code,
    require_gh,
    run_context_from_options,
)
from relpkg.cli.context import build_context
from relpkg.core.errors import ErrorCode
from relpkg.release.model import ManualDispatch
from relpkg.release.pipeline import RunOptions, run_pipeline
from relpkg.release.summary import report_run


def run(
    tag: str | None = typer.Option(None, "--tag", help="Release tag (event-triggered run)"),
    from_env: bool = typer.Option(
        False, "--from-env", help="Read the trigger from GITHUB_EVENT_NAME/GITHUB_EVENT_PATH"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print what would run"),
    skip_attach: bool = typer.Option(False, "--skip-attach", help="Do not touch release assets"),
    skip_repo: bool = typer.Option(False, "--skip-repo", help="Do not publish the repository"),
    commit: bool = typer.Option(False, "--commit", help="Commit the repository tree with git"),
    push: bool = typer.Option(False, "--push", help="Push after committing"),
) -> None:
    """Resolve, build, validate, then attach and publish the packages."""
    if push and not commit:
        exit_release("--push requires --commit", code=ErrorCode.USER_ERROR)

    ctx = build_context()
    if not ctx.config.builds:
        exit_release("no [[build]] jobs configured", code=ErrorCode.USER_ERROR)

    run_context = run_context_from_options(tag=tag, from_env=from_env)
    if isinstance(run_context, ManualDispatch) or not (dry_run or skip_attach):
        require_gh(ctx)

    result = run_pipeline(
        run_context=run_context,
        config=ctx.config,
        workspace_root=ctx.root,
        console=ctx.console,
        options=RunOptions(
            dry_run=dry_run,
            attach=not skip_attach,
            publish_repo=not skip_repo,
            commit_repo=commit,
            push_repo=push,
        ),
    )
    report_run(result, console=ctx.console)

    if result.errors:
        first = result.errors[0]
        exit_release(first.pretty(), code=release_error_code(first.kind))
    ctx.console.success("release run complete")
