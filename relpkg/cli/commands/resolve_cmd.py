from __future__ import annotations

import typer

from relpkg.cli.commands._helpers import exit_on_release_error, require_gh, run_context_from_options
from relpkg.cli.context import build_context
from relpkg.core.result import Err
from relpkg.platform.github_env import write_outputs
from relpkg.release.gh import get_latest_release
from relpkg.release.intent import pending_upload_names
from relpkg.release.model import ManualDispatch
from relpkg.release.resolver import resolve


def resolve_cmd(
    tag: str | None = typer.Option(None, "--tag", help="Release tag (event-triggered run)"),
    from_env: bool = typer.Option(
        False, "--from-env", help="Read the trigger from GITHUB_EVENT_NAME/GITHUB_EVENT_PATH"
    ),
) -> None:
    """Compute (version, release) for this run and emit them as step outputs."""
    ctx = build_context()
    run_context = run_context_from_options(tag=tag, from_env=from_env)
    if isinstance(run_context, ManualDispatch):
        require_gh(ctx)

    resolved = resolve(
        run_context,
        fetch_latest=lambda: get_latest_release(cwd=ctx.root, repo=ctx.config.project.repo),
        pending_uploads=lambda release: pending_upload_names(
            state_dir=ctx.state_dir, repo=ctx.config.project.repo, release=release
        ),
    )
    if isinstance(resolved, Err):
        exit_on_release_error(resolved.error)

    outputs = resolved.value.as_outputs()
    for key, value in outputs.items():
        typer.echo(f"{key}={value}")
    write_outputs(outputs)
