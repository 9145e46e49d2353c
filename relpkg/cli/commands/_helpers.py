"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import NoReturn

import typer

from relpkg.cli.context import CLIContext
from relpkg.core.errors import ErrorCode
from relpkg.core.result import Err
from relpkg.release.errors import ReleaseError, ReleaseErrorKind
from relpkg.release.gh import ensure_gh_auth, ensure_gh_available
from relpkg.release.model import EventTriggered, ManualDispatch, RunContext
from relpkg.release.trigger import context_from_env

_EXIT_CODES: dict[ReleaseErrorKind, ErrorCode] = {
    "gh_missing": ErrorCode.ENV_ERROR,
    "gh_auth_required": ErrorCode.ENV_ERROR,
    "invalid_input": ErrorCode.USER_ERROR,
    "invalid_tag": ErrorCode.USER_ERROR,
    "release_not_found": ErrorCode.NETWORK_ERROR,
    "api_failed": ErrorCode.NETWORK_ERROR,
    "build_failed": ErrorCode.BUILD_ERROR,
    "validation_failed": ErrorCode.VALIDATION_ERROR,
    "sync_failed": ErrorCode.SYNC_ERROR,
    "repo_failed": ErrorCode.IO_ERROR,
    "state_failed": ErrorCode.IO_ERROR,
    "cancelled": ErrorCode.CANCELLED,
}


def release_error_code(kind: ReleaseErrorKind) -> ErrorCode:
    return _EXIT_CODES.get(kind, ErrorCode.USER_ERROR)


def exit_release(err: str, *, code: ErrorCode) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    raise typer.Exit(code=int(code))


def exit_on_release_error(error: ReleaseError) -> NoReturn:
    exit_release(error.pretty(), code=release_error_code(error.kind))


def require_gh(ctx: CLIContext) -> None:
    available = ensure_gh_available()
    if isinstance(available, Err):
        exit_on_release_error(available.error)
    auth = ensure_gh_auth(cwd=ctx.root)
    if isinstance(auth, Err):
        exit_on_release_error(auth.error)


def run_context_from_options(*, tag: str | None, from_env: bool) -> RunContext:
    if tag is not None:
        return EventTriggered(tag=tag)
    if from_env:
        detected = context_from_env()
        if isinstance(detected, Err):
            exit_on_release_error(detected.error)
        return detected.value
    return ManualDispatch()
