from __future__ import annotations

from pathlib import Path

import typer

from relpkg.cli.commands._helpers import exit_on_release_error, exit_release
from relpkg.cli.context import build_context
from relpkg.core.errors import ErrorCode
from relpkg.core.result import Err
from relpkg.release.model import PackageFile
from relpkg.release.naming import parse_asset_name, strip_tag_marker
from relpkg.release.repo_publisher import (
    DEFAULT_COMMIT_MESSAGE,
    commit_repository,
    publish_packages,
)

repo_app = typer.Typer(add_completion=False, no_args_is_help=True)


def _package_files(
    files: list[Path], *, version: str, distro: str | None, distro_version: str | None
) -> list[PackageFile]:
    out: list[PackageFile] = []
    for path in files:
        if not path.is_file():
            exit_release(f"file not found: {path}", code=ErrorCode.USER_ERROR)
        parsed = parse_asset_name(path.name)
        if parsed is None:
            exit_release(f"unrecognized package file name: {path.name}", code=ErrorCode.USER_ERROR)
        if parsed.version != version:
            exit_release(
                f"{path.name} is version {parsed.version}, expected {version}",
                code=ErrorCode.USER_ERROR,
            )
        out.append(
            PackageFile(
                path=path,
                package=parsed.package,
                version=parsed.version,
                release=parsed.release,
                arch=parsed.arch,
                ext=parsed.ext,
                distro=parsed.distro or distro,
                distro_version=parsed.distro_version or distro_version,
            )
        )
    return out


@repo_app.command("publish")
def publish_cmd(
    files: list[Path] = typer.Argument(..., help="Package files to publish"),
    version: str = typer.Option(..., "--version", help="Upstream version (leaf directory)"),
    distro: str | None = typer.Option(
        None, "--distro", help="Distro for files whose name carries none (deb)"
    ),
    distro_version: str | None = typer.Option(
        None, "--distro-version", help="Distro version for files whose name carries none"
    ),
    commit: bool = typer.Option(False, "--commit", help="Commit the repository tree with git"),
    push: bool = typer.Option(False, "--push", help="Push after committing"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the plan only"),
) -> None:
    """Place packages in the repository tree and regenerate index metadata."""
    if push and not commit:
        exit_release("--push requires --commit", code=ErrorCode.USER_ERROR)

    ctx = build_context()
    packages = _package_files(
        [ctx.root / f for f in files],
        version=strip_tag_marker(version),
        distro=distro,
        distro_version=distro_version,
    )

    repository = ctx.config.repository
    root = ctx.root / repository.root
    published = publish_packages(
        root=root,
        packages=packages,
        min_depth=repository.min_depth,
        indexers=repository.indexers,
        console=ctx.console,
        dry_run=dry_run,
    )
    if isinstance(published, Err):
        exit_on_release_error(published.error)

    report = published.value
    if not report.ok:
        failed = ", ".join(str(f.directory) for f in report.index_failures)
        exit_release(f"index generation failed: {failed}", code=ErrorCode.IO_ERROR)

    if commit:
        committed = commit_repository(
            repo_root=ctx.root,
            tree=root,
            message=DEFAULT_COMMIT_MESSAGE,
            push=push,
            console=ctx.console,
            dry_run=dry_run,
        )
        if isinstance(committed, Err):
            exit_on_release_error(committed.error)

    ctx.console.success(
        f"published {len(report.placed)} package(s), indexed {len(report.indexed)} dir(s)"
    )
