"""Smoke tests for built packages.

A validation job installs the packages produced by one build job, runs the
Goss assertion file against the result and, when configured, checks that the
agent starts and survives a short grace period before being interrupted. The
Goss report is kept as a build artifact and appended to the Actions job
summary.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from relpkg.core.result import Err, Ok, Result
from relpkg.output.console import ConsoleProtocol, Style
from relpkg.platform.github_env import append_step_summary
from relpkg.platform.process import run as run_process
from relpkg.platform.process import run_and_interrupt
from relpkg.release.config import ValidationConfig
from relpkg.release.errors import ReleaseError
from relpkg.release.templates import expand_command
from relpkg.release.timeouts import SMOKE_STOP_TIMEOUT_SECONDS, VALIDATION_TIMEOUT_SECONDS


@dataclass(frozen=True, slots=True)
class ValidationReport:
    job: str
    report_path: Path | None
    report: str


def goss_command(goss_file: str) -> list[str]:
    return ["goss", "-g", goss_file, "validate", "--format", "documentation"]


def _fail(job: str, message: str, hint: str | None) -> Err[ReleaseError]:
    return Err(ReleaseError(kind="validation_failed", message=f"{job}: {message}", hint=hint))


def validate_packages(
    *,
    job: str,
    config: ValidationConfig,
    files: Sequence[Path],
    values: Mapping[str, str],
    cwd: Path,
    report_dir: Path,
    console: ConsoleProtocol,
    dry_run: bool = False,
) -> Result[ValidationReport, ReleaseError]:
    if not files and not dry_run:
        return _fail(job, "no packages to validate", "The build produced no matching files.")

    if config.install:
        cmd = expand_command(config.install, values, files=files)
        if isinstance(cmd, Err):
            return cmd
        console.print(" ".join(cmd.value), Style.DIM)
        if not dry_run:
            installed = run_process(cmd.value, cwd=cwd, timeout=VALIDATION_TIMEOUT_SECONDS)
            if isinstance(installed, Err):
                e = installed.error
                return _fail(job, "package install failed", e.stderr.strip() or str(e))

    report = ""
    report_path: Path | None = None
    if config.goss_file is not None:
        cmd_goss = goss_command(config.goss_file)
        console.print(" ".join(cmd_goss), Style.DIM)
        if not dry_run:
            goss = run_process(cmd_goss, cwd=cwd, timeout=VALIDATION_TIMEOUT_SECONDS)
            # goss prints its documentation report on failure too.
            report = goss.value if isinstance(goss, Ok) else goss.error.stdout
            report_path = report_dir / f"goss-results-{job}.txt"
            try:
                report_dir.mkdir(parents=True, exist_ok=True)
                report_path.write_text(report, encoding="utf-8")
                append_step_summary(f"### Goss results: {job}\n\n```\n{report.rstrip()}\n```\n")
            except OSError as e:
                return _fail(job, f"failed to write goss report: {e}", str(report_path))
            if isinstance(goss, Err):
                return _fail(job, "goss assertions failed", str(report_path))

    if config.smoke is not None:
        cmd_smoke = expand_command(config.smoke.command, values)
        if isinstance(cmd_smoke, Err):
            return cmd_smoke
        console.print(
            f"{' '.join(cmd_smoke.value)} (alive check, {config.smoke.grace_seconds:g}s)", Style.DIM
        )
        if not dry_run:
            alive = run_and_interrupt(
                cmd_smoke.value,
                cwd,
                grace_seconds=config.smoke.grace_seconds,
                stop_timeout=SMOKE_STOP_TIMEOUT_SECONDS,
            )
            if isinstance(alive, Err):
                return _fail(job, "agent smoke check failed", alive.error.stderr or None)

    return Ok(ValidationReport(job=job, report_path=report_path, report=report))
